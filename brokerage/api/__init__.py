"""FastAPI application and routers (brokerage.api.main:app)."""
