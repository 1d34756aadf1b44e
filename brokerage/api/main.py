from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from brokerage.core.errors import BrokerageError, error_type_code, get_status_code
from brokerage.core.logging import bind_context, configure_logging, organization_id_var
from brokerage.core.settings import get_app_settings
from brokerage.db.run_migrations import main as run_alembic
from brokerage.db.seed import seed_all
from brokerage.db.session import dispose_engine
from brokerage.jobs.scheduler import get_job_status, shutdown_scheduler, start_scheduler
from brokerage.schemas.common import ErrorInfo, ErrorResponse, MessageResponse

# Routers
from brokerage.api.routes.billing import router as billing_router
from brokerage.api.routes.organizations import router as organizations_router
from brokerage.api.routes.reports import router as reports_router
from brokerage.api.routes.transactions import router as transactions_router

# Configure structured logging once at import
configure_logging()
logger = logging.getLogger(__name__)

settings = get_app_settings()

openapi_tags = [
    {"name": "Health", "description": "Liveness probes and job status."},
    {"name": "Transactions", "description": "Closed deals and their commission split."},
    {"name": "Billing", "description": "Platform billing records, summaries and the monthly closing."},
    {"name": "Administration", "description": "Organizations and profiles (platform admin)."},
    {"name": "Reports", "description": "Exportable business reports (CSV/Excel/PDF)."},
]

app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    openapi_tags=openapi_tags,
)

# CORS - avoid wildcard with credentials
cors_allow_credentials = settings.CORS_ALLOW_CREDENTIALS
if settings.CORS_ORIGINS == ["*"] and cors_allow_credentials:
    logger.warning("CORS_ALLOW_CREDENTIALS=True with '*' origins is not permitted; disabling credentials.")
    cors_allow_credentials = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=cors_allow_credentials,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """
    Bind a correlation id to the request for logging and error responses.
    Adds 'X-Correlation-ID' to every response.
    """
    corr = request.headers.get("X-Correlation-ID") or request.headers.get("X-Request-ID") or str(uuid4())
    request.state.correlation_id = corr

    with bind_context(correlation_id=corr):
        logger.info("Incoming request %s %s", request.method, request.url.path)
        response = await call_next(request)

    response.headers["X-Correlation-ID"] = corr
    return response


def _build_error_response(
    request: Request,
    status_code: int,
    error_type: str,
    message: str,
    details: Any | None = None,
) -> JSONResponse:
    """Build a standardized ErrorResponse JSONResponse."""
    err = ErrorResponse(
        status=status_code,
        error=ErrorInfo(type=error_type, message=message, details=details),
        correlation_id=getattr(request.state, "correlation_id", None),
        organization_id=organization_id_var.get(),
        path=request.url.path,
        method=request.method,
        timestamp=datetime.now(tz=timezone.utc),
    )
    return JSONResponse(status_code=status_code, content=err.model_dump(mode="json"))


@app.exception_handler(BrokerageError)
async def brokerage_error_handler(request: Request, exc: BrokerageError):
    """
    Map engine errors to their HTTP status. Messages are caller-safe; 5xx
    conditions are logged with the cause.
    """
    status_code = get_status_code(exc)
    if status_code >= 500:
        logger.warning("%s: %s", exc.__class__.__name__, exc.message, exc_info=exc.__cause__)
    else:
        logger.info("%s on %s %s: %s", exc.__class__.__name__, request.method, request.url.path, exc.message)
    return _build_error_response(
        request=request,
        status_code=status_code,
        error_type=error_type_code(exc),
        message=exc.message,
        details=exc.details or None,
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Global handler for HTTPException to produce a standardized error envelope.
    """
    detail = exc.detail if isinstance(exc.detail, str) else "HTTP Error"
    return _build_error_response(
        request=request,
        status_code=exc.status_code,
        error_type="http_error",
        message=str(detail),
        details=None if isinstance(exc.detail, str) else exc.detail,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Malformed request bodies and parameters are reported like any other
    validation failure: 400 with the field errors as details.
    """
    return _build_error_response(
        request=request,
        status_code=400,
        error_type="validation_error",
        message="Request validation failed",
        details=exc.errors(),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Catch-all handler to avoid leaking stack traces and to return a structured error.
    """
    logger.exception("Unhandled error processing request")
    return _build_error_response(
        request=request,
        status_code=500,
        error_type="internal_error",
        message="An unexpected error occurred",
        details=None,
    )


@app.on_event("startup")
async def on_startup() -> None:
    """
    Run migrations, optional seeding and the closing schedule on startup.
    """
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        try:
            logger.info("Running Alembic migrations: upgrade head")
            # env.py drives its own event loop, so it cannot share this one.
            await asyncio.to_thread(run_alembic, ["upgrade", "head"])
            logger.info("Migrations completed.")
        except Exception as exc:
            logger.exception("Migration step failed: %s", exc)
            # Do not crash the app in case of transient DB issues; rely on retries or later readiness probes.

    if settings.AUTO_SEED:
        try:
            logger.info("Running database seeding...")
            await seed_all()
            logger.info("Seeding completed.")
        except Exception as exc:
            logger.exception("Seeding step failed: %s", exc)

    start_scheduler(settings)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    shutdown_scheduler()
    await dispose_engine()


# Build API v1 router and include sub-routers
api_v1 = APIRouter(prefix="/api/v1")


# PUBLIC_INTERFACE
@api_v1.get(
    "/health",
    response_model=MessageResponse,
    summary="Health Check",
    tags=["Health"],
)
def health_check() -> MessageResponse:
    """
    Basic liveness health check endpoint.

    Returns:
        MessageResponse: Simple confirmation that the service is running, with
        the scheduled jobs (if any) as details.
    """
    return MessageResponse(message="Healthy", details={"jobs": get_job_status()})


# Include all routers under /api/v1
api_v1.include_router(transactions_router)
api_v1.include_router(billing_router)
api_v1.include_router(organizations_router)
api_v1.include_router(reports_router)

# Attach api_v1 to app
app.include_router(api_v1)
