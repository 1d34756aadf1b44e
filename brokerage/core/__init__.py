"""
Core application utilities.

This package provides:
- Application-level settings (separate from DB settings)
- Logging configuration with correlation/organization context
- The engine's error taxonomy and its HTTP status mapping
- The role-based authorization policy
- Bearer token handling and FastAPI dependencies (session, current actor)
"""
