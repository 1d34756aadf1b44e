"""
Public Pydantic schemas used by FastAPI routes, services, and tests.

Schemas are grouped by area (transactions, billing, organizations) and also
include common reusable models such as the error envelope and money type.
"""

from .common import ErrorResponse, MessageResponse, Money  # noqa: F401
