"""
Domain exceptions for the brokerage engine.

Services raise these; the API layer maps them to HTTP status codes through
ERROR_STATUS_MAP. Messages are short and safe to show to callers; anything
sensitive belongs in the logs, not in `message`.
"""
from __future__ import annotations

from typing import Any, Optional


class BrokerageError(Exception):
    """Base class for all engine errors."""

    retryable: bool = False

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(BrokerageError):
    """
    Missing or malformed input.

    Examples:
    - actual_price absent or not positive
    - percentage outside [0, 100]
    - malformed closing period

    HTTP Status: 400 Bad Request
    """


class UnauthorizedError(BrokerageError):
    """
    No usable identity was supplied with the request.

    HTTP Status: 401 Unauthorized
    """


class ForbiddenError(BrokerageError):
    """
    The actor is identified but its role or scope does not allow the operation.

    Examples:
    - a broker assigning an agent from another organization
    - an agent editing someone else's transaction
    - any non-platform-admin touching billing records

    HTTP Status: 403 Forbidden
    """


class NotFoundError(BrokerageError):
    """
    The entity does not exist.

    HTTP Status: 404 Not Found
    """


class ConflictError(BrokerageError):
    """
    The operation clashes with the current stored state.

    Examples:
    - stale version on amend (concurrent modification)
    - editing a cancelled billing record

    HTTP Status: 409 Conflict
    """


class UnavailableError(BrokerageError):
    """
    The persistence layer timed out or is unreachable. Safe to retry.

    HTTP Status: 503 Service Unavailable
    """

    retryable = True


ERROR_STATUS_MAP = {
    ValidationError: 400,
    UnauthorizedError: 401,
    ForbiddenError: 403,
    NotFoundError: 404,
    ConflictError: 409,
    UnavailableError: 503,
}


# PUBLIC_INTERFACE
def get_status_code(error: Exception) -> int:
    """Return the HTTP status for an exception; 500 for anything unmapped."""
    for error_type in type(error).__mro__:
        if error_type in ERROR_STATUS_MAP:
            return ERROR_STATUS_MAP[error_type]
    return 500


# PUBLIC_INTERFACE
def error_type_code(error: Exception) -> str:
    """Machine-readable snake_case code for an error, e.g. 'not_found'."""
    return {
        400: "validation_error",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        409: "conflict",
        503: "unavailable",
    }.get(get_status_code(error), "internal_error")
