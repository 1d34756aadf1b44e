"""
Structured logging for the brokerage API.

Every record carries the request's correlation id, the caller's organization
and the acting profile, taken from contextvars. Scheduled jobs bind their own
correlation id ("job:<id>") so closing runs can be told apart from requests.
"""
from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional, Union

from brokerage.core.settings import get_app_settings

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
organization_id_var: ContextVar[Optional[str]] = ContextVar("organization_id", default=None)
actor_id_var: ContextVar[Optional[str]] = ContextVar("actor_id", default=None)

LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | cid=%(correlation_id)s | org=%(organization_id)s | "
    "actor=%(actor_id)s | %(message)s"
)

# Third-party loggers that only add noise at INFO
_QUIET_LOGGERS = ("apscheduler", "aiosqlite", "multipart")


class RequestContextFilter(logging.Filter):
    """Stamp correlation, organization and actor ids on each record ("-" when unbound)."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        record.correlation_id = correlation_id_var.get() or "-"
        record.organization_id = organization_id_var.get() or "-"
        record.actor_id = actor_id_var.get() or "-"
        return True


# PUBLIC_INTERFACE
@contextmanager
def bind_context(correlation_id: Optional[str] = None, organization_id: Optional[str] = None) -> Iterator[None]:
    """
    Bind a correlation id (and optionally an organization) for the duration of
    a request or job. The actor is cleared; authentication binds it later.
    """
    tokens = (
        (correlation_id_var, correlation_id_var.set(correlation_id)),
        (organization_id_var, organization_id_var.set(organization_id)),
        (actor_id_var, actor_id_var.set(None)),
    )
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


# PUBLIC_INTERFACE
def configure_logging(level: Union[int, str, None] = None) -> None:
    """Install a single stdout handler on the root logger; level defaults to LOG_LEVEL."""
    if level is None:
        level = get_app_settings().LOG_LEVEL
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT))
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    # Remove pre-existing default handlers configured elsewhere (e.g., basicConfig)
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
