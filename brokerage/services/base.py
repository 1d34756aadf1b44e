from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.settings import AppSettings, get_app_settings
from brokerage.repositories.audit import AuditRepository


class BaseService:
    """
    Base class for services. Holds a session for use across multiple repositories.

    Services should keep business logic and orchestration, delegating data access
    to repositories. Each public operation is one unit of work: it commits on
    success and leaves rollback to the session owner on failure.
    """

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        self.session = session
        self.settings = settings or get_app_settings()
        self.audit = AuditRepository(session)
