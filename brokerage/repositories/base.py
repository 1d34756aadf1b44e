from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Iterable, Optional, TypeVar

from sqlalchemy import Executable
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from brokerage.core.errors import ConflictError, UnavailableError
from brokerage.db.config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ReadRepository:
    """
    Query helpers shared by every repository.

    All database round-trips go through _guard, which applies the operation
    timeout and translates driver failures into engine errors.
    """

    def __init__(self, session: AsyncSession, timeout: Optional[float] = None) -> None:
        self.session = session
        self.timeout = timeout if timeout is not None else get_settings().DB_OPERATION_TIMEOUT_SECONDS

    async def _guard(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Database operation exceeded %.1fs", self.timeout)
            raise UnavailableError("Database operation timed out", details={"timeout": self.timeout}) from exc
        except PoolTimeoutError as exc:
            logger.warning("Connection pool exhausted: %s", exc)
            raise UnavailableError("Database connection pool exhausted") from exc
        except (OperationalError, InterfaceError) as exc:
            logger.warning("Database unavailable: %s", exc.__class__.__name__)
            raise UnavailableError("Database unavailable") from exc
        except DBAPIError as exc:
            if exc.connection_invalidated:
                raise UnavailableError("Database connection lost") from exc
            raise
        except StaleDataError as exc:
            raise ConflictError("Record was modified concurrently; reload and retry") from exc

    async def execute(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute a SQLAlchemy statement."""
        return await self._guard(self.session.execute(statement, params or {}))

    async def scalars(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute and return scalars."""
        result = await self.execute(statement, params)
        return result.scalars()

    async def scalar_one_or_none(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute and return a single scalar or None."""
        result = await self.execute(statement, params)
        return result.scalar_one_or_none()

    async def scalar_one(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        result = await self.execute(statement, params)
        return result.scalar_one()


class BaseRepository(ReadRepository):
    """Repository with unit-of-work helpers (add, flush, commit, remove)."""

    async def flush(self) -> None:
        """Flush pending changes so constraint and version checks run now."""
        await self._guard(self.session.flush())

    async def commit(self) -> None:
        """Commit current transaction."""
        await self._guard(self.session.commit())

    async def rollback(self) -> None:
        await self.session.rollback()

    async def add_all(self, entities: Iterable[Any]) -> None:
        """Add multiple entities to session."""
        self.session.add_all(list(entities))

    async def add(self, entity: Any) -> None:
        """Add a single entity to session."""
        self.session.add(entity)

    async def remove(self, entity: Any) -> None:
        """Mark an entity for deletion; takes effect on flush."""
        await self._guard(self.session.delete(entity))
