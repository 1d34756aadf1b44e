from __future__ import annotations

from typing import Any, List, Optional
from uuid import UUID

from pydantic_core import to_jsonable_python
from sqlalchemy import select

from brokerage.db.models import AuditLogEntry
from brokerage.domain.enums import AuditAction
from .base import BaseRepository


class AuditRepository(BaseRepository):
    """Append-only audit trail. Entries join the caller's unit of work."""

    async def record(
        self,
        action: AuditAction,
        *,
        entity_type: str,
        entity_id: Optional[UUID] = None,
        actor_id: Optional[UUID] = None,
        organization_id: Optional[UUID] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            action=action.value,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            organization_id=organization_id,
            details=to_jsonable_python(details or {}),
        )
        await self.add(entry)
        return entry

    async def list_for_entity(self, entity_id: UUID) -> List[AuditLogEntry]:
        stmt = (
            select(AuditLogEntry)
            .where(AuditLogEntry.entity_id == entity_id)
            .order_by(AuditLogEntry.created_at.asc())
        )
        return list(await self.scalars(stmt))

    async def list_by_action(self, action: AuditAction, limit: int = 100) -> List[AuditLogEntry]:
        stmt = (
            select(AuditLogEntry)
            .where(AuditLogEntry.action == action.value)
            .order_by(AuditLogEntry.created_at.desc())
            .limit(limit)
        )
        return list(await self.scalars(stmt))
