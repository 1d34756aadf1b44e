"""
Write access to billing records.

Billing records are platform-owned: request-scoped code never writes them
directly. PrivilegedBillingRepository can only be constructed with a
PrivilegedGrant. Each of the billing manager and the monthly closing service
claims its grant once, at import; a second claim for the same holder, or a
claim by any other module, is refused.
"""
from __future__ import annotations

from datetime import date
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select

from brokerage.db.models import BillingRecord
from brokerage.domain.billing import OUTSTANDING_STATUSES
from brokerage.domain.enums import BillingStatus, BillingType
from .base import BaseRepository, ReadRepository

_GRANT_HOLDERS = frozenset({"brokerage.services.billing", "brokerage.services.closing"})
_ISSUE_KEY = object()
_claimed: set[str] = set()


class PrivilegedGrant:
    """Capability token proving the holder may write billing records."""

    __slots__ = ("holder",)

    def __init__(self, key: object, holder: str) -> None:
        if key is not _ISSUE_KEY:
            raise TypeError("PrivilegedGrant is only minted by claim_grant()")
        self.holder = holder

    def __repr__(self) -> str:
        return f"PrivilegedGrant(holder={self.holder!r})"


# PUBLIC_INTERFACE
def claim_grant(holder: str) -> PrivilegedGrant:
    """
    Mint the one grant a billing service module holds; call at module level
    with __name__ and keep the result private to that module.
    """
    if holder not in _GRANT_HOLDERS:
        raise PermissionError(f"{holder} may not hold billing write access")
    if holder in _claimed:
        raise PermissionError(f"Billing write access for {holder} was already claimed")
    _claimed.add(holder)
    return PrivilegedGrant(_ISSUE_KEY, holder)


class BillingRecordReader(ReadRepository):
    """Read-only queries over billing records; safe for reports and summaries."""

    async def get(self, record_id: UUID) -> Optional[BillingRecord]:
        stmt = select(BillingRecord).where(BillingRecord.id == record_id)
        return await self.scalar_one_or_none(stmt)

    async def list(
        self,
        *,
        organization_id: Optional[UUID] = None,
        status: Optional[str] = None,
        due_from: Optional[date] = None,
        due_to: Optional[date] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[BillingRecord]:
        stmt = select(BillingRecord)
        if organization_id:
            stmt = stmt.where(BillingRecord.organization_id == organization_id)
        if status:
            stmt = stmt.where(BillingRecord.status == status)
        if due_from:
            stmt = stmt.where(BillingRecord.due_date >= due_from)
        if due_to:
            stmt = stmt.where(BillingRecord.due_date <= due_to)
        stmt = stmt.order_by(BillingRecord.due_date.desc(), BillingRecord.created_at.desc()).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(await self.scalars(stmt))

    async def list_not_cancelled(self, organization_ids: Optional[Sequence[UUID]] = None) -> List[BillingRecord]:
        stmt = select(BillingRecord).where(BillingRecord.status != BillingStatus.CANCELLED.value)
        if organization_ids is not None:
            stmt = stmt.where(BillingRecord.organization_id.in_(list(organization_ids)))
        return list(await self.scalars(stmt))

    async def list_outstanding(self, organization_id: UUID) -> List[BillingRecord]:
        stmt = (
            select(BillingRecord)
            .where(
                BillingRecord.organization_id == organization_id,
                BillingRecord.status.in_(OUTSTANDING_STATUSES),
            )
            .order_by(BillingRecord.due_date.asc())
        )
        return list(await self.scalars(stmt))

    async def royalty_for_period(self, organization_id: UUID, period: str) -> Optional[BillingRecord]:
        """The royalty charge for an organization and period, in any status."""
        stmt = select(BillingRecord).where(
            BillingRecord.organization_id == organization_id,
            BillingRecord.period == period,
            BillingRecord.billing_type == BillingType.ROYALTY.value,
        )
        return await self.scalar_one_or_none(stmt)


class PrivilegedBillingRepository(BillingRecordReader, BaseRepository):
    """Billing record writes. Requires a PrivilegedGrant."""

    def __init__(self, session, grant: PrivilegedGrant, timeout: Optional[float] = None) -> None:
        if not isinstance(grant, PrivilegedGrant):
            raise TypeError("PrivilegedBillingRepository requires a PrivilegedGrant")
        super().__init__(session, timeout=timeout)
        self.grant = grant

    async def insert(self, record: BillingRecord) -> BillingRecord:
        await self.add(record)
        await self.flush()
        return record
