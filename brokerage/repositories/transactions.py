from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import Select, func, select

from brokerage.core.policy import AccessScope
from brokerage.db.models import Transaction
from brokerage.domain.commission import to_decimal
from brokerage.domain.enums import ScopeKind
from .base import BaseRepository


@dataclass
class TransactionFilters:
    """Optional list filters; month only applies together with year."""

    organization_id: Optional[UUID] = None
    agent_id: Optional[UUID] = None
    property_id: Optional[UUID] = None
    year: Optional[int] = None
    month: Optional[int] = None
    limit: Optional[int] = None
    offset: int = 0

    def date_range(self) -> Optional[tuple[date, date]]:
        if self.year is None:
            return None
        if self.month is None:
            return date(self.year, 1, 1), date(self.year, 12, 31)
        start = date(self.year, self.month, 1)
        end = date(self.year + 1, 1, 1) if self.month == 12 else date(self.year, self.month + 1, 1)
        return start, date.fromordinal(end.toordinal() - 1)


def apply_scope(stmt: Select, scope: AccessScope) -> Select:
    """Restrict a Transaction select to the rows an access scope covers."""
    if scope.kind is ScopeKind.ORGANIZATION:
        return stmt.where(Transaction.organization_id == scope.organization_id)
    if scope.kind is ScopeKind.AGENT:
        return stmt.where(Transaction.agent_id == scope.agent_id)
    return stmt


def apply_filters(stmt: Select, filters: TransactionFilters) -> Select:
    if filters.organization_id:
        stmt = stmt.where(Transaction.organization_id == filters.organization_id)
    if filters.agent_id:
        stmt = stmt.where(Transaction.agent_id == filters.agent_id)
    if filters.property_id:
        stmt = stmt.where(Transaction.property_id == filters.property_id)
    bounds = filters.date_range()
    if bounds:
        stmt = stmt.where(Transaction.transaction_date.between(*bounds))
    return stmt


class TransactionRepository(BaseRepository):
    """Repository for closed transactions."""

    async def get(self, transaction_id: UUID) -> Optional[Transaction]:
        stmt = select(Transaction).where(Transaction.id == transaction_id)
        return await self.scalar_one_or_none(stmt)

    async def list_scoped(self, scope: AccessScope, filters: TransactionFilters) -> List[Transaction]:
        stmt = apply_filters(apply_scope(select(Transaction), scope), filters)
        stmt = stmt.order_by(Transaction.transaction_date.desc(), Transaction.created_at.desc())
        stmt = stmt.offset(filters.offset)
        if filters.limit is not None:
            stmt = stmt.limit(filters.limit)
        return list(await self.scalars(stmt))

    async def insert(self, transaction: Transaction) -> Transaction:
        await self.add(transaction)
        await self.flush()
        return transaction

    async def delete(self, transaction: Transaction) -> None:
        await self.remove(transaction)
        await self.flush()

    async def master_total_for_period(self, organization_id: UUID, start: date, end: date) -> Decimal:
        """Sum of platform royalty amounts for transactions dated within [start, end]."""
        stmt = select(func.coalesce(func.sum(Transaction.master_commission_amount), 0)).where(
            Transaction.organization_id == organization_id,
            Transaction.transaction_date.between(start, end),
        )
        return to_decimal(await self.scalar_one(stmt))
