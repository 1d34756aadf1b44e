from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.policy import Actor, resolve_scope
from brokerage.core.settings import AppSettings
from brokerage.domain.commission import to_decimal
from brokerage.repositories.transactions import TransactionFilters, TransactionRepository
from brokerage.services.base import BaseService

_ZERO = Decimal("0")


@dataclass
class FinancialMetrics:
    organization_id: UUID
    agent_id: UUID
    year: int
    month: int
    total_sales_volume: Decimal = _ZERO
    total_gross_commission: Decimal = _ZERO
    total_net_income: Decimal = _ZERO
    total_master_income: Decimal = _ZERO
    total_office_income: Decimal = _ZERO
    closed_deals_count: int = 0
    double_sided_count: int = 0
    single_sided_count: int = 0

    @property
    def average_ticket(self) -> Decimal:
        if not self.closed_deals_count:
            return _ZERO
        return self.total_sales_volume / self.closed_deals_count


class FinancialMetricsService(BaseService):
    """Closed-deal totals per organization, agent and month, within the actor's scope."""

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session, settings)
        self.transactions = TransactionRepository(session)

    # PUBLIC_INTERFACE
    async def compute(self, filters: TransactionFilters, actor: Actor) -> List[FinancialMetrics]:
        """Aggregate the transactions `list` would return, newest month first."""
        filters = TransactionFilters(
            organization_id=filters.organization_id,
            agent_id=filters.agent_id,
            property_id=filters.property_id,
            year=filters.year,
            month=filters.month,
        )
        rows = await self.transactions.list_scoped(resolve_scope(actor), filters)

        buckets: Dict[Tuple[UUID, UUID, int, int], FinancialMetrics] = {}
        for tx in rows:
            key = (tx.organization_id, tx.agent_id, tx.transaction_date.year, tx.transaction_date.month)
            bucket = buckets.get(key)
            if bucket is None:
                bucket = buckets[key] = FinancialMetrics(*key)
            bucket.total_sales_volume += to_decimal(tx.actual_price)
            bucket.total_gross_commission += to_decimal(tx.gross_commission)
            bucket.total_net_income += to_decimal(tx.net_commission)
            bucket.total_master_income += to_decimal(tx.master_commission_amount)
            bucket.total_office_income += to_decimal(tx.office_commission_amount)
            bucket.closed_deals_count += 1
            if tx.sides >= 2:
                bucket.double_sided_count += 1
            else:
                bucket.single_sided_count += 1

        return sorted(
            buckets.values(),
            key=lambda m: (-m.year, -m.month, str(m.organization_id), str(m.agent_id)),
        )
