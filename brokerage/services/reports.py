from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional
from uuid import UUID

import pandas as pd
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.policy import Actor, require_platform_admin
from brokerage.core.settings import AppSettings
from brokerage.domain.billing import effective_due_date, is_overdue
from brokerage.domain.commission import round_currency, to_decimal
from brokerage.repositories.billing import BillingRecordReader
from brokerage.repositories.transactions import TransactionFilters
from brokerage.services.base import BaseService
from brokerage.services.ledger import TransactionLedger

TRANSACTION_COLUMNS = [
    "transaction_date",
    "organization_id",
    "agent_id",
    "property",
    "actual_price",
    "sides",
    "commission_percentage",
    "agent_split_percentage",
    "royalty_percentage_at_closure",
    "gross_commission",
    "master_commission_amount",
    "net_commission",
    "office_commission_amount",
    "buyer_name",
    "seller_name",
]

BILLING_COLUMNS = [
    "organization_id",
    "concept",
    "billing_type",
    "period",
    "status",
    "is_overdue",
    "due_date",
    "second_due_date",
    "amount",
    "surcharge_amount",
    "total_due",
    "paid_at",
    "payment_method",
]


def _money(value) -> Optional[float]:
    rounded = round_currency(value)
    return float(rounded) if rounded is not None else None


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    """Excel cannot store timezone-aware datetimes; export them as naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class ReportService(BaseService):
    """Tabular exports of transactions and billing records as DataFrames."""

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session, settings)
        self.ledger = TransactionLedger(session, self.settings)
        self.billing = BillingRecordReader(session)

    # PUBLIC_INTERFACE
    async def transactions_frame(self, filters: TransactionFilters, actor: Actor) -> pd.DataFrame:
        """Transactions within the actor's scope, amounts rounded to cents."""
        rows = await self.ledger.list(filters, actor)
        data = [
            {
                "transaction_date": tx.transaction_date,
                "organization_id": str(tx.organization_id),
                "agent_id": str(tx.agent_id),
                "property": tx.custom_property_title or (str(tx.property_id) if tx.property_id else None),
                "actual_price": _money(tx.actual_price),
                "sides": tx.sides,
                "commission_percentage": float(tx.commission_percentage),
                "agent_split_percentage": float(tx.agent_split_percentage),
                "royalty_percentage_at_closure": float(tx.royalty_percentage_at_closure),
                "gross_commission": _money(tx.gross_commission),
                "master_commission_amount": _money(tx.master_commission_amount),
                "net_commission": _money(tx.net_commission),
                "office_commission_amount": _money(tx.office_commission_amount),
                "buyer_name": tx.buyer_name,
                "seller_name": tx.seller_name,
            }
            for tx in rows
        ]
        return pd.DataFrame(data, columns=TRANSACTION_COLUMNS)

    # PUBLIC_INTERFACE
    async def billing_frame(
        self,
        actor: Actor,
        *,
        organization_id: Optional[UUID] = None,
        status: Optional[str] = None,
        due_from: Optional[date] = None,
        due_to: Optional[date] = None,
        as_of: Optional[date] = None,
    ) -> pd.DataFrame:
        """Billing records (platform admin only) with the overdue flag as of `as_of`."""
        require_platform_admin(actor)
        as_of = as_of or date.today()
        records = await self.billing.list(
            organization_id=organization_id, status=status, due_from=due_from, due_to=due_to
        )
        data = [
            {
                "organization_id": str(r.organization_id),
                "concept": r.concept,
                "billing_type": r.billing_type,
                "period": r.period,
                "status": r.status,
                "is_overdue": is_overdue(r, as_of),
                "due_date": effective_due_date(r),
                "second_due_date": r.second_due_date,
                "amount": _money(r.amount),
                "surcharge_amount": _money(r.surcharge_amount),
                "total_due": _money(to_decimal(r.amount) + to_decimal(r.surcharge_amount or 0)),
                "paid_at": _naive(r.paid_at),
                "payment_method": r.payment_method,
            }
            for r in records
        ]
        return pd.DataFrame(data, columns=BILLING_COLUMNS)
