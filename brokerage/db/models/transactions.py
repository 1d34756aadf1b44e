from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, Numeric, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from brokerage.db.base import Base, OrganizationOwnedMixin, TimestampMixin, UUIDPkMixin


class Transaction(UUIDPkMixin, OrganizationOwnedMixin, TimestampMixin, Base):
    """A closed deal and its frozen commission split."""
    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("actual_price > 0", name="actual_price_positive"),
        CheckConstraint("sides >= 1", name="sides_positive"),
        Index("ix_transactions_org_date", "organization_id", "transaction_date"),
    )

    agent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    property_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    custom_property_title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    actual_price: Mapped[Decimal] = mapped_column(Numeric, nullable=False)
    sides: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    commission_percentage: Mapped[Decimal] = mapped_column(Numeric, nullable=False)
    agent_split_percentage: Mapped[Decimal] = mapped_column(Numeric, nullable=False)
    royalty_percentage_at_closure: Mapped[Decimal] = mapped_column(Numeric, nullable=False)

    gross_commission: Mapped[Decimal] = mapped_column(Numeric, nullable=False)
    master_commission_amount: Mapped[Decimal] = mapped_column(Numeric, nullable=False)
    net_commission: Mapped[Decimal] = mapped_column(Numeric, nullable=False)
    office_commission_amount: Mapped[Decimal] = mapped_column(Numeric, nullable=False)

    buyer_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    seller_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    buyer_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    seller_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
