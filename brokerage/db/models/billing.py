from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, DateTime, Index, Integer, Numeric, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from brokerage.db.base import Base, JSONType, OrganizationOwnedMixin, TimestampMixin, UUIDPkMixin


class BillingRecord(UUIDPkMixin, OrganizationOwnedMixin, TimestampMixin, Base):
    """A charge owed by an organization to the platform. Cancelled, never deleted."""
    __tablename__ = "billing_records"
    __table_args__ = (
        # One royalty charge per organization and period.
        Index(
            "uq_billing_records_royalty_period",
            "organization_id",
            "period",
            "billing_type",
            unique=True,
            postgresql_where=text("billing_type = 'royalty'"),
            sqlite_where=text("billing_type = 'royalty'"),
        ),
        Index("ix_billing_records_org_status", "organization_id", "status"),
    )

    concept: Mapped[str] = mapped_column(Text, nullable=False)
    billing_type: Mapped[str] = mapped_column(Text, nullable=False, default="royalty", server_default="royalty")
    amount: Mapped[Decimal] = mapped_column(Numeric, nullable=False)
    original_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric, nullable=True)
    surcharge_amount: Mapped[Decimal] = mapped_column(Numeric, nullable=False, default=Decimal("0"), server_default="0")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending", server_default="pending")

    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    first_due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    second_due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_method: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    receipt_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_details: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    period: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    internal_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
