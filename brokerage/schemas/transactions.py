from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .common import Money


class TransactionCreate(BaseModel):
    """
    Close a deal. Only actual_price is required; everything else defaults:
    agent is the caller, organization is the agent's, sides=1, commission 3%,
    split from the agent profile, date today.
    """
    organization_id: Optional[UUID] = Field(None, description="Target organization (platform admin only)")
    agent_id: Optional[UUID] = Field(None, description="Closing agent; defaults to the caller")
    property_id: Optional[UUID] = Field(None)
    custom_property_title: Optional[str] = Field(None, description="Free-text property when no listing exists")
    transaction_date: Optional[date] = Field(None)
    actual_price: Optional[Decimal] = Field(None, description="Final sale price; must be > 0")
    sides: Optional[int] = Field(None, description="Ends of the deal represented (default 1)")
    commission_percentage: Optional[Decimal] = Field(None, description="Gross commission % (default 3.0)")
    agent_split_percentage: Optional[Decimal] = Field(None, description="Overrides the agent's default split")
    buyer_name: Optional[str] = Field(None)
    seller_name: Optional[str] = Field(None)
    buyer_id: Optional[UUID] = Field(None)
    seller_id: Optional[UUID] = Field(None)
    notes: Optional[str] = Field(None)


class TransactionAmend(BaseModel):
    """
    Patch a transaction. Only fields present in the body are applied; derived
    commission amounts are not accepted and are recomputed server-side.
    """
    id: UUID = Field(..., description="Transaction id")
    expected_version: Optional[int] = Field(None, description="Reject the patch if the stored version differs")
    organization_id: Optional[UUID] = Field(None)
    agent_id: Optional[UUID] = Field(None)
    property_id: Optional[UUID] = Field(None)
    custom_property_title: Optional[str] = Field(None)
    transaction_date: Optional[date] = Field(None)
    actual_price: Optional[Decimal] = Field(None)
    sides: Optional[int] = Field(None)
    commission_percentage: Optional[Decimal] = Field(None)
    agent_split_percentage: Optional[Decimal] = Field(None)
    buyer_name: Optional[str] = Field(None)
    seller_name: Optional[str] = Field(None)
    buyer_id: Optional[UUID] = Field(None)
    seller_id: Optional[UUID] = Field(None)
    notes: Optional[str] = Field(None)

    def patch(self) -> dict:
        """Fields explicitly sent by the client, minus routing keys."""
        return self.model_dump(exclude_unset=True, exclude={"id", "expected_version"})


class TransactionDelete(BaseModel):
    """Delete payload."""
    id: UUID = Field(..., description="Transaction id")


class TransactionRead(BaseModel):
    """Transaction read model."""
    id: UUID = Field(..., description="Transaction id")
    organization_id: UUID
    agent_id: UUID
    property_id: Optional[UUID] = Field(None)
    custom_property_title: Optional[str] = Field(None)
    transaction_date: date
    actual_price: Money
    sides: int
    commission_percentage: Decimal
    agent_split_percentage: Decimal
    royalty_percentage_at_closure: Decimal
    gross_commission: Money
    master_commission_amount: Money
    net_commission: Money
    office_commission_amount: Money
    buyer_name: Optional[str] = Field(None)
    seller_name: Optional[str] = Field(None)
    buyer_id: Optional[UUID] = Field(None)
    seller_id: Optional[UUID] = Field(None)
    notes: Optional[str] = Field(None)
    version: int = Field(..., description="Optimistic lock counter; send back as expected_version")
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class FinancialMetricsRow(BaseModel):
    """Closed-deal totals for one organization, agent and month."""
    organization_id: UUID
    agent_id: UUID
    year: int
    month: int
    total_sales_volume: Money
    total_gross_commission: Money
    total_net_income: Money
    total_master_income: Money
    total_office_income: Money
    closed_deals_count: int
    average_ticket: Money
    double_sided_count: int
    single_sided_count: int

    class Config:
        from_attributes = True
