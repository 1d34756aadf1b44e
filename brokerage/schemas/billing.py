from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .common import Money


class BillingRecordCreate(BaseModel):
    """Manual charge entry. organization_id, concept, amount and due_date are required."""
    organization_id: Optional[UUID] = Field(None)
    concept: Optional[str] = Field(None, description="What the charge is for")
    amount: Optional[Decimal] = Field(None, description="Amount owed; must be > 0")
    due_date: Optional[date] = Field(None)
    billing_type: Optional[str] = Field(None, description="royalty (default), commission, advertising, penalty, adjustment, other")
    original_amount: Optional[Decimal] = Field(None, description="Defaults to amount")
    surcharge_amount: Optional[Decimal] = Field(None, description="Late fee already owed; defaults to 0")
    first_due_date: Optional[date] = Field(None, description="Defaults to due_date")
    second_due_date: Optional[date] = Field(None, description="Late surcharge applies after this date")
    period: Optional[str] = Field(None, description="YYYY-MM")
    payment_method: Optional[str] = Field(None)
    notes: Optional[str] = Field(None)
    internal_notes: Optional[str] = Field(None)


class BillingRecordUpdate(BaseModel):
    """Status/payment patch. Only fields present in the body are applied."""
    id: UUID = Field(..., description="Billing record id")
    status: Optional[str] = Field(None, description="pending, paid or overdue; use DELETE to cancel")
    notes: Optional[str] = Field(None)
    paid_at: Optional[datetime] = Field(None, description="Stamped with now when status becomes paid without it")
    payment_method: Optional[str] = Field(None)
    receipt_url: Optional[str] = Field(None)
    internal_notes: Optional[str] = Field(None)
    payment_details: Optional[Dict[str, Any]] = Field(None)

    def patch(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude={"id"})


class BillingRecordRead(BaseModel):
    """Billing record read model."""
    id: UUID
    organization_id: UUID
    concept: str
    billing_type: str
    amount: Money
    original_amount: Optional[Money] = Field(None)
    surcharge_amount: Money
    status: str
    due_date: date
    first_due_date: Optional[date] = Field(None)
    second_due_date: Optional[date] = Field(None)
    paid_at: Optional[datetime] = Field(None)
    payment_method: Optional[str] = Field(None)
    receipt_url: Optional[str] = Field(None)
    payment_details: Optional[Dict[str, Any]] = Field(None)
    period: Optional[str] = Field(None)
    notes: Optional[str] = Field(None)
    internal_notes: Optional[str] = Field(None)
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OrganizationBillingSummaryRead(BaseModel):
    """Per-organization debt snapshot."""
    organization_id: UUID
    name: str
    status: str
    royalty_percentage: Decimal
    total_debt: Money
    overdue_count: int
    pending_count: int

    class Config:
        from_attributes = True


class ClosingRequest(BaseModel):
    """Monthly closing trigger."""
    period: Optional[str] = Field(None, description="YYYY-MM; defaults to the current month")


class ClosingFailure(BaseModel):
    organization_id: UUID
    message: str


class ClosingReportRead(BaseModel):
    """Outcome of a monthly closing run."""
    message: str
    period: str
    as_of: date
    organizations_processed: int
    created_record_ids: List[UUID] = Field(default_factory=list)
    already_closed: List[UUID] = Field(default_factory=list)
    marked_overdue: int = 0
    surcharged: int = 0
    failures: List[ClosingFailure] = Field(default_factory=list)
    cancelled: bool = False

    class Config:
        from_attributes = True
