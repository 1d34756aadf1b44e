from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class OrganizationCreate(BaseModel):
    """Create organization payload."""
    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1, description="Unique URL-safe key")
    royalty_percentage: Optional[Decimal] = Field(None, description="Platform cut, 0-100")
    status: Optional[str] = Field(None, description="active (default), pending_payment, suspended")


class OrganizationUpdate(BaseModel):
    """Patch; only fields present in the body are applied."""
    name: Optional[str] = Field(None)
    royalty_percentage: Optional[Decimal] = Field(None, description="Applies to future closings only")
    status: Optional[str] = Field(None)
    is_active: Optional[bool] = Field(None)


class OrganizationRead(BaseModel):
    """Organization read model."""
    id: UUID
    name: str
    slug: str
    royalty_percentage: Optional[Decimal] = Field(None)
    status: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProfileCreate(BaseModel):
    """Create profile payload."""
    email: str = Field(..., min_length=3)
    first_name: Optional[str] = Field(None)
    last_name: Optional[str] = Field(None)
    role: str = Field("child", description="god, parent or child")
    organization_id: Optional[UUID] = Field(None)
    default_split_percentage: Optional[Decimal] = Field(None, description="Agent's share, 0-100")


class ProfileUpdate(BaseModel):
    """Patch; only fields present in the body are applied."""
    first_name: Optional[str] = Field(None)
    last_name: Optional[str] = Field(None)
    role: Optional[str] = Field(None)
    organization_id: Optional[UUID] = Field(None)
    default_split_percentage: Optional[Decimal] = Field(None)
    is_active: Optional[bool] = Field(None)


class ProfileRead(BaseModel):
    """Profile read model."""
    id: UUID
    email: str
    first_name: Optional[str] = Field(None)
    last_name: Optional[str] = Field(None)
    role: str
    organization_id: Optional[UUID] = Field(None)
    default_split_percentage: Optional[Decimal] = Field(None)
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
