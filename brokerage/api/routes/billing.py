from __future__ import annotations

from datetime import date
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from brokerage.core.deps import get_db_session, get_platform_admin, get_session_factory
from brokerage.core.policy import Actor
from brokerage.schemas.billing import (
    BillingRecordCreate,
    BillingRecordRead,
    BillingRecordUpdate,
    ClosingReportRead,
    ClosingRequest,
    OrganizationBillingSummaryRead,
)
from brokerage.services.billing import BillingRecordManager
from brokerage.services.closing import MonthlyClosingScheduler

router = APIRouter(prefix="/admin/billing", tags=["Billing"])


# PUBLIC_INTERFACE
@router.get(
    "",
    summary="List billing records",
    description=(
        "Billing records of one organization, or the most recent records platform-wide "
        "(bounded by BILLING_LIST_LIMIT). With mode=summary returns the per-organization debt summary."
    ),
    response_model=None,
)
async def list_billing_records(
    mode: Optional[str] = Query(None, description="'summary' for the per-organization summary"),
    organization_id: Optional[UUID] = Query(None),
    status: Optional[str] = Query(None, description="pending | paid | overdue | cancelled"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    as_of: Optional[date] = Query(None, description="Summary reference date (default today)"),
    actor: Actor = Depends(get_platform_admin),
    session: AsyncSession = Depends(get_db_session),
) -> List[Any]:
    manager = BillingRecordManager(session)
    if mode == "summary":
        rows = await manager.summary(actor, as_of)
        return [OrganizationBillingSummaryRead.model_validate(r).model_dump(mode="json") for r in rows]
    records = await manager.list(actor, organization_id=organization_id, status=status, limit=limit)
    return [BillingRecordRead.model_validate(r).model_dump(mode="json") for r in records]


# PUBLIC_INTERFACE
@router.get(
    "/summary",
    response_model=List[OrganizationBillingSummaryRead],
    summary="Billing summary",
    description="Outstanding debt, pending and overdue charge counts per organization.",
)
async def billing_summary(
    as_of: Optional[date] = Query(None),
    actor: Actor = Depends(get_platform_admin),
    session: AsyncSession = Depends(get_db_session),
) -> List[OrganizationBillingSummaryRead]:
    rows = await BillingRecordManager(session).summary(actor, as_of)
    return [OrganizationBillingSummaryRead.model_validate(r) for r in rows]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=BillingRecordRead,
    summary="Create billing record",
    description="Manual charge entry. Defaults to a pending royalty charge without surcharge.",
)
async def create_billing_record(
    payload: BillingRecordCreate,
    actor: Actor = Depends(get_platform_admin),
    session: AsyncSession = Depends(get_db_session),
) -> BillingRecordRead:
    record = await BillingRecordManager(session).create(payload, actor)
    return BillingRecordRead.model_validate(record)


# PUBLIC_INTERFACE
@router.put(
    "",
    response_model=BillingRecordRead,
    summary="Update billing record",
    description="Patch status and payment fields. Marking paid without paid_at stamps the current time.",
)
async def update_billing_record(
    payload: BillingRecordUpdate,
    actor: Actor = Depends(get_platform_admin),
    session: AsyncSession = Depends(get_db_session),
) -> BillingRecordRead:
    record = await BillingRecordManager(session).update(payload.id, payload.patch(), actor)
    return BillingRecordRead.model_validate(record)


# PUBLIC_INTERFACE
@router.delete(
    "",
    response_model=BillingRecordRead,
    summary="Cancel billing record",
    description="Sets status=cancelled. Billing records are never physically deleted.",
)
async def cancel_billing_record(
    id: UUID = Query(..., description="Billing record id"),
    actor: Actor = Depends(get_platform_admin),
    session: AsyncSession = Depends(get_db_session),
) -> BillingRecordRead:
    record = await BillingRecordManager(session).cancel(id, actor)
    return BillingRecordRead.model_validate(record)


# PUBLIC_INTERFACE
@router.post(
    "/run-monthly",
    response_model=ClosingReportRead,
    summary="Run monthly closing",
    description=(
        "Emit royalty charges for the period (default current month) and run the dunning sweep. "
        "Re-running a closed period creates nothing new."
    ),
)
async def run_monthly_closing(
    payload: Optional[ClosingRequest] = Body(None),
    actor: Actor = Depends(get_platform_admin),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> ClosingReportRead:
    period = payload.period if payload else None
    report = await MonthlyClosingScheduler(session_factory).run_close(period, actor_id=actor.id)
    return ClosingReportRead.model_validate(report.as_dict())
