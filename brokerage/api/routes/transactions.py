from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.deps import get_current_actor, get_db_session
from brokerage.core.policy import Actor
from brokerage.repositories.transactions import TransactionFilters
from brokerage.schemas.common import MessageResponse
from brokerage.schemas.transactions import (
    FinancialMetricsRow,
    TransactionAmend,
    TransactionCreate,
    TransactionDelete,
    TransactionRead,
)
from brokerage.services.ledger import TransactionLedger
from brokerage.services.metrics import FinancialMetricsService

router = APIRouter(prefix="/transactions", tags=["Transactions"])


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[TransactionRead],
    summary="List transactions",
    description=(
        "Transactions visible to the caller, newest first. Platform admins see all (optionally one "
        "organization), brokers their organization, agents their own deals."
    ),
)
async def list_transactions(
    organization_id: Optional[UUID] = Query(None),
    agent_id: Optional[UUID] = Query(None),
    property_id: Optional[UUID] = Query(None),
    year: Optional[int] = Query(None, ge=1900, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12, description="Only applied together with year"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
) -> List[TransactionRead]:
    filters = TransactionFilters(
        organization_id=organization_id,
        agent_id=agent_id,
        property_id=property_id,
        year=year,
        month=month,
        limit=limit,
        offset=offset,
    )
    items = await TransactionLedger(session).list(filters, actor)
    return [TransactionRead.model_validate(x) for x in items]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=TransactionRead,
    summary="Close a transaction",
    description="Record a closed deal and freeze its commission split with the current rates.",
)
async def create_transaction(
    payload: TransactionCreate,
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
) -> TransactionRead:
    created = await TransactionLedger(session).create(payload, actor)
    return TransactionRead.model_validate(created)


# PUBLIC_INTERFACE
@router.put(
    "",
    response_model=TransactionRead,
    summary="Amend a transaction",
    description=(
        "Patch allow-listed fields. Changing price, commission %, split % or sides recomputes all "
        "commission amounts with the organization's current royalty."
    ),
)
async def amend_transaction(
    payload: TransactionAmend,
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
) -> TransactionRead:
    amended = await TransactionLedger(session).amend(
        payload.id, payload.patch(), actor, expected_version=payload.expected_version
    )
    return TransactionRead.model_validate(amended)


# PUBLIC_INTERFACE
@router.delete(
    "",
    response_model=MessageResponse,
    summary="Delete a transaction",
    description="Permanently remove a transaction. There is no undo.",
)
async def delete_transaction(
    payload: TransactionDelete = Body(...),
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await TransactionLedger(session).delete(payload.id, actor)
    return MessageResponse(message="Transaction deleted", details={"id": str(payload.id)})


# PUBLIC_INTERFACE
@router.get(
    "/metrics",
    response_model=List[FinancialMetricsRow],
    summary="Financial metrics",
    description="Sales volume and commission totals per organization, agent and month within the caller's scope.",
)
async def transaction_metrics(
    organization_id: Optional[UUID] = Query(None),
    agent_id: Optional[UUID] = Query(None),
    year: Optional[int] = Query(None, ge=1900, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
) -> List[FinancialMetricsRow]:
    filters = TransactionFilters(organization_id=organization_id, agent_id=agent_id, year=year, month=month)
    rows = await FinancialMetricsService(session).compute(filters, actor)
    return [FinancialMetricsRow.model_validate(r) for r in rows]


# PUBLIC_INTERFACE
@router.get(
    "/{transaction_id}",
    response_model=TransactionRead,
    summary="Get transaction",
)
async def get_transaction(
    transaction_id: UUID = Path(...),
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
) -> TransactionRead:
    tx = await TransactionLedger(session).get(transaction_id, actor)
    return TransactionRead.model_validate(tx)
