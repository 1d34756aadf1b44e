"""
Transaction ledger: the only writer of transaction rows.

Rates are frozen onto a transaction when it is created. An amend that touches
price, commission %, split % or sides recomputes every derived amount with the
organization's royalty as configured at amend time; any other amend leaves the
amounts alone.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.errors import ConflictError, NotFoundError, ValidationError
from brokerage.core.policy import (
    Actor,
    authorize_transaction_mutation,
    resolve_assignment,
    resolve_scope,
)
from brokerage.core.settings import AppSettings
from brokerage.db.models import Profile, Transaction
from brokerage.domain.commission import calculate_commission, to_decimal, validate_commission_inputs
from brokerage.domain.enums import AuditAction
from brokerage.repositories.organizations import ProfileRepository
from brokerage.repositories.transactions import TransactionFilters, TransactionRepository
from brokerage.schemas.transactions import TransactionCreate
from brokerage.services.base import BaseService
from brokerage.services.rates import RateResolver

logger = logging.getLogger(__name__)

AMENDABLE_FIELDS = frozenset(
    {
        "transaction_date",
        "actual_price",
        "sides",
        "commission_percentage",
        "agent_split_percentage",
        "buyer_name",
        "seller_name",
        "buyer_id",
        "seller_id",
        "notes",
        "custom_property_title",
        "property_id",
        "agent_id",
        "organization_id",
    }
)
RECOMPUTE_FIELDS = ("actual_price", "commission_percentage", "agent_split_percentage", "sides")
_NOT_NULL_FIELDS = ("transaction_date",) + RECOMPUTE_FIELDS


def _snapshot(tx: Transaction) -> Dict[str, Any]:
    return {
        "organization_id": tx.organization_id,
        "agent_id": tx.agent_id,
        "transaction_date": tx.transaction_date,
        "actual_price": tx.actual_price,
        "sides": tx.sides,
        "commission_percentage": tx.commission_percentage,
        "agent_split_percentage": tx.agent_split_percentage,
        "royalty_percentage_at_closure": tx.royalty_percentage_at_closure,
        "gross_commission": tx.gross_commission,
        "master_commission_amount": tx.master_commission_amount,
        "net_commission": tx.net_commission,
        "office_commission_amount": tx.office_commission_amount,
    }


def _differs(field: str, new: Any, old: Any) -> bool:
    if field in RECOMPUTE_FIELDS and new is not None and old is not None:
        return to_decimal(new) != to_decimal(old)
    return new != old


class TransactionLedger(BaseService):
    """Create, amend, delete and list transactions under role-based rules."""

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session, settings)
        self.transactions = TransactionRepository(session)
        self.profiles = ProfileRepository(session)
        self.rates = RateResolver(session, self.settings)

    async def _load_agent(self, agent_id: UUID) -> Profile:
        agent = await self.profiles.get(agent_id)
        if agent is None:
            raise NotFoundError("Agent not found", details={"agent_id": str(agent_id)})
        return agent

    async def _load(self, transaction_id: UUID) -> Transaction:
        tx = await self.transactions.get(transaction_id)
        if tx is None:
            raise NotFoundError("Transaction not found", details={"id": str(transaction_id)})
        return tx

    # PUBLIC_INTERFACE
    async def create(self, request: TransactionCreate, actor: Actor) -> Transaction:
        """
        Close a deal: resolve who it belongs to, freeze current rates onto it
        and store the computed split.
        """
        if request.actual_price is None:
            raise ValidationError("actual_price is required", details={"field": "actual_price"})

        agent = await self._load_agent(request.agent_id or actor.id)
        organization_id = resolve_assignment(actor, request.organization_id, agent)

        sides = request.sides if request.sides is not None else 1
        commission_pct = (
            request.commission_percentage
            if request.commission_percentage is not None
            else to_decimal(self.settings.DEFAULT_COMMISSION_PERCENTAGE)
        )
        royalty_pct = await self.rates.resolve_royalty(organization_id)
        split_pct = await self.rates.resolve_split(agent.id, request.agent_split_percentage)
        validate_commission_inputs(request.actual_price, sides, commission_pct, split_pct, royalty_pct)

        split = calculate_commission(request.actual_price, sides, commission_pct, split_pct, royalty_pct)
        tx = Transaction(
            organization_id=organization_id,
            agent_id=agent.id,
            property_id=request.property_id,
            custom_property_title=request.custom_property_title,
            transaction_date=request.transaction_date or date.today(),
            actual_price=to_decimal(request.actual_price),
            sides=sides,
            commission_percentage=to_decimal(commission_pct),
            agent_split_percentage=split_pct,
            royalty_percentage_at_closure=royalty_pct,
            buyer_name=request.buyer_name,
            seller_name=request.seller_name,
            buyer_id=request.buyer_id,
            seller_id=request.seller_id,
            notes=request.notes,
            **split.as_transaction_fields(),
        )
        await self.transactions.insert(tx)
        await self.audit.record(
            AuditAction.TRANSACTION_CREATED,
            entity_type="transaction",
            entity_id=tx.id,
            actor_id=actor.id,
            organization_id=organization_id,
            details=_snapshot(tx),
        )
        await self.transactions.commit()
        logger.info(
            "Transaction %s created by %s: gross=%s royalty=%s%%",
            tx.id, actor.id, split.gross, royalty_pct,
        )
        return tx

    async def _reassign(self, tx: Transaction, changes: Dict[str, Any], actor: Actor) -> None:
        agent_changed = "agent_id" in changes and changes["agent_id"] != tx.agent_id
        org_changed = "organization_id" in changes and changes["organization_id"] != tx.organization_id
        if not (agent_changed or org_changed):
            changes.pop("agent_id", None)
            changes.pop("organization_id", None)
            return

        if changes.get("agent_id", tx.agent_id) is None:
            raise ValidationError("agent_id cannot be null", details={"field": "agent_id"})
        agent = await self._load_agent(changes.get("agent_id") or tx.agent_id)
        if org_changed:
            requested = changes["organization_id"]
        elif agent_changed:
            requested = None
        else:
            requested = tx.organization_id
        changes["organization_id"] = resolve_assignment(actor, requested, agent)
        changes["agent_id"] = agent.id

    # PUBLIC_INTERFACE
    async def amend(
        self,
        transaction_id: UUID,
        patch: Dict[str, Any],
        actor: Actor,
        expected_version: Optional[int] = None,
    ) -> Transaction:
        """
        Apply an allow-listed patch. Unknown keys are ignored.

        Raises NotFoundError, ForbiddenError, ValidationError, or ConflictError
        when expected_version is stale or a concurrent amend won the race.
        """
        tx = await self._load(transaction_id)
        authorize_transaction_mutation(actor, tx.organization_id, tx.agent_id)
        if expected_version is not None and expected_version != tx.version:
            raise ConflictError(
                "Transaction was modified by someone else",
                details={"expected_version": expected_version, "current_version": tx.version},
            )

        changes = {k: v for k, v in patch.items() if k in AMENDABLE_FIELDS}
        for field in _NOT_NULL_FIELDS:
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be null", details={"field": field})
        await self._reassign(tx, changes, actor)

        before = _snapshot(tx)
        recompute = any(
            field in changes and _differs(field, changes[field], getattr(tx, field))
            for field in RECOMPUTE_FIELDS
        )
        changed = [f for f, v in changes.items() if _differs(f, v, getattr(tx, f))]
        if not changed:
            return tx

        values = {field: changes[field] for field in changed}
        for field in RECOMPUTE_FIELDS:
            if field in values and field != "sides":
                values[field] = to_decimal(values[field])

        # Validate and compute before touching the mapped row.
        if recompute:
            price, sides, commission_pct, split_pct = (
                values.get(field, getattr(tx, field)) for field in RECOMPUTE_FIELDS
            )
            royalty_pct = await self.rates.resolve_royalty(values.get("organization_id", tx.organization_id))
            validate_commission_inputs(price, sides, commission_pct, split_pct, royalty_pct)
            split = calculate_commission(price, sides, commission_pct, split_pct, royalty_pct)
            values.update(split.as_transaction_fields())
            values["royalty_percentage_at_closure"] = royalty_pct

        for field, value in values.items():
            setattr(tx, field, value)

        await self.transactions.flush()
        await self.audit.record(
            AuditAction.TRANSACTION_AMENDED,
            entity_type="transaction",
            entity_id=tx.id,
            actor_id=actor.id,
            organization_id=tx.organization_id,
            details={"fields": sorted(changed), "recomputed": recompute, "before": before},
        )
        await self.transactions.commit()
        logger.info("Transaction %s amended by %s (fields=%s, recomputed=%s)", tx.id, actor.id, changed, recompute)
        return tx

    # PUBLIC_INTERFACE
    async def delete(self, transaction_id: UUID, actor: Actor) -> None:
        """Remove a transaction permanently. The audit entry keeps its last state."""
        tx = await self._load(transaction_id)
        authorize_transaction_mutation(actor, tx.organization_id, tx.agent_id)
        await self.audit.record(
            AuditAction.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=tx.id,
            actor_id=actor.id,
            organization_id=tx.organization_id,
            details=_snapshot(tx),
        )
        await self.transactions.delete(tx)
        await self.transactions.commit()
        logger.info("Transaction %s deleted by %s", transaction_id, actor.id)

    # PUBLIC_INTERFACE
    async def list(self, filters: TransactionFilters, actor: Actor) -> List[Transaction]:
        """Transactions visible to the actor, newest first."""
        if filters.month is not None and not 1 <= filters.month <= 12:
            raise ValidationError("month must be between 1 and 12", details={"field": "month"})
        return await self.transactions.list_scoped(resolve_scope(actor), filters)

    # PUBLIC_INTERFACE
    async def get(self, transaction_id: UUID, actor: Actor) -> Transaction:
        """One transaction; NotFoundError when absent or outside the actor's scope."""
        tx = await self._load(transaction_id)
        if not resolve_scope(actor).covers(tx.organization_id, tx.agent_id):
            raise NotFoundError("Transaction not found", details={"id": str(transaction_id)})
        return tx
