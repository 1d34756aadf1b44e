"""
Billing record manager.

Billing records are charges an organization owes the platform. Only the
platform administrator touches them, and they are never deleted: cancel is the
only way out.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.errors import ConflictError, NotFoundError, ValidationError
from brokerage.core.policy import Actor, require_platform_admin
from brokerage.core.settings import AppSettings
from brokerage.db.models import BillingRecord
from brokerage.domain.billing import OrganizationBillingSummary, parse_period
from brokerage.domain.commission import to_decimal
from brokerage.domain.enums import AuditAction, BillingStatus, BillingType
from brokerage.repositories.billing import PrivilegedBillingRepository, claim_grant
from brokerage.repositories.organizations import OrganizationRepository
from brokerage.schemas.billing import BillingRecordCreate
from brokerage.services.base import BaseService
from brokerage.services.summary import BillingSummaryAggregator

logger = logging.getLogger(__name__)

_BILLING_GRANT = claim_grant(__name__)

UPDATABLE_FIELDS = frozenset(
    {"status", "notes", "paid_at", "payment_method", "receipt_url", "internal_notes", "payment_details"}
)


def _require(value: Any, field: str) -> Any:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required", details={"field": field})
    return value


def _parse_enum(enum_cls, value: str, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = [member.value for member in enum_cls]
        raise ValidationError(f"{field} must be one of {allowed}", details={"field": field, "value": value})


class BillingRecordManager(BaseService):
    """Create, update, cancel and list billing records (platform admin only)."""

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session, settings)
        self.records = PrivilegedBillingRepository(session, _BILLING_GRANT)
        self.organizations = OrganizationRepository(session)

    async def _load(self, record_id: UUID) -> BillingRecord:
        record = await self.records.get(record_id)
        if record is None:
            raise NotFoundError("Billing record not found", details={"id": str(record_id)})
        return record

    # PUBLIC_INTERFACE
    async def create(self, charge: BillingRecordCreate, actor: Actor) -> BillingRecord:
        """Enter a charge by hand. Defaults: pending, royalty, surcharge 0."""
        require_platform_admin(actor)
        organization_id = _require(charge.organization_id, "organization_id")
        concept = _require(charge.concept, "concept")
        amount = to_decimal(_require(charge.amount, "amount"))
        due_date = _require(charge.due_date, "due_date")
        if amount <= 0:
            raise ValidationError("amount must be greater than 0", details={"field": "amount"})
        surcharge = to_decimal(charge.surcharge_amount) if charge.surcharge_amount is not None else Decimal("0")
        if surcharge < 0:
            raise ValidationError("surcharge_amount cannot be negative", details={"field": "surcharge_amount"})
        billing_type = _parse_enum(BillingType, charge.billing_type or BillingType.ROYALTY.value, "billing_type")
        if charge.period is not None:
            parse_period(charge.period)

        if await self.organizations.get(organization_id) is None:
            raise NotFoundError("Organization not found", details={"organization_id": str(organization_id)})

        record = BillingRecord(
            organization_id=organization_id,
            concept=concept.strip(),
            billing_type=billing_type.value,
            amount=amount,
            original_amount=to_decimal(charge.original_amount) if charge.original_amount is not None else amount,
            surcharge_amount=surcharge,
            status=BillingStatus.PENDING.value,
            due_date=due_date,
            first_due_date=charge.first_due_date or due_date,
            second_due_date=charge.second_due_date,
            period=charge.period,
            payment_method=charge.payment_method,
            notes=charge.notes,
            internal_notes=charge.internal_notes,
        )
        try:
            await self.records.insert(record)
        except IntegrityError:
            await self.records.rollback()
            raise ConflictError(
                "A royalty charge already exists for this organization and period",
                details={"organization_id": str(organization_id), "period": charge.period},
            )
        await self.audit.record(
            AuditAction.BILLING_CREATED,
            entity_type="billing_record",
            entity_id=record.id,
            actor_id=actor.id,
            organization_id=organization_id,
            details={"concept": record.concept, "amount": amount, "billing_type": record.billing_type},
        )
        await self.records.commit()
        logger.info("Billing record %s created for organization %s: %s", record.id, organization_id, amount)
        return record

    # PUBLIC_INTERFACE
    async def update(self, record_id: UUID, patch: Dict[str, Any], actor: Actor) -> BillingRecord:
        """
        Patch status and payment fields. Marking a record paid without paid_at
        stamps the current time. Cancelled records cannot be changed.
        """
        require_platform_admin(actor)
        record = await self._load(record_id)
        if record.status == BillingStatus.CANCELLED.value:
            raise ConflictError("Cancelled billing records cannot be modified", details={"id": str(record_id)})

        changes = {k: v for k, v in patch.items() if k in UPDATABLE_FIELDS}
        if "status" in changes:
            status = _parse_enum(BillingStatus, _require(changes["status"], "status"), "status")
            if status is BillingStatus.CANCELLED:
                raise ValidationError("Use cancel to cancel a billing record", details={"field": "status"})
            changes["status"] = status.value
            if status is BillingStatus.PAID and changes.get("paid_at") is None:
                changes["paid_at"] = record.paid_at or datetime.now(tz=timezone.utc)
        if changes.get("payment_details") is not None and not isinstance(changes["payment_details"], dict):
            raise ValidationError("payment_details must be an object", details={"field": "payment_details"})

        changed = {k: v for k, v in changes.items() if getattr(record, k) != v}
        if not changed:
            return record
        for field, value in changed.items():
            setattr(record, field, value)
        await self.records.flush()
        await self.audit.record(
            AuditAction.BILLING_UPDATED,
            entity_type="billing_record",
            entity_id=record.id,
            actor_id=actor.id,
            organization_id=record.organization_id,
            details={"fields": sorted(changed), "status": record.status},
        )
        await self.records.commit()
        logger.info("Billing record %s updated (fields=%s)", record.id, sorted(changed))
        return record

    # PUBLIC_INTERFACE
    async def cancel(self, record_id: UUID, actor: Actor) -> BillingRecord:
        """Soft-delete. The record stays queryable; cancelling again is a no-op."""
        require_platform_admin(actor)
        record = await self._load(record_id)
        if record.status == BillingStatus.CANCELLED.value:
            return record
        previous = record.status
        record.status = BillingStatus.CANCELLED.value
        await self.records.flush()
        await self.audit.record(
            AuditAction.BILLING_CANCELLED,
            entity_type="billing_record",
            entity_id=record.id,
            actor_id=actor.id,
            organization_id=record.organization_id,
            details={"previous_status": previous},
        )
        await self.records.commit()
        logger.info("Billing record %s cancelled by %s", record.id, actor.id)
        return record

    # PUBLIC_INTERFACE
    async def list(
        self,
        actor: Actor,
        organization_id: Optional[UUID] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[BillingRecord]:
        """
        All records of one organization, or the most recent records across all
        organizations capped at BILLING_LIST_LIMIT.
        """
        require_platform_admin(actor)
        if status is not None:
            status = _parse_enum(BillingStatus, status, "status").value
        if organization_id is None:
            cap = self.settings.BILLING_LIST_LIMIT
            limit = min(limit, cap) if limit else cap
        return await self.records.list(organization_id=organization_id, status=status, limit=limit)

    # PUBLIC_INTERFACE
    async def summary(self, actor: Actor, as_of: Optional[date] = None) -> List[OrganizationBillingSummary]:
        require_platform_admin(actor)
        return await BillingSummaryAggregator(self.session, self.settings).summarize(as_of)
