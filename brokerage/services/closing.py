"""
Monthly closing.

For every active organization, in its own session:

1. Royalty emission: the period's summed master commission becomes one royalty
   billing record, due on ROYALTY_FIRST_DUE_DAY of the following month. A
   royalty record that already exists for the organization and period (in any
   status) means the period is closed; the partial unique index catches runs
   that race each other.
2. Dunning sweep: pending records that are overdue as of the run date are
   stored as overdue; outstanding records past their second due date get the
   late surcharge once.

A failing organization is reported and the run moves on. UnavailableError is
retried with exponential backoff. Cancellation is honoured between
organizations only.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Awaitable, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from brokerage.core.errors import BrokerageError, UnavailableError
from brokerage.core.settings import AppSettings, get_app_settings
from brokerage.db.models import BillingRecord
from brokerage.domain.billing import (
    current_period,
    is_overdue,
    period_bounds,
    royalty_due_dates,
    surcharge_due,
)
from brokerage.domain.commission import to_decimal
from brokerage.domain.enums import AuditAction, BillingStatus, BillingType
from brokerage.repositories.audit import AuditRepository
from brokerage.repositories.billing import PrivilegedBillingRepository, claim_grant
from brokerage.repositories.organizations import OrganizationRepository
from brokerage.repositories.transactions import TransactionRepository

logger = logging.getLogger(__name__)

_BILLING_GRANT = claim_grant(__name__)


@dataclass
class OrganizationClosing:
    organization_id: UUID
    created_record_id: Optional[UUID] = None
    already_closed: bool = False
    marked_overdue: int = 0
    surcharged: int = 0


@dataclass
class ClosingReport:
    period: str
    as_of: date
    organizations_processed: int = 0
    created_record_ids: List[UUID] = field(default_factory=list)
    already_closed: List[UUID] = field(default_factory=list)
    marked_overdue: int = 0
    surcharged: int = 0
    failures: Dict[UUID, str] = field(default_factory=dict)
    cancelled: bool = False
    audit_recorded: bool = True

    def add(self, outcome: OrganizationClosing) -> None:
        self.organizations_processed += 1
        if outcome.created_record_id:
            self.created_record_ids.append(outcome.created_record_id)
        if outcome.already_closed:
            self.already_closed.append(outcome.organization_id)
        self.marked_overdue += outcome.marked_overdue
        self.surcharged += outcome.surcharged

    @property
    def message(self) -> str:
        text = (
            f"Closing {self.period}: {len(self.created_record_ids)} royalty records created, "
            f"{len(self.already_closed)} already closed, {self.marked_overdue} marked overdue, "
            f"{self.surcharged} surcharged, {len(self.failures)} failed"
        )
        if self.cancelled:
            text += " (cancelled before completion)"
        return text

    def as_dict(self) -> dict:
        return {
            "message": self.message,
            "period": self.period,
            "as_of": self.as_of,
            "organizations_processed": self.organizations_processed,
            "created_record_ids": list(self.created_record_ids),
            "already_closed": list(self.already_closed),
            "marked_overdue": self.marked_overdue,
            "surcharged": self.surcharged,
            "failures": [
                {"organization_id": org_id, "message": message} for org_id, message in self.failures.items()
            ],
            "cancelled": self.cancelled,
        }


class MonthlyClosingScheduler:
    """
    Runs the monthly closing. Holds a session factory rather than a session:
    every organization is its own unit of work.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[AppSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.session_factory = session_factory
        self.settings = settings or get_app_settings()
        self._sleep = sleep

    # PUBLIC_INTERFACE
    async def run_close(
        self,
        period: Optional[str] = None,
        *,
        as_of: Optional[date] = None,
        cancel_event: Optional[asyncio.Event] = None,
        actor_id: Optional[UUID] = None,
    ) -> ClosingReport:
        """
        Close `period` (YYYY-MM, default current month) for every active
        organization. Safe to re-run: an organization whose royalty record for
        the period exists gets no second one.
        """
        as_of = as_of or date.today()
        period = period or current_period(as_of)
        start, end = period_bounds(period)
        report = ClosingReport(period=period, as_of=as_of)

        async with self.session_factory() as session:
            organization_ids = await OrganizationRepository(session).list_active_ids()
        logger.info("Monthly closing %s started for %d organizations", period, len(organization_ids))

        for organization_id in organization_ids:
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                logger.warning(
                    "Monthly closing %s cancelled after %d organizations", period, report.organizations_processed
                )
                break
            try:
                outcome = await self._close_with_retry(organization_id, period, start, end, as_of)
            except BrokerageError as exc:
                logger.exception("Closing %s failed for organization %s", period, organization_id)
                report.failures[organization_id] = exc.message
            except Exception:
                logger.exception("Closing %s failed for organization %s", period, organization_id)
                report.failures[organization_id] = "Unexpected error while closing organization"
            else:
                report.add(outcome)

        await self._record_run(report, actor_id)
        logger.info(report.message)
        return report

    async def _close_with_retry(
        self, organization_id: UUID, period: str, start: date, end: date, as_of: date
    ) -> OrganizationClosing:
        attempts = self.settings.CLOSING_MAX_ATTEMPTS
        attempt = 1
        while True:
            try:
                return await self._close_organization(organization_id, period, start, end, as_of)
            except UnavailableError:
                if attempt >= attempts:
                    raise
                delay = self.settings.CLOSING_RETRY_BACKOFF_SECONDS * (2 ** (attempt - 1))
                logger.warning(
                    "Closing %s for organization %s unavailable (attempt %d/%d); retrying in %.2fs",
                    period, organization_id, attempt, attempts, delay,
                )
                await self._sleep(delay)
                attempt += 1

    async def _close_organization(
        self, organization_id: UUID, period: str, start: date, end: date, as_of: date
    ) -> OrganizationClosing:
        outcome = OrganizationClosing(organization_id=organization_id)
        async with self.session_factory() as session:
            billing = PrivilegedBillingRepository(session, _BILLING_GRANT)
            organization = await OrganizationRepository(session).get(organization_id)
            if organization is None or not organization.is_active:
                return outcome

            total = await TransactionRepository(session).master_total_for_period(organization_id, start, end)
            if total > 0:
                await self._emit_royalty(billing, organization.name, organization_id, period, total, outcome)

            await self._sweep(billing, as_of, outcome)
        return outcome

    async def _emit_royalty(
        self,
        billing: PrivilegedBillingRepository,
        organization_name: str,
        organization_id: UUID,
        period: str,
        total: Decimal,
        outcome: OrganizationClosing,
    ) -> None:
        if await billing.royalty_for_period(organization_id, period) is not None:
            outcome.already_closed = True
            return

        first_due, second_due = royalty_due_dates(
            period, self.settings.ROYALTY_FIRST_DUE_DAY, self.settings.ROYALTY_SECOND_DUE_DAY
        )
        record = BillingRecord(
            organization_id=organization_id,
            concept=f"Royalty {period}",
            billing_type=BillingType.ROYALTY.value,
            amount=total,
            original_amount=total,
            surcharge_amount=Decimal("0"),
            status=BillingStatus.PENDING.value,
            due_date=first_due,
            first_due_date=first_due,
            second_due_date=second_due,
            period=period,
            notes=f"Platform royalty for {organization_name}, {period}",
        )
        try:
            await billing.insert(record)
            await billing.commit()
        except IntegrityError:
            # Another run inserted the same (organization, period) royalty first.
            await billing.rollback()
            outcome.already_closed = True
            logger.info("Royalty %s for organization %s already emitted concurrently", period, organization_id)
            return
        outcome.created_record_id = record.id
        logger.info("Royalty %s emitted for organization %s: %s", period, organization_id, total)

    async def _sweep(self, billing: PrivilegedBillingRepository, as_of: date, outcome: OrganizationClosing) -> None:
        surcharge_pct = to_decimal(self.settings.LATE_SURCHARGE_PERCENTAGE)
        for record in await billing.list_outstanding(outcome.organization_id):
            if record.status == BillingStatus.PENDING.value and is_overdue(record, as_of):
                record.status = BillingStatus.OVERDUE.value
                outcome.marked_overdue += 1
            surcharge = surcharge_due(record, as_of, surcharge_pct)
            if surcharge is not None:
                record.surcharge_amount = surcharge
                outcome.surcharged += 1
        if outcome.marked_overdue or outcome.surcharged:
            await billing.commit()

    async def _record_run(self, report: ClosingReport, actor_id: Optional[UUID]) -> None:
        try:
            async with self.session_factory() as session:
                audit = AuditRepository(session)
                await audit.record(
                    AuditAction.CLOSING_RUN,
                    entity_type="closing",
                    actor_id=actor_id,
                    details=report.as_dict(),
                )
                await audit.commit()
        except BrokerageError:
            logger.exception("Could not record audit entry for closing %s", report.period)
            report.audit_recorded = False
