"""
Tests for the monthly closing.

Tests cover:
- Royalty emission from the period's master commissions
- Re-running a closed period (sequentially and racing on the unique index)
- Dunning sweep: overdue flip and a one-time late surcharge
- Per-organization failure isolation, retry with backoff, cancellation
"""

import asyncio
from datetime import date
from decimal import Decimal
from typing import List

import pytest
from sqlalchemy import select

from brokerage.core.errors import ConflictError, UnavailableError, ValidationError
from brokerage.core.settings import AppSettings
from brokerage.db.models import BillingRecord
from brokerage.domain.enums import AuditAction
from brokerage.repositories.audit import AuditRepository
from brokerage.repositories.billing import PrivilegedBillingRepository
from brokerage.schemas.transactions import TransactionCreate
from brokerage.services.closing import MonthlyClosingScheduler
from brokerage.services.ledger import TransactionLedger

MAY = "2024-05"


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        CLOSING_MAX_ATTEMPTS=3,
        CLOSING_RETRY_BACKOFF_SECONDS=0.5,
        LATE_SURCHARGE_PERCENTAGE=10,
        ROYALTY_FIRST_DUE_DAY=10,
        ROYALTY_SECOND_DUE_DAY=20,
        _env_file=None,
    )


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


async def _close_deal(session, factory, agent, price: str, day: date) -> None:
    await TransactionLedger(session).create(
        TransactionCreate(actual_price=Decimal(price), transaction_date=day), factory.actor(agent)
    )


async def _royalties(session_factory, organization_id) -> List[BillingRecord]:
    async with session_factory() as fresh:
        stmt = select(BillingRecord).where(
            BillingRecord.organization_id == organization_id, BillingRecord.billing_type == "royalty"
        )
        return list((await fresh.execute(stmt)).scalars())


@pytest.mark.integration
class TestRoyaltyEmission:
    """Royalty records created by run_close."""

    @pytest.mark.anyio
    async def test_emits_period_royalty(self, session, session_factory, factory, world, settings):
        await _close_deal(session, factory, world.agent, "100000", date(2024, 5, 10))
        await _close_deal(session, factory, world.colleague, "200000", date(2024, 5, 31))
        await _close_deal(session, factory, world.agent, "500000", date(2024, 6, 1))

        report = await MonthlyClosingScheduler(session_factory, settings).run_close(MAY, as_of=date(2024, 6, 1))

        [royalty] = await _royalties(session_factory, world.office.id)
        assert report.created_record_ids == [royalty.id]
        assert royalty.amount == Decimal("900")
        assert royalty.original_amount == Decimal("900")
        assert royalty.status == "pending"
        assert royalty.period == MAY
        assert royalty.concept == "Royalty 2024-05"
        assert royalty.first_due_date == royalty.due_date == date(2024, 6, 10)
        assert royalty.second_due_date == date(2024, 6, 20)

    @pytest.mark.anyio
    async def test_organization_without_royalty_due_gets_nothing(self, session_factory, world, settings):
        report = await MonthlyClosingScheduler(session_factory, settings).run_close(MAY, as_of=date(2024, 6, 1))

        assert report.organizations_processed == 2
        assert report.created_record_ids == []
        assert report.already_closed == []
        assert await _royalties(session_factory, world.office.id) == []

    @pytest.mark.anyio
    async def test_inactive_organizations_are_skipped(self, session, session_factory, factory, world, settings):
        await _close_deal(session, factory, world.agent, "100000", date(2024, 5, 10))
        world.office.is_active = False
        await session.commit()

        report = await MonthlyClosingScheduler(session_factory, settings).run_close(MAY, as_of=date(2024, 6, 1))

        assert report.organizations_processed == 1
        assert await _royalties(session_factory, world.office.id) == []

    @pytest.mark.anyio
    async def test_rerun_creates_nothing_new(self, session, session_factory, factory, world, settings):
        await _close_deal(session, factory, world.agent, "100000", date(2024, 5, 10))
        closing = MonthlyClosingScheduler(session_factory, settings)

        first = await closing.run_close(MAY, as_of=date(2024, 6, 1))
        second = await closing.run_close(MAY, as_of=date(2024, 6, 1))

        assert len(first.created_record_ids) == 1
        assert second.created_record_ids == []
        assert second.already_closed == [world.office.id]
        assert len(await _royalties(session_factory, world.office.id)) == 1

    @pytest.mark.anyio
    async def test_cancelled_royalty_still_closes_period(self, session, session_factory, factory, world, settings):
        await _close_deal(session, factory, world.agent, "100000", date(2024, 5, 10))
        await factory.billing_record(world.office, billing_type="royalty", period=MAY, status="cancelled")

        report = await MonthlyClosingScheduler(session_factory, settings).run_close(MAY, as_of=date(2024, 6, 1))

        assert report.already_closed == [world.office.id]
        assert report.created_record_ids == []

    @pytest.mark.anyio
    async def test_losing_a_race_counts_as_closed(
        self, session, session_factory, factory, world, settings, monkeypatch
    ):
        await _close_deal(session, factory, world.agent, "100000", date(2024, 5, 10))
        await factory.billing_record(world.office, billing_type="royalty", period=MAY)

        async def not_seen_yet(self, organization_id, period):
            return None

        monkeypatch.setattr(PrivilegedBillingRepository, "royalty_for_period", not_seen_yet)

        report = await MonthlyClosingScheduler(session_factory, settings).run_close(MAY, as_of=date(2024, 6, 1))

        assert report.failures == {}
        assert report.already_closed == [world.office.id]
        assert len(await _royalties(session_factory, world.office.id)) == 1

    @pytest.mark.anyio
    async def test_malformed_period(self, session_factory, settings):
        with pytest.raises(ValidationError):
            await MonthlyClosingScheduler(session_factory, settings).run_close("May 2024")

    @pytest.mark.anyio
    async def test_run_is_audited(self, session, session_factory, world, settings):
        god_id = world.god.id
        report = await MonthlyClosingScheduler(session_factory, settings).run_close(
            MAY, as_of=date(2024, 6, 1), actor_id=god_id
        )

        entries = await AuditRepository(session).list_by_action(AuditAction.CLOSING_RUN)

        assert report.audit_recorded
        assert len(entries) == 1
        assert entries[0].actor_id == god_id
        assert entries[0].details["period"] == MAY


@pytest.mark.integration
class TestDunningSweep:
    """Overdue flip and late surcharge."""

    @pytest.mark.anyio
    async def test_overdue_then_surcharge_once(self, session, session_factory, factory, world, settings):
        await _close_deal(session, factory, world.agent, "300000", date(2024, 5, 10))
        closing = MonthlyClosingScheduler(session_factory, settings)
        await closing.run_close(MAY, as_of=date(2024, 6, 1))

        on_time = await closing.run_close(MAY, as_of=date(2024, 6, 10))
        late = await closing.run_close(MAY, as_of=date(2024, 6, 15))
        escalated = await closing.run_close(MAY, as_of=date(2024, 6, 21))
        again = await closing.run_close(MAY, as_of=date(2024, 7, 30))

        [royalty] = await _royalties(session_factory, world.office.id)
        assert on_time.marked_overdue == 0
        assert late.marked_overdue == 1
        assert late.surcharged == 0
        assert escalated.surcharged == 1
        assert again.surcharged == 0
        assert royalty.status == "overdue"
        assert royalty.amount == Decimal("900")
        assert royalty.surcharge_amount == Decimal("90")

    @pytest.mark.anyio
    async def test_paid_and_cancelled_records_are_left_alone(self, session_factory, factory, world, settings):
        paid = await factory.billing_record(world.office, status="paid", second_due_date=date(2024, 6, 20))
        cancelled = await factory.billing_record(world.office, status="cancelled", second_due_date=date(2024, 6, 20))

        report = await MonthlyClosingScheduler(session_factory, settings).run_close(MAY, as_of=date(2024, 7, 1))

        assert report.marked_overdue == 0
        assert report.surcharged == 0
        async with session_factory() as fresh:
            for record in (paid, cancelled):
                stored = await fresh.get(BillingRecord, record.id)
                assert stored.surcharge_amount == 0
                assert stored.version == 1

    @pytest.mark.anyio
    async def test_pending_past_second_due_date_flips_and_surcharges(self, session_factory, factory, world, settings):
        await factory.billing_record(
            world.office, amount=Decimal("400"), due_date=date(2024, 6, 10), second_due_date=date(2024, 6, 20)
        )

        report = await MonthlyClosingScheduler(session_factory, settings).run_close(MAY, as_of=date(2024, 7, 1))

        assert report.marked_overdue == 1
        assert report.surcharged == 1


class FlakyClosing(MonthlyClosingScheduler):
    """Closing whose per-organization step fails in scripted ways."""

    def __init__(self, *args, failures=None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.failures = dict(failures or {})
        self.calls: List = []

    async def _close_organization(self, organization_id, *args):
        self.calls.append(organization_id)
        script = self.failures.get(organization_id)
        if script:
            raise script.pop(0)
        return await super()._close_organization(organization_id, *args)


@pytest.mark.integration
class TestResilience:
    """Failure isolation, retry and cancellation."""

    @pytest.mark.anyio
    async def test_failing_organization_does_not_stop_the_run(
        self, session, session_factory, factory, world, settings
    ):
        await _close_deal(session, factory, world.outsider, "100000", date(2024, 5, 10))
        closing = FlakyClosing(
            session_factory, settings, failures={world.office.id: [ConflictError("ledger locked")]}
        )

        report = await closing.run_close(MAY, as_of=date(2024, 6, 1))

        assert report.failures == {world.office.id: "ledger locked"}
        assert len(report.created_record_ids) == 1
        assert report.organizations_processed == 1
        assert "1 failed" in report.message

    @pytest.mark.anyio
    async def test_unexpected_errors_are_reported_generically(self, session_factory, world, settings):
        closing = FlakyClosing(session_factory, settings, failures={world.office.id: [RuntimeError("secret")]})

        report = await closing.run_close(MAY, as_of=date(2024, 6, 1))

        assert report.failures == {world.office.id: "Unexpected error while closing organization"}

    @pytest.mark.anyio
    async def test_unavailable_is_retried_with_backoff(self, session, session_factory, factory, world, settings):
        await _close_deal(session, factory, world.agent, "100000", date(2024, 5, 10))
        sleep = RecordingSleep()
        closing = FlakyClosing(
            session_factory,
            settings,
            sleep=sleep,
            failures={world.office.id: [UnavailableError("timeout"), UnavailableError("timeout")]},
        )

        report = await closing.run_close(MAY, as_of=date(2024, 6, 1))

        assert sleep.delays == [0.5, 1.0]
        assert report.failures == {}
        assert len(report.created_record_ids) == 1

    @pytest.mark.anyio
    async def test_retries_are_bounded(self, session_factory, world, settings):
        sleep = RecordingSleep()
        closing = FlakyClosing(
            session_factory,
            settings,
            sleep=sleep,
            failures={world.office.id: [UnavailableError("Database unavailable") for _ in range(5)]},
        )

        report = await closing.run_close(MAY, as_of=date(2024, 6, 1))

        assert closing.calls.count(world.office.id) == 3
        assert sleep.delays == [0.5, 1.0]
        assert report.failures == {world.office.id: "Database unavailable"}

    @pytest.mark.anyio
    async def test_cancelled_before_start(self, session_factory, world, settings):
        event = asyncio.Event()
        event.set()

        report = await MonthlyClosingScheduler(session_factory, settings).run_close(
            MAY, as_of=date(2024, 6, 1), cancel_event=event
        )

        assert report.cancelled
        assert report.organizations_processed == 0
        assert report.message.endswith("(cancelled before completion)")

    @pytest.mark.anyio
    async def test_cancellation_is_honoured_between_organizations(self, session_factory, world, settings):
        event = asyncio.Event()

        class CancelAfterFirst(MonthlyClosingScheduler):
            async def _close_organization(self, organization_id, *args):
                outcome = await super()._close_organization(organization_id, *args)
                event.set()
                return outcome

        report = await CancelAfterFirst(session_factory, settings).run_close(
            MAY, as_of=date(2024, 6, 1), cancel_event=event
        )

        assert report.cancelled
        assert report.organizations_processed == 1
