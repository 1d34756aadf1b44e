"""
Tests for the transaction ledger.

Tests cover:
- Split computed and rates frozen at creation
- Role rules for booking, amending and deleting
- Amend recomputation with the organization's current royalty
- Optimistic locking (expected_version and concurrent sessions)
- Scoped listing and lookup
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from brokerage.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from brokerage.domain.enums import AuditAction, Role
from brokerage.repositories.audit import AuditRepository
from brokerage.repositories.transactions import TransactionFilters
from brokerage.schemas.transactions import TransactionCreate
from brokerage.services.ledger import TransactionLedger


def _deal(price="100000", day=date(2024, 5, 10), **extra) -> TransactionCreate:
    return TransactionCreate(actual_price=Decimal(price), transaction_date=day, **extra)


@pytest.mark.integration
class TestCreate:
    """Tests for TransactionLedger.create."""

    @pytest.mark.anyio
    async def test_agent_closes_own_deal(self, session, factory, world):
        tx = await TransactionLedger(session).create(_deal(), factory.actor(world.agent))

        assert tx.organization_id == world.office.id
        assert tx.agent_id == world.agent.id
        assert tx.sides == 1
        assert tx.commission_percentage == Decimal("3")
        assert tx.agent_split_percentage == Decimal("45")
        assert tx.royalty_percentage_at_closure == Decimal("10")
        assert tx.gross_commission == Decimal("3000")
        assert tx.master_commission_amount == Decimal("300")
        assert tx.net_commission == Decimal("1350")
        assert tx.office_commission_amount == Decimal("1350")
        assert tx.version == 1

    @pytest.mark.anyio
    async def test_price_is_required(self, session, factory, world):
        with pytest.raises(ValidationError):
            await TransactionLedger(session).create(TransactionCreate(), factory.actor(world.agent))

    @pytest.mark.anyio
    async def test_invalid_percentage_is_rejected(self, session, factory, world):
        with pytest.raises(ValidationError):
            await TransactionLedger(session).create(
                _deal(agent_split_percentage=Decimal("101")), factory.actor(world.agent)
            )

    @pytest.mark.anyio
    async def test_broker_books_for_office_agent_with_profile_split(self, session, factory, world):
        tx = await TransactionLedger(session).create(
            _deal(agent_id=world.colleague.id), factory.actor(world.broker)
        )

        assert tx.agent_id == world.colleague.id
        assert tx.agent_split_percentage == Decimal("50")
        assert tx.net_commission == Decimal("1500")
        assert tx.office_commission_amount == Decimal("1200")

    @pytest.mark.anyio
    async def test_broker_cannot_book_foreign_agent(self, session, factory, world):
        with pytest.raises(ForbiddenError):
            await TransactionLedger(session).create(
                _deal(agent_id=world.outsider.id), factory.actor(world.broker)
            )

    @pytest.mark.anyio
    async def test_agent_cannot_book_for_colleague(self, session, factory, world):
        with pytest.raises(ForbiddenError):
            await TransactionLedger(session).create(
                _deal(agent_id=world.colleague.id), factory.actor(world.agent)
            )

    @pytest.mark.anyio
    async def test_god_books_into_chosen_organization(self, session, factory, world):
        tx = await TransactionLedger(session).create(
            _deal(agent_id=world.outsider.id, organization_id=world.office.id), factory.actor(world.god)
        )

        assert tx.organization_id == world.office.id
        assert tx.royalty_percentage_at_closure == Decimal("10")

    @pytest.mark.anyio
    async def test_unknown_agent(self, session, factory, world):
        with pytest.raises(NotFoundError):
            await TransactionLedger(session).create(_deal(agent_id=uuid4()), factory.actor(world.god))

    @pytest.mark.anyio
    async def test_creation_is_audited(self, session, factory, world):
        tx = await TransactionLedger(session).create(_deal(), factory.actor(world.agent))

        entries = await AuditRepository(session).list_for_entity(tx.id)

        assert [e.action for e in entries] == [AuditAction.TRANSACTION_CREATED.value]
        assert entries[0].actor_id == world.agent.id
        assert Decimal(entries[0].details["master_commission_amount"]) == Decimal("300")


@pytest.mark.integration
class TestAmend:
    """Tests for TransactionLedger.amend."""

    @pytest.mark.anyio
    async def test_frozen_royalty_survives_rate_change(self, session, session_factory, factory, world):
        tx = await TransactionLedger(session).create(_deal(), factory.actor(world.agent))
        world.office.royalty_percentage = Decimal("20")
        await session.commit()

        async with session_factory() as fresh:
            stored = await TransactionLedger(fresh).get(tx.id, factory.actor(world.god))

        assert stored.royalty_percentage_at_closure == Decimal("10")
        assert stored.master_commission_amount == Decimal("300")

    @pytest.mark.anyio
    async def test_notes_only_amend_keeps_amounts(self, session, factory, world):
        ledger = TransactionLedger(session)
        tx = await ledger.create(_deal(), factory.actor(world.agent))
        world.office.royalty_percentage = Decimal("20")
        await session.commit()

        amended = await ledger.amend(tx.id, {"notes": "keys handed over"}, factory.actor(world.agent))

        assert amended.notes == "keys handed over"
        assert amended.royalty_percentage_at_closure == Decimal("10")
        assert amended.master_commission_amount == Decimal("300")
        assert amended.version == 2

    @pytest.mark.anyio
    async def test_price_amend_recomputes_with_current_royalty(self, session, factory, world):
        ledger = TransactionLedger(session)
        tx = await ledger.create(_deal(), factory.actor(world.agent))
        world.office.royalty_percentage = Decimal("20")
        await session.commit()

        amended = await ledger.amend(tx.id, {"actual_price": Decimal("200000")}, factory.actor(world.broker))

        assert amended.royalty_percentage_at_closure == Decimal("20")
        assert amended.gross_commission == Decimal("6000")
        assert amended.master_commission_amount == Decimal("1200")
        assert amended.net_commission == Decimal("2700")
        assert amended.office_commission_amount == Decimal("2100")

    @pytest.mark.anyio
    async def test_unchanged_values_are_a_no_op(self, session, factory, world):
        ledger = TransactionLedger(session)
        tx = await ledger.create(_deal(), factory.actor(world.agent))

        same = await ledger.amend(tx.id, {"actual_price": "100000.00", "sides": 1}, factory.actor(world.agent))

        assert same.version == 1

    @pytest.mark.anyio
    async def test_unknown_fields_are_ignored(self, session, factory, world):
        ledger = TransactionLedger(session)
        tx = await ledger.create(_deal(), factory.actor(world.agent))

        amended = await ledger.amend(
            tx.id, {"gross_commission": Decimal("1"), "notes": "x"}, factory.actor(world.agent)
        )

        assert amended.gross_commission == Decimal("3000")

    @pytest.mark.anyio
    async def test_invalid_amend_leaves_row_untouched(self, session, factory, world):
        ledger = TransactionLedger(session)
        tx = await ledger.create(_deal(), factory.actor(world.agent))

        with pytest.raises(ValidationError):
            await ledger.amend(tx.id, {"agent_split_percentage": Decimal("120")}, factory.actor(world.agent))
        with pytest.raises(ValidationError):
            await ledger.amend(tx.id, {"actual_price": None}, factory.actor(world.agent))

        assert tx.agent_split_percentage == Decimal("45")
        assert tx.net_commission == Decimal("1350")
        assert tx.version == 1

    @pytest.mark.anyio
    async def test_stale_expected_version(self, session, factory, world):
        ledger = TransactionLedger(session)
        tx = await ledger.create(_deal(), factory.actor(world.agent))
        await ledger.amend(tx.id, {"notes": "first"}, factory.actor(world.agent), expected_version=1)

        with pytest.raises(ConflictError):
            await ledger.amend(tx.id, {"notes": "second"}, factory.actor(world.agent), expected_version=1)

    @pytest.mark.anyio
    async def test_concurrent_amend_loses(self, session, session_factory, factory, world):
        tx = await TransactionLedger(session).create(_deal(), factory.actor(world.agent))

        async with session_factory() as other:
            slow = TransactionLedger(other)
            await slow.get(tx.id, factory.actor(world.broker))

            await TransactionLedger(session).amend(tx.id, {"notes": "winner"}, factory.actor(world.agent))

            with pytest.raises(ConflictError):
                await slow.amend(tx.id, {"notes": "loser"}, factory.actor(world.broker))

    @pytest.mark.anyio
    async def test_agent_cannot_amend_colleague_deal(self, session, factory, world):
        ledger = TransactionLedger(session)
        tx = await ledger.create(_deal(), factory.actor(world.colleague))

        with pytest.raises(ForbiddenError):
            await ledger.amend(tx.id, {"notes": "mine now"}, factory.actor(world.agent))

    @pytest.mark.anyio
    async def test_foreign_broker_cannot_amend(self, session, factory, world):
        other_broker = await factory.profile(Role.PARENT, world.other_office)
        ledger = TransactionLedger(session)
        tx = await ledger.create(_deal(), factory.actor(world.agent))

        with pytest.raises(ForbiddenError):
            await ledger.amend(tx.id, {"notes": "x"}, factory.actor(other_broker))

    @pytest.mark.anyio
    async def test_broker_reassigns_within_office(self, session, factory, world):
        ledger = TransactionLedger(session)
        tx = await ledger.create(_deal(), factory.actor(world.agent))

        amended = await ledger.amend(tx.id, {"agent_id": world.colleague.id}, factory.actor(world.broker))

        assert amended.agent_id == world.colleague.id
        assert amended.organization_id == world.office.id
        assert amended.net_commission == Decimal("1350")

    @pytest.mark.anyio
    async def test_broker_cannot_move_deal_to_other_office(self, session, factory, world):
        ledger = TransactionLedger(session)
        tx = await ledger.create(_deal(), factory.actor(world.agent))

        with pytest.raises(ForbiddenError):
            await ledger.amend(tx.id, {"organization_id": world.other_office.id}, factory.actor(world.broker))

    @pytest.mark.anyio
    async def test_amend_is_audited(self, session, factory, world):
        ledger = TransactionLedger(session)
        tx = await ledger.create(_deal(), factory.actor(world.agent))
        await ledger.amend(tx.id, {"sides": 2}, factory.actor(world.agent))

        entries = await AuditRepository(session).list_for_entity(tx.id)
        amended = [e for e in entries if e.action == AuditAction.TRANSACTION_AMENDED.value]

        assert len(amended) == 1
        assert amended[0].details["fields"] == ["sides"]
        assert amended[0].details["recomputed"] is True


@pytest.mark.integration
class TestDeleteListGet:
    """Tests for delete, list and get."""

    @pytest.mark.anyio
    async def test_delete_then_not_found(self, session, factory, world):
        ledger = TransactionLedger(session)
        tx = await ledger.create(_deal(), factory.actor(world.agent))

        await ledger.delete(tx.id, factory.actor(world.broker))

        with pytest.raises(NotFoundError):
            await ledger.get(tx.id, factory.actor(world.god))
        actions = {e.action for e in await AuditRepository(session).list_for_entity(tx.id)}
        assert AuditAction.TRANSACTION_DELETED.value in actions

    @pytest.mark.anyio
    async def test_agent_cannot_delete_colleague_deal(self, session, factory, world):
        ledger = TransactionLedger(session)
        tx = await ledger.create(_deal(), factory.actor(world.colleague))

        with pytest.raises(ForbiddenError):
            await ledger.delete(tx.id, factory.actor(world.agent))

    @pytest.mark.anyio
    async def test_delete_unknown(self, session, factory, world):
        with pytest.raises(NotFoundError):
            await TransactionLedger(session).delete(uuid4(), factory.actor(world.god))

    @pytest.mark.anyio
    async def test_list_is_scoped_by_role(self, session, factory, world):
        ledger = TransactionLedger(session)
        own = await ledger.create(_deal(), factory.actor(world.agent))
        colleague = await ledger.create(_deal(), factory.actor(world.colleague))
        outsider = await ledger.create(_deal(), factory.actor(world.outsider))

        agent_view = await ledger.list(TransactionFilters(), factory.actor(world.agent))
        broker_view = await ledger.list(TransactionFilters(), factory.actor(world.broker))
        god_view = await ledger.list(TransactionFilters(), factory.actor(world.god))

        assert [t.id for t in agent_view] == [own.id]
        assert {t.id for t in broker_view} == {own.id, colleague.id}
        assert {t.id for t in god_view} == {own.id, colleague.id, outsider.id}

    @pytest.mark.anyio
    async def test_list_filters_by_month_newest_first(self, session, factory, world):
        ledger = TransactionLedger(session)
        actor = factory.actor(world.agent)
        early = await ledger.create(_deal(day=date(2024, 5, 2)), actor)
        late = await ledger.create(_deal(day=date(2024, 5, 28)), actor)
        await ledger.create(_deal(day=date(2024, 6, 1)), actor)

        may = await ledger.list(TransactionFilters(year=2024, month=5), actor)
        whole_year = await ledger.list(TransactionFilters(year=2024), actor)
        month_only = await ledger.list(TransactionFilters(month=5), actor)

        assert [t.id for t in may] == [late.id, early.id]
        assert len(whole_year) == 3
        assert len(month_only) == 3

    @pytest.mark.anyio
    async def test_list_rejects_bad_month(self, session, factory, world):
        with pytest.raises(ValidationError):
            await TransactionLedger(session).list(TransactionFilters(year=2024, month=13), factory.actor(world.god))

    @pytest.mark.anyio
    async def test_get_outside_scope_is_not_found(self, session, factory, world):
        ledger = TransactionLedger(session)
        tx = await ledger.create(_deal(), factory.actor(world.outsider))

        with pytest.raises(NotFoundError):
            await ledger.get(tx.id, factory.actor(world.broker))
        assert (await ledger.get(tx.id, factory.actor(world.outsider))).id == tx.id
