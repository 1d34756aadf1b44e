"""
Tests for the role-based authorization policy.
"""

from types import SimpleNamespace
from uuid import uuid4

import pytest

from brokerage.core.errors import ForbiddenError, ValidationError
from brokerage.core.policy import (
    Actor,
    authorize_transaction_mutation,
    require_platform_admin,
    resolve_assignment,
    resolve_scope,
)
from brokerage.domain.enums import Role, ScopeKind

OFFICE = uuid4()
OTHER_OFFICE = uuid4()


def _agent(organization_id=OFFICE, agent_id=None):
    return SimpleNamespace(id=agent_id or uuid4(), organization_id=organization_id)


@pytest.fixture
def god():
    return Actor(id=uuid4(), role=Role.GOD)


@pytest.fixture
def broker():
    return Actor(id=uuid4(), role=Role.PARENT, organization_id=OFFICE)


@pytest.fixture
def agent():
    return Actor(id=uuid4(), role=Role.CHILD, organization_id=OFFICE)


@pytest.mark.unit
class TestResolveScope:
    """Tests for resolve_scope and AccessScope.covers."""

    def test_god_is_unrestricted(self, god):
        scope = resolve_scope(god)

        assert scope.kind is ScopeKind.UNRESTRICTED
        assert scope.covers(OTHER_OFFICE, uuid4())

    def test_broker_sees_own_organization(self, broker):
        scope = resolve_scope(broker)

        assert scope.kind is ScopeKind.ORGANIZATION
        assert scope.covers(OFFICE, uuid4())
        assert not scope.covers(OTHER_OFFICE, uuid4())

    def test_agent_sees_own_deals(self, agent):
        scope = resolve_scope(agent)

        assert scope.kind is ScopeKind.AGENT
        assert scope.covers(OFFICE, agent.id)
        assert not scope.covers(OFFICE, uuid4())

    def test_broker_without_organization_sees_nothing(self):
        scope = resolve_scope(Actor(id=uuid4(), role=Role.PARENT))

        assert not scope.covers(None, uuid4())


@pytest.mark.unit
class TestMutationRights:
    """Tests for authorize_transaction_mutation and require_platform_admin."""

    def test_agent_may_edit_own_transaction(self, agent):
        authorize_transaction_mutation(agent, OFFICE, agent.id)

    def test_agent_may_not_edit_colleague_transaction(self, agent):
        with pytest.raises(ForbiddenError):
            authorize_transaction_mutation(agent, OFFICE, uuid4())

    def test_broker_may_edit_office_transactions(self, broker):
        authorize_transaction_mutation(broker, OFFICE, uuid4())

    def test_broker_may_not_edit_other_office(self, broker):
        with pytest.raises(ForbiddenError):
            authorize_transaction_mutation(broker, OTHER_OFFICE, uuid4())

    def test_platform_admin_only(self, god, broker, agent):
        require_platform_admin(god)
        for actor in (broker, agent):
            with pytest.raises(ForbiddenError):
                require_platform_admin(actor)


@pytest.mark.unit
class TestResolveAssignment:
    """Tests for resolve_assignment."""

    def test_god_defaults_to_agent_organization(self, god):
        assert resolve_assignment(god, None, _agent(OTHER_OFFICE)) == OTHER_OFFICE

    def test_god_may_pick_any_organization(self, god):
        assert resolve_assignment(god, OTHER_OFFICE, _agent(OFFICE)) == OTHER_OFFICE

    def test_god_needs_some_organization(self, god):
        with pytest.raises(ValidationError):
            resolve_assignment(god, None, _agent(None))

    def test_broker_books_for_office_agent(self, broker):
        assert resolve_assignment(broker, None, _agent(OFFICE)) == OFFICE

    def test_broker_cannot_book_foreign_agent(self, broker):
        with pytest.raises(ForbiddenError):
            resolve_assignment(broker, None, _agent(OTHER_OFFICE))

    def test_broker_cannot_target_other_organization(self, broker):
        with pytest.raises(ForbiddenError):
            resolve_assignment(broker, OTHER_OFFICE, _agent(OFFICE))

    def test_agent_books_only_itself(self, agent):
        assert resolve_assignment(agent, None, _agent(OFFICE, agent.id)) == OFFICE
        with pytest.raises(ForbiddenError):
            resolve_assignment(agent, None, _agent(OFFICE))

    def test_actor_without_organization_is_forbidden(self):
        loner = Actor(id=uuid4(), role=Role.CHILD)

        with pytest.raises(ForbiddenError):
            resolve_assignment(loner, None, _agent(None, loner.id))
