"""
Role-based authorization for the ledger and billing operations.

Every operation receives an Actor resolved upstream. The scope decision
(unrestricted / organization / agent) lives here and nowhere else; services ask
this module instead of branching on roles themselves.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

from brokerage.core.errors import ForbiddenError, ValidationError
from brokerage.domain.enums import Role, ScopeKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """Identity descriptor for the caller of an operation."""

    id: UUID
    role: Role
    organization_id: Optional[UUID] = None

    @property
    def is_platform_admin(self) -> bool:
        return self.role is Role.GOD


@dataclass(frozen=True)
class AccessScope:
    """Rows an actor may see or mutate."""

    kind: ScopeKind
    organization_id: Optional[UUID] = None
    agent_id: Optional[UUID] = None

    def covers(self, organization_id: Optional[UUID], agent_id: Optional[UUID]) -> bool:
        if self.kind is ScopeKind.UNRESTRICTED:
            return True
        if self.kind is ScopeKind.ORGANIZATION:
            return self.organization_id is not None and organization_id == self.organization_id
        return agent_id == self.agent_id


# PUBLIC_INTERFACE
def resolve_scope(actor: Actor) -> AccessScope:
    """Map an actor's role to its access scope."""
    if actor.role is Role.GOD:
        return AccessScope(kind=ScopeKind.UNRESTRICTED)
    if actor.role is Role.PARENT:
        return AccessScope(kind=ScopeKind.ORGANIZATION, organization_id=actor.organization_id)
    return AccessScope(kind=ScopeKind.AGENT, agent_id=actor.id, organization_id=actor.organization_id)


# PUBLIC_INTERFACE
def require_platform_admin(actor: Actor) -> None:
    """Billing records and closings belong to the platform administrator only."""
    if not actor.is_platform_admin:
        logger.warning("Platform-admin operation denied to actor=%s role=%s", actor.id, actor.role.value)
        raise ForbiddenError("Only the platform administrator can perform this operation")


# PUBLIC_INTERFACE
def authorize_transaction_mutation(actor: Actor, organization_id: UUID, agent_id: UUID) -> None:
    """
    Owner agent may edit its own records, a broker anything in its organization,
    the platform admin anything.
    """
    if not resolve_scope(actor).covers(organization_id, agent_id):
        raise ForbiddenError("Not allowed to modify this transaction")


# PUBLIC_INTERFACE
def resolve_assignment(
    actor: Actor,
    requested_organization_id: Optional[UUID],
    agent: Any,
) -> UUID:
    """
    Decide the organization a transaction for `agent` is booked under.

    - god: any organization; defaults to the agent's own organization
    - parent: own organization only, and the agent must belong to it
    - child: only itself, in its own organization

    Returns the organization id; raises ForbiddenError or ValidationError.
    """
    if actor.role is Role.GOD:
        organization_id = requested_organization_id or agent.organization_id
        if organization_id is None:
            raise ValidationError("organization_id is required", details={"field": "organization_id"})
        return organization_id

    if actor.organization_id is None:
        raise ForbiddenError("Actor does not belong to an organization")
    if requested_organization_id is not None and requested_organization_id != actor.organization_id:
        raise ForbiddenError("Cannot book transactions for another organization")

    if actor.role is Role.PARENT:
        if agent.organization_id != actor.organization_id:
            raise ForbiddenError("Agent does not belong to your organization")
        return actor.organization_id

    if agent.id != actor.id:
        raise ForbiddenError("Agents can only book their own transactions")
    return actor.organization_id
