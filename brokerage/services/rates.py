from __future__ import annotations

from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.errors import NotFoundError
from brokerage.core.settings import AppSettings
from brokerage.domain.commission import Number, to_decimal
from brokerage.repositories.organizations import OrganizationRepository, ProfileRepository
from brokerage.services.base import BaseService


class RateResolver(BaseService):
    """
    Current royalty and split rates.

    Nothing is cached: each call reads the organization or profile as stored
    right now. Freezing a rate onto a transaction is the ledger's job.
    """

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session, settings)
        self.organizations = OrganizationRepository(session)
        self.profiles = ProfileRepository(session)

    # PUBLIC_INTERFACE
    async def resolve_royalty(self, organization_id: UUID) -> Decimal:
        """Platform royalty % of an organization; 0 when unset."""
        organization = await self.organizations.get(organization_id)
        if organization is None:
            raise NotFoundError("Organization not found", details={"organization_id": str(organization_id)})
        if organization.royalty_percentage is None:
            return Decimal("0")
        return to_decimal(organization.royalty_percentage)

    # PUBLIC_INTERFACE
    async def resolve_split(self, agent_id: UUID, override: Optional[Number] = None) -> Decimal:
        """
        Agent split %: the request override if given, else the agent's
        default_split_percentage, else DEFAULT_SPLIT_PERCENTAGE.
        """
        if override is not None:
            return to_decimal(override)
        agent = await self.profiles.get(agent_id)
        if agent is None:
            raise NotFoundError("Agent not found", details={"agent_id": str(agent_id)})
        if agent.default_split_percentage is not None:
            return to_decimal(agent.default_split_percentage)
        return to_decimal(self.settings.DEFAULT_SPLIT_PERCENTAGE)
