"""
Tests for the rate resolver against the SQLite test database.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from brokerage.core.errors import NotFoundError
from brokerage.core.settings import AppSettings
from brokerage.domain.enums import Role
from brokerage.services.rates import RateResolver


@pytest.mark.integration
class TestResolveRoyalty:
    """Tests for RateResolver.resolve_royalty."""

    @pytest.mark.anyio
    async def test_returns_configured_rate(self, session, factory):
        office = await factory.organization(royalty=Decimal("12.5"))

        assert await RateResolver(session).resolve_royalty(office.id) == Decimal("12.5")

    @pytest.mark.anyio
    async def test_unset_rate_is_zero(self, session, factory):
        office = await factory.organization(royalty=None)

        assert await RateResolver(session).resolve_royalty(office.id) == 0

    @pytest.mark.anyio
    async def test_reads_current_value(self, session, factory):
        office = await factory.organization(royalty=Decimal("10"))
        resolver = RateResolver(session)
        assert await resolver.resolve_royalty(office.id) == 10

        office.royalty_percentage = Decimal("20")
        await session.commit()

        assert await resolver.resolve_royalty(office.id) == 20

    @pytest.mark.anyio
    async def test_unknown_organization(self, session):
        with pytest.raises(NotFoundError):
            await RateResolver(session).resolve_royalty(uuid4())


@pytest.mark.integration
class TestResolveSplit:
    """Tests for RateResolver.resolve_split."""

    @pytest.mark.anyio
    async def test_override_wins(self, session, factory):
        office = await factory.organization()
        agent = await factory.profile(Role.CHILD, office, split=Decimal("50"))

        assert await RateResolver(session).resolve_split(agent.id, Decimal("60")) == 60

    @pytest.mark.anyio
    async def test_override_skips_agent_lookup(self, session):
        assert await RateResolver(session).resolve_split(uuid4(), 30) == 30

    @pytest.mark.anyio
    async def test_profile_default(self, session, factory):
        office = await factory.organization()
        agent = await factory.profile(Role.CHILD, office, split=Decimal("50"))

        assert await RateResolver(session).resolve_split(agent.id) == 50

    @pytest.mark.anyio
    async def test_platform_default(self, session, factory):
        office = await factory.organization()
        agent = await factory.profile(Role.CHILD, office, split=None)
        settings = AppSettings(DEFAULT_SPLIT_PERCENTAGE=40, _env_file=None)

        assert await RateResolver(session, settings).resolve_split(agent.id) == 40

    @pytest.mark.anyio
    async def test_unknown_agent(self, session):
        with pytest.raises(NotFoundError):
            await RateResolver(session).resolve_split(uuid4())
