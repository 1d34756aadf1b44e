"""
Pytest configuration and shared fixtures.

Provides:
- A throwaway SQLite database per test (aiosqlite), schema built from the ORM metadata
- async_sessionmaker and a ready session bound to it
- A Factory for organizations, profiles, billing records, actors and bearer headers
- An httpx AsyncClient over the ASGI app with the database dependencies overridden
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import AsyncGenerator, Dict, Optional

# Set test environment variables before importing the app
os.environ["DATABASE_URL"] = f"sqlite:///{Path(tempfile.gettempdir()) / 'brokerage-unused.db'}"
os.environ["RUN_MIGRATIONS_ON_STARTUP"] = "false"
os.environ["AUTO_SEED"] = "false"
os.environ["CLOSING_SCHEDULE_ENABLED"] = "false"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from brokerage.core.settings import get_app_settings  # noqa: E402
from brokerage.db.config import get_settings  # noqa: E402

get_app_settings.cache_clear()
get_settings.cache_clear()

from brokerage.api.main import app  # noqa: E402
from brokerage.core.deps import get_db_session, get_session_factory  # noqa: E402
from brokerage.core.policy import Actor  # noqa: E402
from brokerage.core.security import create_access_token  # noqa: E402
from brokerage.db.base import Base  # noqa: E402
from brokerage.db.models import BillingRecord, Organization, Profile  # noqa: E402
from brokerage.domain.enums import Role  # noqa: E402


# Per AnyIO testing docs: async fixtures and tests run on the asyncio backend.
@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh file-backed SQLite database; a file so several sessions can share it."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'brokerage.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as s:
        yield s


@dataclass
class Factory:
    """Test data builder. Every helper commits so other sessions see the rows."""

    session: AsyncSession
    _counter: int = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    async def organization(
        self,
        name: Optional[str] = None,
        royalty: Optional[Decimal] = Decimal("10"),
        is_active: bool = True,
        status: str = "active",
    ) -> Organization:
        n = self._next()
        org = Organization(
            name=name or f"Office {n:02d}",
            slug=f"office-{n}",
            royalty_percentage=royalty,
            status=status,
            is_active=is_active,
        )
        self.session.add(org)
        await self.session.commit()
        return org

    async def profile(
        self,
        role: Role = Role.CHILD,
        organization: Optional[Organization] = None,
        split: Optional[Decimal] = None,
        is_active: bool = True,
    ) -> Profile:
        n = self._next()
        profile = Profile(
            email=f"{role.value}{n}@example.com",
            first_name=role.value.capitalize(),
            last_name=str(n),
            role=role.value,
            organization_id=organization.id if organization else None,
            default_split_percentage=split,
            is_active=is_active,
        )
        self.session.add(profile)
        await self.session.commit()
        return profile

    async def billing_record(
        self,
        organization: Organization,
        amount: Decimal = Decimal("100"),
        status: str = "pending",
        due_date: date = date(2024, 6, 10),
        second_due_date: Optional[date] = None,
        billing_type: str = "other",
        period: Optional[str] = None,
        surcharge: Decimal = Decimal("0"),
    ) -> BillingRecord:
        record = BillingRecord(
            organization_id=organization.id,
            concept=f"Charge {self._next()}",
            billing_type=billing_type,
            amount=amount,
            original_amount=amount,
            surcharge_amount=surcharge,
            status=status,
            due_date=due_date,
            first_due_date=due_date,
            second_due_date=second_due_date,
            period=period,
        )
        self.session.add(record)
        await self.session.commit()
        return record

    @staticmethod
    def actor(profile: Profile) -> Actor:
        return Actor(id=profile.id, role=Role(profile.role), organization_id=profile.organization_id)

    @staticmethod
    def headers(profile: Profile) -> Dict[str, str]:
        token = create_access_token(
            subject=str(profile.id),
            role=profile.role,
            organization_id=str(profile.organization_id) if profile.organization_id else None,
        )
        return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def factory(session: AsyncSession) -> Factory:
    return Factory(session)


@dataclass
class World:
    """Two offices, a platform admin, a broker and two agents in the first office, one agent in the second."""

    office: Organization
    other_office: Organization
    god: Profile
    broker: Profile
    agent: Profile
    colleague: Profile
    outsider: Profile


@pytest.fixture
async def world(factory: Factory) -> World:
    office = await factory.organization(name="Alpha Realty", royalty=Decimal("10"))
    other_office = await factory.organization(name="Beta Homes", royalty=Decimal("5"))
    return World(
        office=office,
        other_office=other_office,
        god=await factory.profile(Role.GOD),
        broker=await factory.profile(Role.PARENT, office),
        agent=await factory.profile(Role.CHILD, office),
        colleague=await factory.profile(Role.CHILD, office, split=Decimal("50")),
        outsider=await factory.profile(Role.CHILD, other_office),
    )


@pytest.fixture
async def client(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[httpx.AsyncClient, None]:
    """AsyncClient against the app; each request gets its own session on the test database."""

    async def override_get_db_session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
