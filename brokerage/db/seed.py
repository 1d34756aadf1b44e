"""
Database seeding utilities for a local demo environment.

Seeds:
- Platform administrator (god)
- One brokerage organization (10% royalty)
- A broker (parent) and an agent (child) in that organization

Prints a bearer token per seeded profile so the API can be exercised locally.

Usage:
  python -m brokerage.db.run_migrations upgrade head
  python -m brokerage.db.seed
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Dict, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.security import create_access_token
from brokerage.db.models import Organization, Profile
from brokerage.db.session import get_session_factory
from brokerage.domain.enums import Role

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
async def seed_all() -> Dict[str, str]:
    """
    Seed the database with a minimal organization hierarchy.

    Idempotent: existing rows (matched by slug / email) are reused.
    Returns a mapping of profile email to a freshly minted access token.
    """
    async with get_session_factory()() as session:
        org = await _ensure_organization(session, name="Demo Realty", slug="demo-realty", royalty=Decimal("10"))
        profiles = [
            await _ensure_profile(session, "admin@platform.local", Role.GOD, None, None),
            await _ensure_profile(session, "broker@demo-realty.local", Role.PARENT, org.id, None),
            await _ensure_profile(session, "agent@demo-realty.local", Role.CHILD, org.id, Decimal("50")),
        ]
        await session.commit()

    tokens: Dict[str, str] = {}
    for profile in profiles:
        tokens[profile.email] = create_access_token(
            subject=str(profile.id),
            role=profile.role,
            organization_id=str(profile.organization_id) if profile.organization_id else None,
        )
    logger.info("Seeded %d profiles for organization %s", len(profiles), org.slug)
    return tokens


async def _ensure_organization(session: AsyncSession, name: str, slug: str, royalty: Decimal) -> Organization:
    org = (await session.execute(select(Organization).where(Organization.slug == slug))).scalar_one_or_none()
    if org:
        return org
    org = Organization(name=name, slug=slug, royalty_percentage=royalty, status="active", is_active=True)
    session.add(org)
    await session.flush()
    return org


async def _ensure_profile(
    session: AsyncSession,
    email: str,
    role: Role,
    organization_id: Optional[UUID],
    split: Optional[Decimal],
) -> Profile:
    profile = (await session.execute(select(Profile).where(Profile.email == email))).scalar_one_or_none()
    if profile:
        return profile
    first_name = email.split("@")[0].capitalize()
    profile = Profile(
        email=email,
        first_name=first_name,
        role=role.value,
        organization_id=organization_id,
        default_split_percentage=split,
        is_active=True,
    )
    session.add(profile)
    await session.flush()
    return profile


if __name__ == "__main__":
    from brokerage.core.logging import configure_logging

    configure_logging()
    for email, token in asyncio.run(seed_all()).items():
        print(f"{email}\t{token}")
