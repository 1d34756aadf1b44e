from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select

from brokerage.db.models import Organization, Profile
from .base import BaseRepository


class OrganizationRepository(BaseRepository):
    """Repository for brokerage organizations."""

    async def get(self, organization_id: UUID) -> Optional[Organization]:
        stmt = select(Organization).where(Organization.id == organization_id)
        return await self.scalar_one_or_none(stmt)

    async def get_by_slug(self, slug: str) -> Optional[Organization]:
        stmt = select(Organization).where(Organization.slug == slug)
        return await self.scalar_one_or_none(stmt)

    async def list(
        self,
        *,
        active_only: bool = False,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Organization]:
        stmt = select(Organization)
        if active_only:
            stmt = stmt.where(Organization.is_active.is_(True))
        if status:
            stmt = stmt.where(Organization.status == status)
        stmt = stmt.order_by(Organization.name.asc(), Organization.id.asc()).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(await self.scalars(stmt))

    async def list_active_ids(self) -> List[UUID]:
        stmt = (
            select(Organization.id)
            .where(Organization.is_active.is_(True))
            .order_by(Organization.name.asc(), Organization.id.asc())
        )
        return list(await self.scalars(stmt))

    async def insert(self, organization: Organization) -> Organization:
        await self.add(organization)
        await self.flush()
        return organization


class ProfileRepository(BaseRepository):
    """Repository for platform admins, brokers and agents."""

    async def get(self, profile_id: UUID) -> Optional[Profile]:
        stmt = select(Profile).where(Profile.id == profile_id)
        return await self.scalar_one_or_none(stmt)

    async def get_by_email(self, email: str) -> Optional[Profile]:
        stmt = select(Profile).where(Profile.email == email)
        return await self.scalar_one_or_none(stmt)

    async def list(
        self,
        *,
        organization_id: Optional[UUID] = None,
        role: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Profile]:
        stmt = select(Profile)
        if organization_id:
            stmt = stmt.where(Profile.organization_id == organization_id)
        if role:
            stmt = stmt.where(Profile.role == role)
        stmt = stmt.order_by(Profile.email.asc()).offset(offset).limit(limit)
        return list(await self.scalars(stmt))

    async def insert(self, profile: Profile) -> Profile:
        await self.add(profile)
        await self.flush()
        return profile
