"""
Organization and profile administration (platform admin only).

Changing an organization's royalty affects future closings and amends; stored
transactions keep the rate frozen on them.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.errors import ConflictError, NotFoundError, ValidationError
from brokerage.core.policy import Actor, require_platform_admin
from brokerage.core.settings import AppSettings
from brokerage.db.models import Organization, Profile
from brokerage.domain.commission import HUNDRED, to_decimal
from brokerage.domain.enums import AuditAction, OrganizationStatus, Role
from brokerage.repositories.organizations import OrganizationRepository, ProfileRepository
from brokerage.schemas.organizations import OrganizationCreate, ProfileCreate
from brokerage.services.base import BaseService

logger = logging.getLogger(__name__)

ORGANIZATION_FIELDS = frozenset({"name", "royalty_percentage", "status", "is_active"})
PROFILE_FIELDS = frozenset(
    {"first_name", "last_name", "role", "organization_id", "default_split_percentage", "is_active"}
)


def _percentage(value: Any, field: str):
    if value is None:
        return None
    pct = to_decimal(value)
    if pct < 0 or pct > HUNDRED:
        raise ValidationError(f"{field} must be between 0 and 100", details={"field": field})
    return pct


def _enum_value(enum_cls, value: Any, field: str) -> str:
    try:
        return enum_cls(value).value
    except ValueError:
        raise ValidationError(
            f"{field} must be one of {[m.value for m in enum_cls]}", details={"field": field, "value": value}
        )


class OrganizationService(BaseService):
    """Platform-admin maintenance of organizations and profiles."""

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session, settings)
        self.organizations = OrganizationRepository(session)
        self.profiles = ProfileRepository(session)

    async def _commit_unique(self, message: str) -> None:
        try:
            await self.organizations.commit()
        except IntegrityError:
            await self.organizations.rollback()
            raise ConflictError(message)

    # PUBLIC_INTERFACE
    async def list_organizations(self, actor: Actor, status: Optional[str] = None) -> List[Organization]:
        require_platform_admin(actor)
        return await self.organizations.list(status=status)

    # PUBLIC_INTERFACE
    async def create_organization(self, payload: OrganizationCreate, actor: Actor) -> Organization:
        require_platform_admin(actor)
        org = Organization(
            name=payload.name.strip(),
            slug=payload.slug.strip().lower(),
            royalty_percentage=_percentage(payload.royalty_percentage, "royalty_percentage"),
            status=_enum_value(OrganizationStatus, payload.status or OrganizationStatus.ACTIVE.value, "status"),
            is_active=True,
        )
        if await self.organizations.get_by_slug(org.slug) is not None:
            raise ConflictError("Organization slug already in use", details={"slug": org.slug})
        await self.organizations.insert(org)
        await self.audit.record(
            AuditAction.ORGANIZATION_CREATED,
            entity_type="organization",
            entity_id=org.id,
            actor_id=actor.id,
            organization_id=org.id,
            details={"name": org.name, "royalty_percentage": org.royalty_percentage},
        )
        await self._commit_unique("Organization slug already in use")
        logger.info("Organization %s (%s) created", org.id, org.slug)
        return org

    # PUBLIC_INTERFACE
    async def update_organization(self, organization_id: UUID, patch: Dict[str, Any], actor: Actor) -> Organization:
        require_platform_admin(actor)
        org = await self.organizations.get(organization_id)
        if org is None:
            raise NotFoundError("Organization not found", details={"organization_id": str(organization_id)})

        changes = {k: v for k, v in patch.items() if k in ORGANIZATION_FIELDS}
        if "royalty_percentage" in changes:
            changes["royalty_percentage"] = _percentage(changes["royalty_percentage"], "royalty_percentage")
        if "status" in changes:
            changes["status"] = _enum_value(OrganizationStatus, changes["status"], "status")
        for field in ("name", "is_active"):
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be null", details={"field": field})

        before = {k: getattr(org, k) for k in changes}
        for field, value in changes.items():
            setattr(org, field, value)
        await self.organizations.flush()
        await self.audit.record(
            AuditAction.ORGANIZATION_UPDATED,
            entity_type="organization",
            entity_id=org.id,
            actor_id=actor.id,
            organization_id=org.id,
            details={"before": before, "after": changes},
        )
        await self.organizations.commit()
        logger.info("Organization %s updated (fields=%s)", org.id, sorted(changes))
        return org

    async def _check_membership(self, role: str, organization_id: Optional[UUID]) -> None:
        if role != Role.GOD.value and organization_id is None:
            raise ValidationError("organization_id is required for brokers and agents", details={"field": "organization_id"})
        if organization_id is not None and await self.organizations.get(organization_id) is None:
            raise NotFoundError("Organization not found", details={"organization_id": str(organization_id)})

    # PUBLIC_INTERFACE
    async def list_profiles(
        self, actor: Actor, organization_id: Optional[UUID] = None, role: Optional[str] = None
    ) -> List[Profile]:
        require_platform_admin(actor)
        return await self.profiles.list(organization_id=organization_id, role=role)

    # PUBLIC_INTERFACE
    async def create_profile(self, payload: ProfileCreate, actor: Actor) -> Profile:
        require_platform_admin(actor)
        role = _enum_value(Role, payload.role, "role")
        await self._check_membership(role, payload.organization_id)
        email = payload.email.strip().lower()
        if await self.profiles.get_by_email(email) is not None:
            raise ConflictError("Email already registered", details={"email": email})

        profile = Profile(
            email=email,
            first_name=payload.first_name,
            last_name=payload.last_name,
            role=role,
            organization_id=payload.organization_id,
            default_split_percentage=_percentage(payload.default_split_percentage, "default_split_percentage"),
            is_active=True,
        )
        await self.profiles.insert(profile)
        await self.audit.record(
            AuditAction.PROFILE_CREATED,
            entity_type="profile",
            entity_id=profile.id,
            actor_id=actor.id,
            organization_id=profile.organization_id,
            details={"email": email, "role": role},
        )
        await self._commit_unique("Email already registered")
        logger.info("Profile %s (%s) created", profile.id, role)
        return profile

    # PUBLIC_INTERFACE
    async def update_profile(self, profile_id: UUID, patch: Dict[str, Any], actor: Actor) -> Profile:
        require_platform_admin(actor)
        profile = await self.profiles.get(profile_id)
        if profile is None:
            raise NotFoundError("Profile not found", details={"profile_id": str(profile_id)})

        changes = {k: v for k, v in patch.items() if k in PROFILE_FIELDS}
        if "role" in changes:
            changes["role"] = _enum_value(Role, changes["role"], "role")
        if "default_split_percentage" in changes:
            changes["default_split_percentage"] = _percentage(
                changes["default_split_percentage"], "default_split_percentage"
            )
        if "is_active" in changes and changes["is_active"] is None:
            raise ValidationError("is_active cannot be null", details={"field": "is_active"})
        if "role" in changes or "organization_id" in changes:
            await self._check_membership(
                changes.get("role", profile.role), changes.get("organization_id", profile.organization_id)
            )

        for field, value in changes.items():
            setattr(profile, field, value)
        await self.profiles.flush()
        await self.audit.record(
            AuditAction.PROFILE_UPDATED,
            entity_type="profile",
            entity_id=profile.id,
            actor_id=actor.id,
            organization_id=profile.organization_id,
            details={"fields": sorted(changes)},
        )
        await self.profiles.commit()
        logger.info("Profile %s updated (fields=%s)", profile.id, sorted(changes))
        return profile
