from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from brokerage.core.deps import get_db_session, get_platform_admin
from brokerage.core.policy import Actor
from brokerage.schemas.organizations import (
    OrganizationCreate,
    OrganizationRead,
    OrganizationUpdate,
    ProfileCreate,
    ProfileRead,
    ProfileUpdate,
)
from brokerage.services.organizations import OrganizationService

router = APIRouter(prefix="/admin", tags=["Administration"])


# PUBLIC_INTERFACE
@router.get("/organizations", response_model=List[OrganizationRead], summary="List organizations")
async def list_organizations(
    status: Optional[str] = Query(None, description="active | pending_payment | suspended"),
    actor: Actor = Depends(get_platform_admin),
    session: AsyncSession = Depends(get_db_session),
) -> List[OrganizationRead]:
    items = await OrganizationService(session).list_organizations(actor, status=status)
    return [OrganizationRead.model_validate(x) for x in items]


# PUBLIC_INTERFACE
@router.post("/organizations", response_model=OrganizationRead, summary="Create organization")
async def create_organization(
    payload: OrganizationCreate,
    actor: Actor = Depends(get_platform_admin),
    session: AsyncSession = Depends(get_db_session),
) -> OrganizationRead:
    org = await OrganizationService(session).create_organization(payload, actor)
    return OrganizationRead.model_validate(org)


# PUBLIC_INTERFACE
@router.patch(
    "/organizations/{organization_id}",
    response_model=OrganizationRead,
    summary="Update organization",
    description="Royalty changes apply to future closings; existing transactions keep their frozen rate.",
)
async def update_organization(
    payload: OrganizationUpdate,
    organization_id: UUID = Path(...),
    actor: Actor = Depends(get_platform_admin),
    session: AsyncSession = Depends(get_db_session),
) -> OrganizationRead:
    org = await OrganizationService(session).update_organization(
        organization_id, payload.model_dump(exclude_unset=True), actor
    )
    return OrganizationRead.model_validate(org)


# PUBLIC_INTERFACE
@router.get("/profiles", response_model=List[ProfileRead], summary="List profiles")
async def list_profiles(
    organization_id: Optional[UUID] = Query(None),
    role: Optional[str] = Query(None, description="god | parent | child"),
    actor: Actor = Depends(get_platform_admin),
    session: AsyncSession = Depends(get_db_session),
) -> List[ProfileRead]:
    items = await OrganizationService(session).list_profiles(actor, organization_id=organization_id, role=role)
    return [ProfileRead.model_validate(x) for x in items]


# PUBLIC_INTERFACE
@router.post("/profiles", response_model=ProfileRead, summary="Create profile")
async def create_profile(
    payload: ProfileCreate,
    actor: Actor = Depends(get_platform_admin),
    session: AsyncSession = Depends(get_db_session),
) -> ProfileRead:
    profile = await OrganizationService(session).create_profile(payload, actor)
    return ProfileRead.model_validate(profile)


# PUBLIC_INTERFACE
@router.patch("/profiles/{profile_id}", response_model=ProfileRead, summary="Update profile")
async def update_profile(
    payload: ProfileUpdate,
    profile_id: UUID = Path(...),
    actor: Actor = Depends(get_platform_admin),
    session: AsyncSession = Depends(get_db_session),
) -> ProfileRead:
    profile = await OrganizationService(session).update_profile(
        profile_id, payload.model_dump(exclude_unset=True), actor
    )
    return ProfileRead.model_validate(profile)
