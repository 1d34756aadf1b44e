from __future__ import annotations

import logging
from typing import AsyncGenerator, Optional
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from brokerage.core.errors import ForbiddenError, UnauthorizedError
from brokerage.core.logging import actor_id_var, organization_id_var
from brokerage.core.policy import Actor, require_platform_admin
from brokerage.core.security import decode_token
from brokerage.db.session import get_async_session, get_session_factory as _session_factory
from brokerage.domain.enums import Role
from brokerage.repositories.organizations import ProfileRepository

logger = logging.getLogger(__name__)

# Tokens are issued by the identity provider; this API only verifies them.
bearer_scheme = HTTPBearer(auto_error=False)


# PUBLIC_INTERFACE
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield one AsyncSession per request."""
    async for session in get_async_session():
        yield session


# PUBLIC_INTERFACE
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for operations that open their own units of work (monthly closing)."""
    return _session_factory()


# PUBLIC_INTERFACE
async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_db_session),
) -> Actor:
    """
    Resolve the calling profile from the Authorization bearer token.

    The token's `sub` is the profile id. The profile is loaded so role and
    organization always reflect current configuration rather than stale claims.
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Missing bearer token")
    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise UnauthorizedError("Invalid token")

    subject = payload.get("sub")
    try:
        profile_id = UUID(str(subject))
    except ValueError:
        raise UnauthorizedError("Invalid token")

    profile = await ProfileRepository(session).get(profile_id)
    if profile is None:
        raise UnauthorizedError("Profile not found")
    if not profile.is_active:
        raise ForbiddenError("Inactive profile")

    try:
        role = Role(profile.role)
    except ValueError:
        logger.error("Profile %s has unknown role %r", profile.id, profile.role)
        raise ForbiddenError("Profile has no usable role")

    actor = Actor(id=profile.id, role=role, organization_id=profile.organization_id)
    organization_id_var.set(str(actor.organization_id) if actor.organization_id else None)
    actor_id_var.set(str(actor.id))
    return actor


# PUBLIC_INTERFACE
async def get_platform_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Dependency for routes reserved to the platform administrator."""
    require_platform_admin(actor)
    return actor
