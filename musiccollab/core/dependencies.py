from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional
import uuid

from musiccollab.db.session import get_db
from musiccollab.db.redis import RedisService
from musiccollab.core.errors import Unauthenticated
from musiccollab.core.security import verify_access_token
from musiccollab.models.user import User
from musiccollab.services.profile_store import ProfileStore
from musiccollab.services.swipe_engine import SwipeEngine


# Security scheme; missing credentials are reported as Unauthenticated below
security = HTTPBearer(auto_error=False)


def resolve_actor(credential: Optional[str]) -> uuid.UUID:
    """Resolve a bearer credential to the acting user's id."""
    if not credential:
        raise Unauthenticated("Not authenticated.")
    return verify_access_token(credential).user_id


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Dependency to get the current authenticated user.
    Validates JWT token and returns the user object with its profile loaded.
    Deactivated profiles still authenticate so they can be reactivated.
    """
    actor_id = resolve_actor(credentials.credentials if credentials else None)

    result = await db.execute(select(User).where(User.id == actor_id))
    user = result.scalar_one_or_none()

    if user is None or user.profile is None:
        raise Unauthenticated("User not found.")

    return user


def get_profile_store(db: AsyncSession = Depends(get_db)) -> ProfileStore:
    """Dependency to get the profile store for this request's session."""
    return ProfileStore(db)


def get_swipe_engine(store: ProfileStore = Depends(get_profile_store)) -> SwipeEngine:
    return SwipeEngine(store)


def get_redis_service() -> RedisService:
    """Dependency to get Redis service."""
    return RedisService()
