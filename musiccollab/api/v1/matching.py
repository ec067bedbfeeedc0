from datetime import datetime, timezone
from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from musiccollab.db.redis import RedisService
from musiccollab.core.dependencies import (
    get_current_user,
    get_profile_store,
    get_redis_service,
    get_swipe_engine,
)
from musiccollab.core.errors import RateLimited
from musiccollab.models.user import User, Relation, SkillName
from musiccollab.schemas.match import (
    SwipeCreate,
    SwipeResponse,
    MatchListResponse,
    PendingLikesResponse,
    DiscoverResponse,
)
from musiccollab.schemas.user import ProfilePublic
from musiccollab.services.profile_store import ProfileStore
from musiccollab.services.swipe_engine import SwipeEngine, SwipeAction


router = APIRouter(prefix="/matching", tags=["Matching"])

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _last_seen_key(profile) -> datetime:
    value = profile.last_seen_at
    if value is None:
        return _EPOCH
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


@router.get("/discover", response_model=DiscoverResponse)
async def discover_profiles(
    required_skills: Optional[List[SkillName]] = Query(None),
    local_only: bool = False,
    current_user: User = Depends(get_current_user),
    store: ProfileStore = Depends(get_profile_store),
    redis: RedisService = Depends(get_redis_service),
):
    """
    Get profiles to swipe on (discover deck).
    Excludes:
    - Own profile
    - Already liked or passed profiles
    - Already matched profiles
    - Inactive profiles
    Optionally filters by required skills and by same city/state.
    """
    my_profile = current_user.profile
    excluded_ids = (
        my_profile.decided_ids | my_profile.ids(Relation.MATCHED_WITH) | {my_profile.id}
    )

    profiles = await store.find_candidates(
        excluding=excluded_ids,
        required_skills=[skill.value for skill in required_skills or []],
        near=my_profile if local_only else None,
    )

    remaining = await redis.remaining_swipes(str(current_user.id))

    return DiscoverResponse(
        profiles=[ProfilePublic.from_profile(profile) for profile in profiles],
        remaining_swipes=remaining,
    )


@router.post("/swipe", response_model=SwipeResponse)
async def swipe(
    swipe_data: SwipeCreate,
    current_user: User = Depends(get_current_user),
    engine: SwipeEngine = Depends(get_swipe_engine),
    redis: RedisService = Depends(get_redis_service),
):
    """
    Record a swipe (like or pass).
    If the other user already liked the caller, this creates a match.
    """
    # The engine may roll back and re-read, so keep the plain id
    actor_id = current_user.id

    can_swipe, remaining = await redis.check_swipe_limit(str(actor_id))
    if not can_swipe:
        raise RateLimited("Daily swipe limit reached. Try again tomorrow.")

    outcome = await engine.decide(actor_id, swipe_data.target_id, swipe_data.action)

    return SwipeResponse(
        **outcome.model_dump(),
        message="Liked user" if swipe_data.action == SwipeAction.LIKE.value else "Passed on user",
        remaining_swipes=remaining,
    )


@router.get("/matches", response_model=MatchListResponse)
async def get_matches(
    current_user: User = Depends(get_current_user),
    store: ProfileStore = Depends(get_profile_store),
):
    """Get all matches for current user, most recently seen first."""
    profiles = await store.get_many(current_user.profile.ids(Relation.MATCHED_WITH))
    profiles.sort(key=_last_seen_key, reverse=True)

    return MatchListResponse(
        matches=[ProfilePublic.from_profile(profile) for profile in profiles],
        total=len(profiles),
    )


@router.get("/pending-likes", response_model=PendingLikesResponse)
async def get_pending_likes(
    current_user: User = Depends(get_current_user),
    store: ProfileStore = Depends(get_profile_store),
):
    """Users who liked the current user and have not been answered yet."""
    profiles = await store.get_many(current_user.profile.ids(Relation.PENDING_LIKES))

    return PendingLikesResponse(
        pending_likes=[ProfilePublic.from_profile(profile) for profile in profiles],
        count=len(profiles),
    )
