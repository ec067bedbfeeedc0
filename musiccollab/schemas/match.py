from pydantic import BaseModel
from typing import Optional, List
from uuid import UUID

from musiccollab.schemas.user import ProfilePublic, SkillSchema


# ==================== Swipe Schemas ====================

class SwipeCreate(BaseModel):
    """Schema for a swipe decision."""
    target_id: UUID
    # Checked by the swipe engine so an unknown action surfaces as invalid_action
    action: str


class MatchSummary(BaseModel):
    """The newly matched user, shown on the "It's a match" screen."""
    id: UUID
    name: str
    profile_pictures: List[str]
    skills: List[SkillSchema]


class SwipeOutcome(BaseModel):
    """Result of a swipe decision."""
    is_match: bool = False
    is_new_notification: bool = False
    match_summary: Optional[MatchSummary] = None


class SwipeResponse(SwipeOutcome):
    """Swipe outcome plus the caller's remaining daily swipes."""
    message: str
    remaining_swipes: int


# ==================== Match Schemas ====================

class MatchListResponse(BaseModel):
    """List of matches."""
    matches: List[ProfilePublic]
    total: int


class PendingLikesResponse(BaseModel):
    """Users who liked the caller and are waiting for a decision."""
    pending_likes: List[ProfilePublic]
    count: int


# ==================== Discover Schemas ====================

class DiscoverResponse(BaseModel):
    """Response for discover endpoint."""
    profiles: List[ProfilePublic]
    remaining_swipes: int
