from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional, List
from datetime import datetime
from uuid import UUID

from musiccollab.models.user import SkillName, SkillLevel, Genre, LookingFor


MAX_SKILLS = 5
MAX_PICTURES = 6


# ==================== Profile Parts ====================

class SkillSchema(BaseModel):
    """A skill entry (name/level/years)."""
    name: SkillName
    level: SkillLevel
    years_of_experience: int = Field(0, ge=0, le=50)

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class LocationSchema(BaseModel):
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    country: str = Field(..., min_length=1, max_length=100)


class SocialLinks(BaseModel):
    spotify: str = Field("", max_length=500)
    soundcloud: str = Field("", max_length=500)
    youtube: str = Field("", max_length=500)
    instagram: str = Field("", max_length=500)

    model_config = ConfigDict(extra="forbid")


class MusicLinks(BaseModel):
    """Track/video URLs used for the in-app preview player."""
    spotify_track: str = Field("", max_length=500)
    soundcloud_track: str = Field("", max_length=500)
    youtube_video: str = Field("", max_length=500)

    model_config = ConfigDict(extra="forbid")


def _dedupe(values: list) -> list:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


# ==================== Profile Schemas ====================

class ProfileBase(BaseModel):
    """Base profile fields."""
    name: str = Field(..., min_length=1, max_length=50)
    age: int = Field(..., ge=18, le=100)
    bio: str = Field("", max_length=500)
    location: LocationSchema
    skills: List[SkillSchema] = Field(..., min_length=1, max_length=MAX_SKILLS)
    genres: List[Genre] = []
    looking_for: List[LookingFor] = []
    social_links: SocialLinks = SocialLinks()
    music_links: MusicLinks = MusicLinks()

    model_config = ConfigDict(use_enum_values=True)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be blank")
        return v

    @field_validator("genres", "looking_for")
    @classmethod
    def unique_tags(cls, v):
        # Tag lists behave as sets
        return _dedupe(v)


class ProfileUpdate(BaseModel):
    """Schema for updating a profile (all fields optional)."""
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    age: Optional[int] = Field(None, ge=18, le=100)
    bio: Optional[str] = Field(None, max_length=500)
    location: Optional[LocationSchema] = None
    skills: Optional[List[SkillSchema]] = Field(None, min_length=1, max_length=MAX_SKILLS)
    genres: Optional[List[Genre]] = None
    looking_for: Optional[List[LookingFor]] = None
    profile_pictures: Optional[List[str]] = Field(None, max_length=MAX_PICTURES)
    # Links merge key-wise into the stored values
    social_links: Optional[SocialLinks] = None
    music_links: Optional[MusicLinks] = None

    model_config = ConfigDict(use_enum_values=True)

    @field_validator("genres", "looking_for")
    @classmethod
    def unique_tags(cls, v):
        return _dedupe(v) if v is not None else v


class ProfilePublic(BaseModel):
    """Public profile visible to other users (no credentials, no relationship sets)."""
    id: UUID
    name: str
    age: int
    bio: str
    location: LocationSchema
    skills: List[SkillSchema]
    genres: List[str]
    looking_for: List[str]
    social_links: SocialLinks
    music_links: MusicLinks
    profile_pictures: List[str]
    last_seen_at: Optional[datetime] = None

    @classmethod
    def from_profile(cls, profile):
        return cls(
            id=profile.id,
            name=profile.name,
            age=profile.age,
            bio=profile.bio or "",
            location=LocationSchema(**profile.location),
            skills=[SkillSchema.model_validate(skill) for skill in profile.skills],
            genres=profile.genres or [],
            looking_for=profile.looking_for or [],
            social_links=SocialLinks(**(profile.social_links or {})),
            music_links=MusicLinks(**(profile.music_links or {})),
            profile_pictures=profile.profile_pictures or [],
            last_seen_at=profile.last_seen_at,
        )


class ProfileResponse(ProfilePublic):
    """The caller's own profile."""
    email: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_user(cls, user):
        profile = user.profile
        public = ProfilePublic.from_profile(profile)
        return cls(
            **public.model_dump(),
            email=user.email,
            is_active=profile.is_active,
            created_at=profile.created_at,
            updated_at=profile.updated_at,
        )


# ==================== Auth Schemas ====================

class UserRegister(ProfileBase):
    """Registration creates the account and profile together."""
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=100)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.strip().lower()


class UserLogin(BaseModel):
    """Schema for user login."""
    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.strip().lower()


class TokenResponse(BaseModel):
    """Schema for token response."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshTokenRequest(BaseModel):
    """Schema for token refresh."""
    refresh_token: str


class AuthResponse(TokenResponse):
    """Tokens plus the caller's profile."""
    user: ProfileResponse
