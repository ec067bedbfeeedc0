from fastapi import APIRouter, Depends, Query
import uuid

from musiccollab.core.dependencies import get_current_user, get_profile_store
from musiccollab.core.errors import ValidationFailed
from musiccollab.models.user import User, Skill, utcnow
from musiccollab.schemas.user import (
    ProfileUpdate,
    ProfileResponse,
    ProfilePublic,
    MAX_PICTURES,
)
from musiccollab.services.profile_store import ProfileStore


router = APIRouter(prefix="/profiles", tags=["Profiles"])


@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(
    current_user: User = Depends(get_current_user),
):
    """Get current user's profile."""
    return ProfileResponse.from_user(current_user)


@router.put("/me", response_model=ProfileResponse)
async def update_profile(
    profile_data: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    store: ProfileStore = Depends(get_profile_store),
):
    """
    Update current user's profile.
    Only provided fields change; social and music links merge key by key.
    """
    profile = current_user.profile
    update_data = profile_data.model_dump(exclude_unset=True)

    location = update_data.pop("location", None)
    if location is not None:
        profile.city = location["city"]
        profile.state = location["state"]
        profile.country = location["country"]

    skills = update_data.pop("skills", None)
    if skills is not None:
        profile.skills = [
            Skill(position=index, **skill) for index, skill in enumerate(skills)
        ]

    for field in ("social_links", "music_links"):
        links = update_data.pop(field, None)
        if links is not None:
            setattr(profile, field, {**(getattr(profile, field) or {}), **links})

    for field, value in update_data.items():
        setattr(profile, field, value)

    profile.updated_at = utcnow()
    await store.save(profile)
    await store.commit()

    return ProfileResponse.from_user(current_user)


@router.post("/me/photos", response_model=ProfileResponse)
async def add_photo(
    photo_url: str = Query(..., min_length=1, max_length=1000),
    current_user: User = Depends(get_current_user),
    store: ProfileStore = Depends(get_profile_store),
):
    """
    Add a picture URL to profile.
    Uploads go to object storage from the client; the API only keeps URLs.
    """
    profile = current_user.profile
    pictures = list(profile.profile_pictures or [])

    if len(pictures) >= MAX_PICTURES:
        raise ValidationFailed(f"Maximum {MAX_PICTURES} profile pictures allowed.")

    pictures.append(photo_url)
    profile.profile_pictures = pictures

    await store.save(profile)
    await store.commit()

    return ProfileResponse.from_user(current_user)


@router.delete("/me/photos/{photo_index}", response_model=ProfileResponse)
async def delete_photo(
    photo_index: int,
    current_user: User = Depends(get_current_user),
    store: ProfileStore = Depends(get_profile_store),
):
    """Delete a picture by index."""
    profile = current_user.profile
    pictures = list(profile.profile_pictures or [])

    if photo_index < 0 or photo_index >= len(pictures):
        raise ValidationFailed("Invalid photo index.")

    pictures.pop(photo_index)
    profile.profile_pictures = pictures

    await store.save(profile)
    await store.commit()

    return ProfileResponse.from_user(current_user)


@router.post("/me/deactivate", response_model=ProfileResponse)
async def deactivate_profile(
    current_user: User = Depends(get_current_user),
    store: ProfileStore = Depends(get_profile_store),
):
    """Hide the profile from discovery. Matches and likes are kept."""
    current_user.profile.is_active = False
    await store.save(current_user.profile)
    await store.commit()
    return ProfileResponse.from_user(current_user)


@router.post("/me/activate", response_model=ProfileResponse)
async def activate_profile(
    current_user: User = Depends(get_current_user),
    store: ProfileStore = Depends(get_profile_store),
):
    """Make a deactivated profile discoverable again."""
    current_user.profile.is_active = True
    await store.save(current_user.profile)
    await store.commit()
    return ProfileResponse.from_user(current_user)


@router.get("/{user_id}", response_model=ProfilePublic)
async def get_user_profile(
    user_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    store: ProfileStore = Depends(get_profile_store),
):
    """Get another user's public profile."""
    profile = await store.get(user_id)
    return ProfilePublic.from_profile(profile)
