"""
Profile Store

Keyed storage of musician profiles on top of an AsyncSession. Writes are
optimistic: every profile row carries a version counter that SQLAlchemy checks
on UPDATE, so a write based on a stale read raises StorageConflict instead of
overwriting a concurrent change.
"""

import logging
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError
from typing import Iterable, List, Optional
import uuid

from musiccollab.config import settings
from musiccollab.core.errors import ProfileNotFound, StorageConflict, ValidationFailed
from musiccollab.models.user import (
    Profile,
    Skill,
    Relation,
    SkillName,
    SkillLevel,
    Genre,
    LookingFor,
)


logger = logging.getLogger(__name__)

MIN_AGE = 18
MAX_AGE = 100
MAX_SKILLS = 5
MAX_PICTURES = 6

# Postgres serialization_failure / deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}

SKILL_NAMES = {item.value for item in SkillName}
SKILL_LEVELS = {item.value for item in SkillLevel}
GENRES = {item.value for item in Genre}
LOOKING_FOR = {item.value for item in LookingFor}


def _is_retryable(error: DBAPIError) -> bool:
    orig = error.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code in RETRYABLE_SQLSTATES


def validate_profile(profile: Profile) -> None:
    """
    Check attribute constraints and relationship-set invariants.
    Raises ValidationFailed listing every problem found.
    """
    problems = []

    if not profile.name or not profile.name.strip() or len(profile.name) > 50:
        problems.append("name must be 1-50 characters")
    if profile.age is None or not MIN_AGE <= profile.age <= MAX_AGE:
        problems.append(f"age must be between {MIN_AGE} and {MAX_AGE}")
    if profile.bio and len(profile.bio) > 500:
        problems.append("bio must be at most 500 characters")
    if not profile.city or not profile.state or not profile.country:
        problems.append("location requires city, state and country")

    skills = list(profile.skills or [])
    if not 1 <= len(skills) <= MAX_SKILLS:
        problems.append(f"must have between 1 and {MAX_SKILLS} skills")
    for skill in skills:
        if skill.name not in SKILL_NAMES:
            problems.append(f"unknown skill: {skill.name}")
        if skill.level not in SKILL_LEVELS:
            problems.append(f"unknown skill level: {skill.level}")
        if not 0 <= (skill.years_of_experience or 0) <= 50:
            problems.append("years of experience must be between 0 and 50")

    unknown_genres = set(profile.genres or []) - GENRES
    if unknown_genres:
        problems.append(f"unknown genres: {', '.join(sorted(unknown_genres))}")
    unknown_tags = set(profile.looking_for or []) - LOOKING_FOR
    if unknown_tags:
        problems.append(f"unknown looking-for tags: {', '.join(sorted(unknown_tags))}")
    if len(profile.profile_pictures or []) > MAX_PICTURES:
        problems.append(f"maximum {MAX_PICTURES} profile pictures allowed")

    # Relationship sets
    if profile.id is not None:
        for relation in Relation:
            if profile.has(relation, profile.id):
                problems.append(f"profile cannot appear in its own {relation.value}")
    liked = profile.ids(Relation.LIKED_BY_ME)
    if liked & profile.ids(Relation.PASSED_BY_ME):
        problems.append("a user cannot be both liked and passed")
    if profile.ids(Relation.MATCHED_WITH) & profile.ids(Relation.PENDING_LIKES):
        problems.append("a matched user cannot also be a pending like")

    if problems:
        raise ValidationFailed("; ".join(problems))


class ProfileStore:
    """Durable keyed storage of profiles."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, profile_id: uuid.UUID, refresh: bool = False) -> Profile:
        """
        Load a profile by id. ``refresh`` forces a re-read of a profile that is
        already in the session (used after a rolled back conflict).
        """
        stmt = select(Profile).where(Profile.id == profile_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        profile = result.scalar_one_or_none()
        if profile is None:
            raise ProfileNotFound()
        return profile

    async def get_many(self, profile_ids: Iterable[uuid.UUID]) -> List[Profile]:
        ids = list(profile_ids)
        if not ids:
            return []
        result = await self.db.execute(select(Profile).where(Profile.id.in_(ids)))
        return list(result.scalars().all())

    async def create(self, profile: Profile) -> Profile:
        """Insert a new profile. Relationship sets start empty."""
        for relation in Relation:
            setattr(profile, relation.value, [])
        if profile.is_active is None:
            profile.is_active = True
        validate_profile(profile)
        self.db.add(profile)
        await self._flush()
        return profile

    async def save(self, profile: Profile) -> Profile:
        """
        Validate and write a profile. Raises ValidationFailed or, if the stored
        version moved since the profile was read, StorageConflict.
        """
        validate_profile(profile)
        self.db.add(profile)
        await self._flush()
        return profile

    async def find_candidates(
        self,
        excluding: Iterable[uuid.UUID],
        required_skills: Optional[Iterable[str]] = None,
        near: Optional[Profile] = None,
        limit: Optional[int] = None,
    ) -> List[Profile]:
        """
        Active profiles not in ``excluding``.

        Optionally restricted to profiles with at least one skill in
        ``required_skills`` and to the same city and state as ``near``. Order
        is unspecified and the result is capped; a short result means the
        candidate pool is exhausted.
        """
        excluded_ids = list(excluding)
        stmt = select(Profile).where(Profile.is_active.is_(True))
        if excluded_ids:
            stmt = stmt.where(Profile.id.not_in(excluded_ids))

        skills = list(required_skills or [])
        if skills:
            stmt = stmt.where(Profile.skills.any(Skill.name.in_(skills)))

        if near is not None:
            stmt = stmt.where(Profile.city == near.city, Profile.state == near.state)

        stmt = stmt.limit(limit or settings.DISCOVER_LIMIT)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def commit(self) -> None:
        try:
            await self.db.commit()
        except StaleDataError as e:
            raise StorageConflict() from e
        except DBAPIError as e:
            if _is_retryable(e):
                raise StorageConflict() from e
            raise

    async def rollback(self) -> None:
        await self.db.rollback()

    async def _flush(self) -> None:
        try:
            await self.db.flush()
        except StaleDataError as e:
            logger.info("Stale profile write: %s", e)
            raise StorageConflict() from e
        except DBAPIError as e:
            if _is_retryable(e):
                logger.info("Retryable database error: %s", e.orig)
                raise StorageConflict() from e
            raise
