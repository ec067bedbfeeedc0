"""
Swipe Reconciliation Engine

The single authoritative state transition for a swipe decision. A decision
touches at most two profiles (actor and target) and both writes happen in one
transaction, target first and actor last, so a failure part-way leaves no
decision recorded for the actor.

State per ordered pair (actor, target):

    Undecided -> Liked | Passed

A like on someone whose like is already pending collapses both directions
into Matched. Match detection is driven only by the pending-likes set: the
second liker always discovers the match inside their own decide() call.
"""

import enum
import logging
import uuid
from typing import Union

from musiccollab.core.errors import (
    AlreadyDecided,
    InvalidAction,
    ProfileNotFound,
    StorageConflict,
    TargetNotFound,
    Unauthenticated,
    ValidationFailed,
)
from musiccollab.models.user import Profile, Relation
from musiccollab.schemas.match import MatchSummary, SwipeOutcome
from musiccollab.schemas.user import SkillSchema
from musiccollab.services.profile_store import ProfileStore


logger = logging.getLogger(__name__)


class SwipeAction(str, enum.Enum):
    LIKE = "like"
    PASS = "pass"


def parse_action(action: Union[str, SwipeAction]) -> SwipeAction:
    try:
        return SwipeAction(action)
    except ValueError:
        raise InvalidAction()


def match_summary(profile: Profile) -> MatchSummary:
    """Public fields of the profile a user just matched with."""
    return MatchSummary(
        id=profile.id,
        name=profile.name,
        profile_pictures=profile.profile_pictures or [],
        skills=[SkillSchema.model_validate(skill) for skill in profile.skills],
    )


class SwipeEngine:
    """Applies like/pass decisions to the two profiles involved."""

    # First attempt plus one internal retry after a storage conflict
    MAX_ATTEMPTS = 2

    def __init__(self, store: ProfileStore):
        self.store = store

    async def decide(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        action: Union[str, SwipeAction],
    ) -> SwipeOutcome:
        """
        Record ``actor_id``'s decision about ``target_id`` and commit it.

        Raises InvalidAction, ValidationFailed (self swipe), TargetNotFound,
        AlreadyDecided, or StorageConflict when a concurrent write wins twice.
        """
        action = parse_action(action)
        if actor_id == target_id:
            raise ValidationFailed("Cannot swipe on yourself.")

        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            try:
                outcome = await self._apply(actor_id, target_id, action, refresh=attempt > 1)
                await self.store.commit()
                return outcome
            except StorageConflict:
                await self.store.rollback()
                if attempt == self.MAX_ATTEMPTS:
                    logger.warning(
                        "Swipe %s -> %s (%s) lost a write race twice",
                        actor_id, target_id, action.value,
                    )
                    raise
                logger.info(
                    "Swipe %s -> %s (%s) hit a storage conflict, re-reading",
                    actor_id, target_id, action.value,
                )

    async def _apply(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        action: SwipeAction,
        refresh: bool,
    ) -> SwipeOutcome:
        try:
            actor = await self.store.get(actor_id, refresh=refresh)
        except ProfileNotFound:
            raise Unauthenticated("User not found.")
        try:
            target = await self.store.get(target_id, refresh=refresh)
        except ProfileNotFound:
            raise TargetNotFound()

        if actor.has_decided(target.id):
            raise AlreadyDecided()

        if action is SwipeAction.PASS:
            return await self._pass(actor, target)
        return await self._like(actor, target)

    async def _pass(self, actor: Profile, target: Profile) -> SwipeOutcome:
        # A stale pending entry of the actor's on the target side is dropped
        if target.discard(Relation.PENDING_LIKES, actor.id):
            await self.store.save(target)

        actor.add(Relation.PASSED_BY_ME, target.id)
        # Passing on someone who liked you rejects their like without telling them
        actor.discard(Relation.PENDING_LIKES, target.id)
        await self.store.save(actor)

        return SwipeOutcome(is_match=False, is_new_notification=False)

    async def _like(self, actor: Profile, target: Profile) -> SwipeOutcome:
        if actor.has(Relation.PENDING_LIKES, target.id):
            # Target liked first: this like completes the match
            target.discard(Relation.PENDING_LIKES, actor.id)
            target.add(Relation.MATCHED_WITH, actor.id)
            await self.store.save(target)

            actor.add(Relation.LIKED_BY_ME, target.id)
            actor.discard(Relation.PENDING_LIKES, target.id)
            actor.add(Relation.MATCHED_WITH, target.id)
            await self.store.save(actor)

            logger.info("Match formed between %s and %s", actor.id, target.id)
            return SwipeOutcome(
                is_match=True,
                is_new_notification=False,
                match_summary=match_summary(target),
            )

        target.add(Relation.PENDING_LIKES, actor.id)
        await self.store.save(target)

        actor.add(Relation.LIKED_BY_ME, target.id)
        await self.store.save(actor)

        return SwipeOutcome(is_match=False, is_new_notification=True)
