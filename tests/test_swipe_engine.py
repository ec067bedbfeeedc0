import uuid

import pytest

from musiccollab.core.errors import (
    AlreadyDecided,
    InvalidAction,
    StorageConflict,
    TargetNotFound,
    ValidationFailed,
)
from musiccollab.models.user import Relation
from musiccollab.services.profile_store import ProfileStore
from musiccollab.services.swipe_engine import SwipeEngine


class HookedStore(ProfileStore):
    """Runs a coroutine right before the first save, to simulate a racing writer."""

    def __init__(self, db, before_first_save):
        super().__init__(db)
        self.before_first_save = before_first_save

    async def save(self, profile):
        if self.before_first_save is not None:
            hook, self.before_first_save = self.before_first_save, None
            await hook()
        return await super().save(profile)


class ConflictingStore(ProfileStore):
    """Fails the first ``failures`` saves with StorageConflict."""

    def __init__(self, db, failures):
        super().__init__(db)
        self.failures = failures

    async def save(self, profile):
        if self.failures > 0:
            self.failures -= 1
            raise StorageConflict()
        return await super().save(profile)


@pytest.fixture
def swipe_engine(store):
    return SwipeEngine(store)


@pytest.fixture
def new_id(make_profile):
    """Create a profile and return only its id (objects expire on rollback)."""

    async def _new(name: str, **kwargs) -> uuid.UUID:
        return (await make_profile(name=name, **kwargs)).id

    return _new


async def reload(store, *profile_ids):
    return [await store.get(profile_id, refresh=True) for profile_id in profile_ids]


def snapshot(profile):
    return {relation: profile.ids(relation) for relation in Relation}


async def test_like_then_like_back_forms_a_match(new_id, store, swipe_engine):
    a_id, b_id = await new_id("A"), await new_id("B")

    first = await swipe_engine.decide(a_id, b_id, "like")
    assert first.is_match is False
    assert first.is_new_notification is True
    assert first.match_summary is None

    a, b = await reload(store, a_id, b_id)
    assert b.ids(Relation.PENDING_LIKES) == {a_id}
    assert a.ids(Relation.LIKED_BY_ME) == {b_id}

    second = await swipe_engine.decide(b_id, a_id, "like")
    assert second.is_match is True
    assert second.is_new_notification is False
    assert second.match_summary.id == a_id
    assert second.match_summary.name == "A"
    assert [skill.name for skill in second.match_summary.skills] == ["Guitarist"]

    a, b = await reload(store, a_id, b_id)
    assert a.ids(Relation.MATCHED_WITH) == {b_id}
    assert b.ids(Relation.MATCHED_WITH) == {a_id}
    assert a.ids(Relation.PENDING_LIKES) == set()
    assert b.ids(Relation.PENDING_LIKES) == set()


async def test_match_is_order_independent(new_id, store, swipe_engine):
    a1, b1, a2, b2 = [await new_id(name) for name in ("A1", "B1", "A2", "B2")]

    # A -> B -> A
    await swipe_engine.decide(a1, b1, "like")
    await swipe_engine.decide(b1, a1, "like")
    # B -> A -> B
    await swipe_engine.decide(b2, a2, "like")
    await swipe_engine.decide(a2, b2, "like")

    for x_id, y_id in ((a1, b1), (a2, b2)):
        x, y = await reload(store, x_id, y_id)
        assert x.ids(Relation.MATCHED_WITH) == {y_id}
        assert y.ids(Relation.MATCHED_WITH) == {x_id}
        assert x.ids(Relation.LIKED_BY_ME) == {y_id}
        assert y.ids(Relation.LIKED_BY_ME) == {x_id}
        assert not x.ids(Relation.PENDING_LIKES)
        assert not y.ids(Relation.PENDING_LIKES)


async def test_pass_never_creates_a_pending_like(new_id, store, swipe_engine):
    a_id, b_id = await new_id("A"), await new_id("B")

    outcome = await swipe_engine.decide(a_id, b_id, "pass")
    assert outcome.is_match is False
    assert outcome.is_new_notification is False

    a, b = await reload(store, a_id, b_id)
    assert a.ids(Relation.PASSED_BY_ME) == {b_id}
    assert b.ids(Relation.PENDING_LIKES) == set()


async def test_pass_rejects_an_incoming_like(new_id, store, swipe_engine):
    a_id, b_id = await new_id("A"), await new_id("B")

    await swipe_engine.decide(b_id, a_id, "like")
    await swipe_engine.decide(a_id, b_id, "pass")

    a, b = await reload(store, a_id, b_id)
    assert a.ids(Relation.PENDING_LIKES) == set()
    assert a.ids(Relation.MATCHED_WITH) == set()
    assert b.ids(Relation.MATCHED_WITH) == set()
    # B's own decision stands
    assert b.ids(Relation.LIKED_BY_ME) == {a_id}


async def test_pass_removes_stale_pending_entry_on_target(new_id, store, swipe_engine, db):
    a_id, b_id = await new_id("A"), await new_id("B")

    # Left over from an older write path: A sits in B's pending set without a like
    (b,) = await reload(store, b_id)
    b.add(Relation.PENDING_LIKES, a_id)
    await store.save(b)
    await db.commit()

    await swipe_engine.decide(a_id, b_id, "pass")

    a, b = await reload(store, a_id, b_id)
    assert b.ids(Relation.PENDING_LIKES) == set()
    assert a.ids(Relation.PASSED_BY_ME) == {b_id}


@pytest.mark.parametrize(
    "first, second",
    [("like", "like"), ("like", "pass"), ("pass", "like"), ("pass", "pass")],
)
async def test_second_decision_fails_and_changes_nothing(new_id, store, swipe_engine, first, second):
    a_id, b_id = await new_id("A"), await new_id("B")

    await swipe_engine.decide(a_id, b_id, first)
    a, b = await reload(store, a_id, b_id)
    before = (snapshot(a), snapshot(b))

    with pytest.raises(AlreadyDecided):
        await swipe_engine.decide(a_id, b_id, second)

    a, b = await reload(store, a_id, b_id)
    assert (snapshot(a), snapshot(b)) == before


async def test_pass_after_like_keeps_pending_like(new_id, store, swipe_engine):
    a_id, b_id = await new_id("A"), await new_id("B")

    await swipe_engine.decide(a_id, b_id, "like")
    with pytest.raises(AlreadyDecided):
        await swipe_engine.decide(a_id, b_id, "pass")

    (b,) = await reload(store, b_id)
    assert b.ids(Relation.PENDING_LIKES) == {a_id}


async def test_cannot_swipe_on_self(new_id, store, swipe_engine):
    a_id = await new_id("A")

    with pytest.raises(ValidationFailed):
        await swipe_engine.decide(a_id, a_id, "like")

    (a,) = await reload(store, a_id)
    assert all(not ids for ids in snapshot(a).values())


async def test_unknown_target(new_id, swipe_engine):
    a_id = await new_id("A")

    with pytest.raises(TargetNotFound):
        await swipe_engine.decide(a_id, uuid.uuid4(), "like")


async def test_unknown_action(new_id, swipe_engine):
    a_id, b_id = await new_id("A"), await new_id("B")

    with pytest.raises(InvalidAction):
        await swipe_engine.decide(a_id, b_id, "superlike")


async def test_third_party_pass_has_no_cross_effect(new_id, store, swipe_engine):
    a_id, b_id, c_id = await new_id("A"), await new_id("B"), await new_id("C")

    await swipe_engine.decide(a_id, b_id, "like")
    (a,) = await reload(store, a_id)
    a_before = snapshot(a)

    await swipe_engine.decide(c_id, a_id, "pass")

    a, c = await reload(store, a_id, c_id)
    assert snapshot(a) == a_before
    assert c.ids(Relation.PASSED_BY_ME) == {a_id}


# ==================== Concurrency ====================

async def test_racing_mutual_likes_produce_one_match(new_id, db, session_maker):
    a_id, b_id = await new_id("A"), await new_id("B")
    other_outcomes = []

    async def b_likes_a_meanwhile():
        async with session_maker() as other:
            other_engine = SwipeEngine(ProfileStore(other))
            other_outcomes.append(await other_engine.decide(b_id, a_id, "like"))

    engine = SwipeEngine(HookedStore(db, b_likes_a_meanwhile))
    outcome = await engine.decide(a_id, b_id, "like")

    # B's call committed first and left a pending like; A's retry found it
    assert other_outcomes[0].is_new_notification is True
    assert other_outcomes[0].is_match is False
    assert outcome.is_match is True

    a, b = await reload(ProfileStore(db), a_id, b_id)
    assert a.matched_with == [str(b_id)]
    assert b.matched_with == [str(a_id)]
    assert not a.ids(Relation.PENDING_LIKES)
    assert not b.ids(Relation.PENDING_LIKES)


async def test_racing_duplicate_decisions_only_first_succeeds(new_id, db, session_maker):
    a_id, b_id = await new_id("A"), await new_id("B")

    async def same_like_meanwhile():
        async with session_maker() as other:
            await SwipeEngine(ProfileStore(other)).decide(a_id, b_id, "like")

    engine = SwipeEngine(HookedStore(db, same_like_meanwhile))
    with pytest.raises(AlreadyDecided):
        await engine.decide(a_id, b_id, "like")

    a, b = await reload(ProfileStore(db), a_id, b_id)
    assert a.liked_by_me == [str(b_id)]
    assert b.pending_likes == [str(a_id)]


async def test_conflict_is_retried_once(new_id, db):
    a_id, b_id = await new_id("A"), await new_id("B")

    store = ConflictingStore(db, failures=1)
    outcome = await SwipeEngine(store).decide(a_id, b_id, "like")

    assert outcome.is_new_notification is True
    a, b = await reload(store, a_id, b_id)
    assert a.ids(Relation.LIKED_BY_ME) == {b_id}
    assert b.ids(Relation.PENDING_LIKES) == {a_id}


async def test_second_conflict_is_surfaced_without_recording(new_id, db):
    a_id, b_id = await new_id("A"), await new_id("B")

    store = ConflictingStore(db, failures=2)
    with pytest.raises(StorageConflict):
        await SwipeEngine(store).decide(a_id, b_id, "like")

    a, b = await reload(store, a_id, b_id)
    assert a.ids(Relation.LIKED_BY_ME) == set()
    assert b.ids(Relation.PENDING_LIKES) == set()
