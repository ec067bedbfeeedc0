import os

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-musiccollab")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("UPSTASH_REDIS_URL", "https://test.upstash.io")
os.environ.setdefault("UPSTASH_REDIS_TOKEN", "test-token")
os.environ.setdefault("ENVIRONMENT", "test")

import time
import uuid
from functools import lru_cache
from typing import List, Optional

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from musiccollab.core.dependencies import get_redis_service
from musiccollab.core.security import create_access_token, get_password_hash
from musiccollab.db.redis import RedisService
from musiccollab.db.session import Base, get_db
from musiccollab.main import create_app
from musiccollab.models.user import Profile, Skill, User
from musiccollab.services.profile_store import ProfileStore


class FakeRedis:
    """In-memory stand-in for the Upstash client (only the commands we use)."""

    def __init__(self):
        self.data = {}
        self.expiry = {}

    def _alive(self, key):
        deadline = self.expiry.get(key)
        if deadline is not None and deadline < time.time():
            self.data.pop(key, None)
            self.expiry.pop(key, None)
        return key in self.data

    def get(self, key):
        return self.data.get(key) if self._alive(key) else None

    def setex(self, key, seconds, value):
        self.data[key] = str(value)
        self.expiry[key] = time.time() + seconds
        return True

    def incr(self, key):
        value = int(self.get(key) or 0) + 1
        self.data[key] = str(value)
        return value

    def ttl(self, key):
        if not self._alive(key):
            return -2
        deadline = self.expiry.get(key)
        return int(deadline - time.time()) if deadline else -1

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.expiry.pop(key, None)
        return removed

    def ping(self):
        return "PONG"


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'musiccollab.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def store(db):
    return ProfileStore(db)


@lru_cache()
def password_hash() -> str:
    return get_password_hash("secret123")


def build_profile(
    name: str = "Alex",
    age: int = 25,
    city: str = "Austin",
    state: str = "TX",
    skills: Optional[List[str]] = None,
    genres: Optional[List[str]] = None,
    active: bool = True,
    email: Optional[str] = None,
) -> Profile:
    user_id = uuid.uuid4()
    user = User(
        id=user_id,
        email=email or f"{name.lower()}-{user_id.hex[:6]}@example.com",
        password_hash=password_hash(),
    )
    return Profile(
        id=user_id,
        user=user,
        name=name,
        age=age,
        bio="",
        city=city,
        state=state,
        country="USA",
        genres=genres if genres is not None else ["Rock"],
        looking_for=["Band Members"],
        social_links={},
        music_links={},
        profile_pictures=[],
        is_active=active,
        skills=[
            Skill(position=index, name=skill, level="Intermediate", years_of_experience=3)
            for index, skill in enumerate(skills or ["Guitarist"])
        ],
    )


@pytest.fixture
def make_profile(db, store):
    """Create and commit a profile; returns it."""

    async def _make(**kwargs) -> Profile:
        profile = build_profile(**kwargs)
        db.add(profile.user)
        await store.create(profile)
        await db.commit()
        return profile

    return _make


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
async def client(session_maker, fake_redis):
    app = create_app()

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis_service] = lambda: RedisService(client=fake_redis)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


def auth_headers(user_id) -> dict:
    token = create_access_token(data={"sub": str(user_id)})
    return {"Authorization": f"Bearer {token}"}
