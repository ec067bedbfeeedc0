import logging
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from typing import AsyncGenerator

from musiccollab.config import settings


logger = logging.getLogger(__name__)


def normalize_database_url(url: str) -> str:
    """Convert postgres:// and postgresql:// URLs to the asyncpg driver."""
    if url.startswith("postgresql+") or url.startswith("sqlite"):
        return url
    return url.replace("postgresql://", "postgresql+asyncpg://").replace(
        "postgres://", "postgresql+asyncpg://"
    )


database_url = normalize_database_url(settings.DATABASE_URL)

# Pool sizing only applies to server databases
engine_options = {"echo": False, "pool_pre_ping": True}
if database_url.startswith("postgresql"):
    engine_options.update(pool_size=5, max_overflow=10)

engine = create_async_engine(database_url, **engine_options)

# Objects stay usable after commit; the swipe engine re-reads explicitly
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


async def init_db():
    """Create missing tables (users, profiles, skills)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database ready (%s)", engine.dialect.name)


async def close_db():
    await engine.dispose()
    logger.info("Database connection closed")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    One session per request. Routes commit their own writes; anything left
    pending is committed here and an exception rolls the session back.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
