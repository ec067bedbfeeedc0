import logging
from upstash_redis import Redis
from typing import Optional

from musiccollab.config import settings


logger = logging.getLogger(__name__)

SWIPE_WINDOW_SECONDS = 86400

# Shared Upstash client, created in the app lifespan
redis_client: Optional[Redis] = None


async def init_redis():
    """Create the Upstash REST client."""
    global redis_client
    redis_client = Redis(
        url=settings.UPSTASH_REDIS_URL,
        token=settings.UPSTASH_REDIS_TOKEN,
    )
    logger.info("Redis (Upstash) client ready, key prefix %r", settings.REDIS_KEY_PREFIX)


async def close_redis():
    """Drop the client; Upstash is HTTP based so there is no socket to close."""
    global redis_client
    redis_client = None
    logger.info("Redis client released")


def get_redis() -> Redis:
    if redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return redis_client


def redis_key(*parts: str) -> str:
    """Namespaced key, e.g. ``musiccollab:session:<user id>``."""
    return ":".join([settings.REDIS_KEY_PREFIX, *parts])


class RedisService:
    """
    Refresh-token sessions and counters for the swipe and auth rate limits.

    Every method issues at most three commands so a swipe stays cheap on the
    Upstash free tier (10k commands/day).
    """

    def __init__(self, client: Optional[Redis] = None):
        self.client = client or get_redis()

    # ==================== Sessions ====================

    async def store_refresh_token(self, user_id: str, token: str) -> None:
        """Keep only the latest refresh token per user; it expires with the token."""
        self.client.setex(
            redis_key("session", user_id),
            settings.REFRESH_TOKEN_EXPIRE_DAYS * 86400,
            token,
        )

    async def get_refresh_token(self, user_id: str) -> Optional[str]:
        return self.client.get(redis_key("session", user_id))

    async def delete_refresh_token(self, user_id: str) -> None:
        self.client.delete(redis_key("session", user_id))

    # ==================== Counters ====================

    async def check_rate_limit(
        self,
        identifier: str,
        action: str,
        max_attempts: int,
        window_seconds: int
    ) -> tuple[bool, int, int]:
        """
        Fixed-window counter shared by every limit below.

        The window starts at the first attempt and the counter is not
        incremented once the limit is reached.

        Args:
            identifier: Who is being limited (user id, email or ``ip:<addr>``)
            action: Counter name (swipe, login, register)
            max_attempts: Attempts allowed per window
            window_seconds: Window length

        Returns:
            (is_allowed, remaining_attempts, seconds_until_reset)
        """
        key = redis_key("ratelimit", action, identifier)
        count = self.client.get(key)

        if count is None:
            self.client.setex(key, window_seconds, "1")
            return True, max_attempts - 1, window_seconds

        ttl = self.client.ttl(key)
        reset_seconds = ttl if ttl > 0 else window_seconds
        used = int(count)
        if used >= max_attempts:
            return False, 0, reset_seconds

        self.client.incr(key)
        return True, max_attempts - used - 1, reset_seconds

    async def attempts_used(self, identifier: str, action: str) -> int:
        """Current counter value without consuming an attempt."""
        count = self.client.get(redis_key("ratelimit", action, identifier))
        return int(count) if count is not None else 0

    async def reset_rate_limit(self, identifier: str, action: str) -> None:
        """Clear a counter (e.g. after a successful login)."""
        self.client.delete(redis_key("ratelimit", action, identifier))

    # ==================== Swipes ====================

    async def check_swipe_limit(self, user_id: str) -> tuple[bool, int]:
        """
        Consume one of today's swipes.
        Returns (is_allowed, remaining_swipes).
        """
        allowed, remaining, _ = await self.check_rate_limit(
            identifier=user_id,
            action="swipe",
            max_attempts=settings.SWIPE_LIMIT_PER_DAY,
            window_seconds=SWIPE_WINDOW_SECONDS,
        )
        return allowed, remaining

    async def remaining_swipes(self, user_id: str) -> int:
        used = await self.attempts_used(user_id, "swipe")
        return max(settings.SWIPE_LIMIT_PER_DAY - used, 0)

    # ==================== Auth ====================

    async def check_login_rate_limit(self, identifier: str) -> tuple[bool, int, int]:
        """Applied per email and per ``ip:<addr>``."""
        return await self.check_rate_limit(
            identifier=identifier,
            action="login",
            max_attempts=settings.LOGIN_MAX_ATTEMPTS,
            window_seconds=settings.LOGIN_WINDOW_SECONDS,
        )

    async def check_register_rate_limit(self, ip_address: str) -> tuple[bool, int, int]:
        return await self.check_rate_limit(
            identifier=ip_address,
            action="register",
            max_attempts=settings.REGISTER_MAX_ATTEMPTS,
            window_seconds=settings.REGISTER_WINDOW_SECONDS,
        )
