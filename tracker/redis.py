"""Redis connection and utilities."""

import json
from typing import Any, Optional

import redis.asyncio as redis
import structlog

from tracker.config import settings

logger = structlog.get_logger()

# Global Redis connection pool
redis_pool: Optional[redis.ConnectionPool] = None
redis_client: Optional[redis.Redis] = None


async def init_redis() -> redis.Redis:
    """Initialize Redis connection pool."""
    global redis_pool, redis_client

    redis_pool = redis.ConnectionPool.from_url(
        settings.redis_url,
        password=settings.redis_password if settings.redis_password else None,
        decode_responses=True,
        max_connections=50,
    )
    redis_client = redis.Redis(connection_pool=redis_pool)

    # Test connection
    await redis_client.ping()

    return redis_client


async def get_redis() -> redis.Redis:
    """Get Redis client dependency."""
    if redis_client is None:
        return await init_redis()
    return redis_client


async def close_redis() -> None:
    """Close Redis connection pool."""
    global redis_pool, redis_client

    if redis_client:
        await redis_client.close()
    if redis_pool:
        await redis_pool.disconnect()

    redis_client = None
    redis_pool = None


class TokenBlacklist:
    """Redis-based token blacklist for invalidated JWTs."""

    PREFIX = "token_blacklist:"

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    async def add(self, jti: str, expires_in: int) -> None:
        """Add a token to the blacklist."""
        if expires_in <= 0:
            return
        await self.redis.setex(f"{self.PREFIX}{jti}", expires_in, "1")

    async def is_blacklisted(self, jti: str) -> bool:
        """Check if a token is blacklisted."""
        return await self.redis.exists(f"{self.PREFIX}{jti}") > 0


class SessionStore:
    """Redis-based session store for refresh tokens."""

    PREFIX = "session:"
    USER_SESSIONS_PREFIX = "user_sessions:"

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    async def create(
        self, session_id: str, user_id: int, refresh_token: str, expires_in: int
    ) -> None:
        """Create a new session."""
        session_key = f"{self.PREFIX}{session_id}"
        user_sessions_key = f"{self.USER_SESSIONS_PREFIX}{user_id}"

        await self.redis.hset(
            session_key,
            mapping={
                "user_id": str(user_id),
                "refresh_token": refresh_token,
            },
        )
        await self.redis.expire(session_key, expires_in)
        await self.redis.sadd(user_sessions_key, session_id)

    async def get(self, session_id: str) -> Optional[dict]:
        """Get session data."""
        data = await self.redis.hgetall(f"{self.PREFIX}{session_id}")
        return data if data else None

    async def exists(self, session_id: str) -> bool:
        """Check whether a session is still alive."""
        return await self.redis.exists(f"{self.PREFIX}{session_id}") > 0

    async def delete(self, session_id: str) -> None:
        """Delete a session."""
        session_key = f"{self.PREFIX}{session_id}"
        session_data = await self.redis.hgetall(session_key)

        if session_data and "user_id" in session_data:
            user_sessions_key = f"{self.USER_SESSIONS_PREFIX}{session_data['user_id']}"
            await self.redis.srem(user_sessions_key, session_id)

        await self.redis.delete(session_key)

    async def delete_all_user_sessions(self, user_id: int) -> int:
        """Delete all sessions for a user (logout all devices)."""
        user_sessions_key = f"{self.USER_SESSIONS_PREFIX}{user_id}"
        session_ids = await self.redis.smembers(user_sessions_key)

        count = 0
        for session_id in session_ids:
            await self.redis.delete(f"{self.PREFIX}{session_id}")
            count += 1

        await self.redis.delete(user_sessions_key)
        return count


class GroupCache:
    """
    Redis-backed cache for derived group data.

    Keys mirror what they hold: `user_groups.<user id>` is the membership
    closure of one user, `group_grant_type_<n>` is the group-to-group edge
    list of one grant type. The cache is an accelerator only; a missing or
    unreachable Redis means the data is recomputed.
    """

    PREFIX = "config:"

    def __init__(self, redis_client: Optional[redis.Redis]):
        self.redis = redis_client

    async def get(self, key: str) -> Optional[Any]:
        if self.redis is None:
            return None
        try:
            raw = await self.redis.get(f"{self.PREFIX}{key}")
        except redis.RedisError as exc:
            logger.warning("group_cache_unavailable", key=key, error=str(exc))
            return None
        if not isinstance(raw, (str, bytes)):
            return None
        return json.loads(raw)

    async def set(self, key: str, data: Any) -> None:
        if self.redis is None:
            return
        try:
            await self.redis.setex(
                f"{self.PREFIX}{key}",
                settings.group_cache_ttl_seconds,
                json.dumps(data),
            )
        except redis.RedisError as exc:
            logger.warning("group_cache_unavailable", key=key, error=str(exc))

    async def clear(self, *keys: str) -> None:
        if self.redis is None or not keys:
            return
        try:
            await self.redis.delete(*(f"{self.PREFIX}{key}" for key in keys))
        except redis.RedisError as exc:
            logger.warning("group_cache_unavailable", keys=list(keys), error=str(exc))

    @staticmethod
    def user_groups_key(user_id: int) -> str:
        return f"user_groups.{user_id}"

    @staticmethod
    def grant_type_key(grant_type: int) -> str:
        return f"group_grant_type_{grant_type}"
