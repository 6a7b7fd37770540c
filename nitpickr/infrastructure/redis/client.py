"""Redis Client for Nitpickr

Provides async Redis client management for usage counters and the
query cache. Values are stored as JSON.
"""

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

from nitpickr.config.settings import get_settings

logger = logging.getLogger(__name__)


def _decode(value: Optional[str]) -> Any:
    """Parse a stored value as JSON; values not written as JSON come back raw."""
    if value is None:
        return None
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return value


def _encode(value: Any) -> str:
    return json.dumps(value, default=str)


class RedisClient:
    """Async Redis client wrapper"""

    def __init__(self, client: Optional[redis.Redis] = None):
        """Initialize Redis client

        Args:
            client: Optional pre-built connection (tests pass a mock)
        """
        self._client: Optional[redis.Redis] = client

    async def connect(self):
        """Establish Redis connection."""
        if not self._client:
            settings = get_settings()
            self._client = redis.from_url(settings.redis_url, decode_responses=True)
            await self._client.ping()
            logger.info(
                f"Connected to Redis: {settings.redis_host}:{settings.redis_port}/{settings.redis_db}"
            )

    async def disconnect(self):
        """Close Redis connection"""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Disconnected from Redis")

    def get_client(self) -> redis.Redis:
        """Get the underlying Redis client

        Raises:
            RuntimeError: If client not connected
        """
        if not self._client:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store a value, optionally expiring after ``ttl`` seconds."""
        client = self.get_client()
        if ttl:
            await client.setex(key, ttl, _encode(value))
        else:
            await client.set(key, _encode(value))

    async def get(self, key: str) -> Any:
        """Return the decoded value for ``key`` or None."""
        return _decode(await self.get_client().get(key))

    async def increment(self, key: str, by: int = 1) -> int:
        return int(await self.get_client().incrby(key, by))

    async def decrement(self, key: str, by: int = 1) -> int:
        return int(await self.get_client().decrby(key, by))

    async def delete(self, *keys: str) -> int:
        """Delete keys in one round trip; returns how many existed."""
        if not keys:
            return 0
        return int(await self.get_client().delete(*keys))

    async def delete_keys(self, keys: list[str]) -> int:
        return await self.delete(*keys)

    async def expire(self, key: str, ttl: int) -> None:
        await self.get_client().expire(key, ttl)

    async def hset(self, key: str, field: str, value: Any) -> None:
        await self.get_client().hset(key, field, _encode(value))

    async def hget(self, key: str, field: str) -> Any:
        return _decode(await self.get_client().hget(key, field))

    async def hgetall(self, key: str) -> dict[str, Any]:
        values = await self.get_client().hgetall(key)
        return {field: _decode(value) for field, value in values.items()}

    async def keys(self, pattern: str) -> list[str]:
        """Return keys matching ``pattern`` using SCAN instead of KEYS."""
        return [key async for key in self.get_client().scan_iter(match=pattern)]

    async def health_check(self) -> bool:
        """Check Redis connection health

        Returns:
            True if Redis is responsive, False otherwise
        """
        try:
            if not self._client:
                return False
            await self._client.ping()
            return True
        except redis.RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False


# Global Redis client instance
_redis_client: Optional[RedisClient] = None


async def get_redis_client() -> RedisClient:
    """Get or create global Redis client

    Returns:
        Connected RedisClient instance
    """
    global _redis_client
    if not _redis_client:
        _redis_client = RedisClient()
        await _redis_client.connect()
    return _redis_client


async def close_redis_client():
    """Close global Redis client"""
    global _redis_client
    if _redis_client:
        await _redis_client.disconnect()
        _redis_client = None
