"""
Read-through query cache backed by Redis.

Reads for cacheable models are stored under
``cache:{model}:{action}:{json(args)}``; any write to a model drops all
of its cached reads.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as redis

from nitpickr.config.settings import get_settings
from nitpickr.infrastructure.redis import RedisClient

logger = logging.getLogger(__name__)


class QueryCache:
    """Cache query results per model."""

    def __init__(
        self,
        redis_client: RedisClient,
        ttl: Optional[int] = None,
        models: Optional[list[str]] = None,
        enabled: Optional[bool] = None,
    ):
        settings = get_settings()
        self.redis = redis_client
        self.ttl = ttl if ttl is not None else settings.cache_ttl_seconds
        self.models = set(models if models is not None else settings.cache_models)
        self.enabled = enabled if enabled is not None else settings.redis_cache_enabled

    @staticmethod
    def make_key(model: str, action: str, args: Any) -> str:
        return f"cache:{model}:{action}:{json.dumps(args, sort_keys=True, default=str)}"

    def is_cacheable(self, model: str) -> bool:
        return self.enabled and model in self.models

    async def get_or_load(
        self,
        model: str,
        action: str,
        args: Any,
        loader: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Return the cached result for (model, action, args) or run ``loader``.

        Loader results must be JSON serialisable. Redis errors fall back to
        the loader.
        """
        if not self.is_cacheable(model):
            return await loader()

        key = self.make_key(model, action, args)
        try:
            cached = await self.redis.get(key)
        except (redis.RedisError, RuntimeError) as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return await loader()

        if cached is not None:
            logger.debug(f"Cache hit: {key}")
            return cached

        result = await loader()
        try:
            await self.redis.set(key, result, ttl=self.ttl)
        except (redis.RedisError, RuntimeError) as e:
            logger.warning(f"Cache write failed for {key}: {e}")
        return result

    async def invalidate(self, model: str) -> int:
        """Drop every cached read of ``model``; returns the number of keys removed."""
        if not self.is_cacheable(model):
            return 0
        try:
            keys = await self.redis.keys(f"cache:{model}:*")
            removed = await self.redis.delete_keys(keys)
        except (redis.RedisError, RuntimeError) as e:
            logger.warning(f"Cache invalidation failed for {model}: {e}")
            return 0
        if removed:
            logger.debug(f"Invalidated {removed} cached {model} queries")
        return removed
