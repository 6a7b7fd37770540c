"""
Unit tests for the Redis query cache.
"""

from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis

from nitpickr.infrastructure.cache import QueryCache
from nitpickr.infrastructure.redis import RedisClient

pytestmark = pytest.mark.unit


def _counting_loader(value):
    calls = []

    async def loader():
        calls.append(1)
        return value

    return loader, calls


class TestQueryCache:
    """Test read-through caching and invalidation."""

    def test_key_is_stable_for_equal_args(self):
        key1 = QueryCache.make_key("Team", "findMany", {"b": 2, "a": 1})
        key2 = QueryCache.make_key("Team", "findMany", {"a": 1, "b": 2})

        assert key1 == key2 == 'cache:Team:findMany:{"a": 1, "b": 2}'

    @pytest.mark.asyncio
    async def test_second_read_is_served_from_cache(self, redis_client: RedisClient, fake_redis):
        cache = QueryCache(redis_client, ttl=300, models=["Team"], enabled=True)
        loader, calls = _counting_loader([{"id": "t1"}])

        assert await cache.get_or_load("Team", "findMany", {}, loader) == [{"id": "t1"}]
        assert await cache.get_or_load("Team", "findMany", {}, loader) == [{"id": "t1"}]

        assert len(calls) == 1
        assert fake_redis.ttls["cache:Team:findMany:{}"] == 300

    @pytest.mark.asyncio
    async def test_uncached_model_always_loads(self, redis_client: RedisClient, fake_redis):
        cache = QueryCache(redis_client, models=["Team"], enabled=True)
        loader, calls = _counting_loader({"id": "n1"})

        await cache.get_or_load("Nitpick", "findFirst", {"id": "n1"}, loader)
        await cache.get_or_load("Nitpick", "findFirst", {"id": "n1"}, loader)

        assert len(calls) == 2
        assert fake_redis.store == {}

    @pytest.mark.asyncio
    async def test_disabled_cache_always_loads(self, redis_client: RedisClient):
        cache = QueryCache(redis_client, models=["Team"], enabled=False)
        loader, calls = _counting_loader([])

        await cache.get_or_load("Team", "findMany", {}, loader)
        await cache.get_or_load("Team", "findMany", {}, loader)

        assert len(calls) == 2
        assert await cache.invalidate("Team") == 0

    @pytest.mark.asyncio
    async def test_invalidate_drops_only_that_model(self, redis_client: RedisClient, fake_redis):
        cache = QueryCache(redis_client, models=["Team", "User"], enabled=True)
        loader, _ = _counting_loader([])
        await cache.get_or_load("Team", "findMany", {}, loader)
        await cache.get_or_load("Team", "findFirst", {"slug": "a"}, loader)
        await cache.get_or_load("User", "findMany", {}, loader)

        assert await cache.invalidate("Team") == 2
        assert list(fake_redis.store) == ["cache:User:findMany:{}"]

    @pytest.mark.asyncio
    async def test_redis_errors_fall_back_to_loader(self):
        broken = AsyncMock()
        broken.get.side_effect = redis.ConnectionError("down")
        cache = QueryCache(RedisClient(client=broken), models=["Team"], enabled=True)
        loader, calls = _counting_loader(["fresh"])

        assert await cache.get_or_load("Team", "findMany", {}, loader) == ["fresh"]
        assert len(calls) == 1
