"""
Unit tests for usage counters and plan limit checks.
"""

import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession

from nitpickr.infrastructure.redis import RedisClient
from nitpickr.models import ResourceUsage, Subscription, Tier, User
from nitpickr.services.usage import (
    check_usage_limit,
    get_entity_tier,
    get_usage,
    record_usage,
    reset_usage,
    track_usage,
    usage_key,
)

pytestmark = pytest.mark.unit


def _broken_redis() -> RedisClient:
    broken = AsyncMock()
    broken.get.side_effect = redis.ConnectionError("down")
    return RedisClient(client=broken)


class TestUsageCounters:
    """Test get_usage, track_usage and reset_usage."""

    def test_usage_key_format(self):
        assert usage_key("u1", "user", "views") == "usage:user:u1:views"

    @pytest.mark.asyncio
    async def test_unknown_counter_is_zero(self, redis_client: RedisClient, test_db: AsyncSession):
        assert await get_usage(redis_client, test_db, "u1", "user", "views") == 0

    @pytest.mark.asyncio
    async def test_track_usage_writes_redis_and_database(
        self, redis_client: RedisClient, test_db: AsyncSession, fake_redis
    ):
        assert await track_usage(redis_client, test_db, "u1", "user", "views") == 1
        assert await track_usage(redis_client, test_db, "u1", "user", "views", 4) == 5

        assert fake_redis.store["usage:user:u1:views"] == "5"
        row = await test_db.get(ResourceUsage, ("u1", "user", "views"))
        assert row.usage == 5

    @pytest.mark.asyncio
    async def test_database_fallback_when_redis_is_empty(
        self, redis_client: RedisClient, test_db: AsyncSession
    ):
        test_db.add(ResourceUsage(entity_id="u1", entity_type="user", resource_type="views", usage=7))
        await test_db.commit()

        assert await get_usage(redis_client, test_db, "u1", "user", "views") == 7

    @pytest.mark.asyncio
    async def test_database_fallback_when_redis_fails(self, test_db: AsyncSession):
        test_db.add(ResourceUsage(entity_id="u1", entity_type="user", resource_type="views", usage=3))
        await test_db.commit()

        assert await get_usage(_broken_redis(), test_db, "u1", "user", "views") == 3

    @pytest.mark.asyncio
    async def test_reset_usage(self, redis_client: RedisClient, test_db: AsyncSession, fake_redis):
        await track_usage(redis_client, test_db, "u1", "user", "views")

        await reset_usage(redis_client, test_db, "u1", "user", "views")

        assert "usage:user:u1:views" not in fake_redis.store
        assert await test_db.get(ResourceUsage, ("u1", "user", "views")) is None

    @pytest.mark.asyncio
    async def test_reset_missing_counter_is_ignored(
        self, redis_client: RedisClient, test_db: AsyncSession
    ):
        await reset_usage(redis_client, test_db, "nobody", "user", "views")


class TestCheckUsageLimit:
    """Test limits derived from tiers."""

    @pytest.mark.asyncio
    async def test_system_is_never_limited(self, redis_client: RedisClient, test_db: AsyncSession):
        result = await check_usage_limit(redis_client, test_db, "system", "system", "analysis")

        assert result.allowed is True
        assert result.limit is None

    @pytest.mark.asyncio
    async def test_default_tier_limit(
        self, redis_client: RedisClient, test_db: AsyncSession, test_user: User, test_tiers
    ):
        user_id = str(test_user.id)

        result = await check_usage_limit(redis_client, test_db, user_id, "user", "analysis")
        assert result.allowed is True
        assert result.limit == 1
        assert result.current_usage == 0

        await track_usage(redis_client, test_db, user_id, "user", "analysis")

        result = await check_usage_limit(redis_client, test_db, user_id, "user", "analysis")
        assert result.allowed is False
        assert result.current_usage == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_max_api_calls(
        self, redis_client: RedisClient, test_db: AsyncSession, test_user: User, test_tiers
    ):
        result = await check_usage_limit(
            redis_client, test_db, str(test_user.id), "user", "/api/other"
        )

        assert result.limit == 1000

    @pytest.mark.asyncio
    async def test_no_tier_means_unlimited(
        self, redis_client: RedisClient, test_db: AsyncSession, test_user: User
    ):
        result = await check_usage_limit(redis_client, test_db, str(test_user.id), "user", "views")

        assert result.allowed is True
        assert result.limit is None

    @pytest.mark.asyncio
    async def test_active_subscription_tier_wins(
        self, redis_client: RedisClient, test_db: AsyncSession, test_user: User, test_tiers
    ):
        now = datetime.now(timezone.utc)
        test_db.add(
            Subscription(
                id="sub_pro",
                customer_id="cus_owner",
                price_id="price_pro",
                tier_id="pro-tier",
                active=True,
                start_date=now,
                end_date=now + timedelta(days=30),
                user_id=test_user.id,
            )
        )
        await test_db.commit()

        tier = await get_entity_tier(test_db, str(test_user.id), "user")
        assert tier.id == "pro-tier"

        # Pro limits are stored as a JSON string
        result = await check_usage_limit(redis_client, test_db, str(test_user.id), "user", "analysis")
        assert result.limit == 100

    @pytest.mark.asyncio
    async def test_unparsable_entity_id_uses_default_tier(
        self, test_db: AsyncSession, test_tiers: list[Tier]
    ):
        tier = await get_entity_tier(test_db, "not-a-uuid", "team")

        assert tier.id == "basic-tier"

    @pytest.mark.asyncio
    async def test_unparsable_tier_limits_are_logged(
        self,
        redis_client: RedisClient,
        test_db: AsyncSession,
        test_user: User,
        test_tiers: list[Tier],
        caplog,
    ):
        test_tiers[0].limits = "{views: 5"
        await test_db.commit()

        with caplog.at_level(logging.ERROR, logger="nitpickr.services.usage"):
            result = await check_usage_limit(
                redis_client, test_db, str(test_user.id), "user", "views"
            )

        assert result.allowed is True
        assert result.limit == 1000
        assert "Error parsing tier limits" in caplog.text


class TestRecordUsage:
    """Test the non-failing counter used by middleware and uploads."""

    @pytest.mark.asyncio
    async def test_redis_failure_is_logged(self, test_db: AsyncSession, caplog):
        broken = AsyncMock()
        broken.incrby.side_effect = redis.ConnectionError("down")

        with caplog.at_level(logging.ERROR, logger="nitpickr.services.usage"):
            result = await record_usage(RedisClient(client=broken), test_db, "u1", "user", "views")

        assert result is None
        assert "Usage tracking failed for user u1 on views" in caplog.text
        assert await test_db.get(ResourceUsage, ("u1", "user", "views")) is None

    @pytest.mark.asyncio
    async def test_returns_new_value(self, redis_client: RedisClient, test_db: AsyncSession):
        assert await record_usage(redis_client, test_db, "u1", "user", "storage", 10) == 10
