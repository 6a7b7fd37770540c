"""
Resource usage counters and plan limits.

Counters live in Redis under ``usage:{entity_type}:{entity_id}:{resource_type}``
and are written through to the ``resource_usage`` table, which is the
fallback whenever Redis has no value or is unreachable.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional
from uuid import UUID

import redis.asyncio as redis
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from nitpickr.config.settings import get_settings
from nitpickr.infrastructure.redis import RedisClient
from nitpickr.models import ResourceUsage, Subscription, Team, Tier, User

logger = logging.getLogger(__name__)

EntityType = Literal["user", "team", "system"]

# Redis failures that fall back to the database
REDIS_ERRORS = (redis.RedisError, RuntimeError)


@dataclass
class UsageCheckResult:
    allowed: bool
    current_usage: int
    limit: Optional[int] = None


def usage_key(entity_id: str, entity_type: str, resource_type: str) -> str:
    return f"usage:{entity_type}:{entity_id}:{resource_type}"


async def _get_usage_row(
    db: AsyncSession, entity_id: str, entity_type: str, resource_type: str
) -> Optional[ResourceUsage]:
    return await db.get(ResourceUsage, (str(entity_id), entity_type, resource_type))


async def get_usage(
    redis_client: RedisClient,
    db: AsyncSession,
    entity_id: str,
    entity_type: EntityType,
    resource_type: str,
) -> int:
    """Current usage from Redis, else from the database, else 0."""
    key = usage_key(entity_id, entity_type, resource_type)
    try:
        cached = await redis_client.get(key)
    except REDIS_ERRORS as e:
        logger.warning(f"Redis unavailable reading {key}, using database: {e}")
        cached = None

    if cached is not None:
        return int(cached)

    row = await _get_usage_row(db, entity_id, entity_type, resource_type)
    return row.usage if row else 0


async def track_usage(
    redis_client: RedisClient,
    db: AsyncSession,
    entity_id: str,
    entity_type: EntityType,
    resource_type: str,
    increment_by: int = 1,
) -> int:
    """
    Increment a usage counter.

    The Redis counter is authoritative; its new value is copied to the
    ``resource_usage`` row so it survives a Redis flush.

    Returns:
        The new usage value
    """
    key = usage_key(entity_id, entity_type, resource_type)
    new_usage = await redis_client.increment(key, increment_by)

    row = await _get_usage_row(db, entity_id, entity_type, resource_type)
    if row is None:
        db.add(
            ResourceUsage(
                entity_id=str(entity_id),
                entity_type=entity_type,
                resource_type=resource_type,
                usage=new_usage,
            )
        )
    else:
        row.usage = new_usage
    await db.commit()

    return new_usage


async def record_usage(
    redis_client: RedisClient,
    db: AsyncSession,
    entity_id: str,
    entity_type: EntityType,
    resource_type: str,
    increment_by: int = 1,
) -> Optional[int]:
    """
    Like track_usage, but a Redis or database failure is logged and
    swallowed so the surrounding request still succeeds.

    Returns:
        The new usage value, or None if it could not be recorded
    """
    try:
        return await track_usage(
            redis_client, db, entity_id, entity_type, resource_type, increment_by
        )
    except REDIS_ERRORS as e:
        logger.error(f"Usage tracking failed for {entity_type} {entity_id} on {resource_type}: {e}")
    except SQLAlchemyError as e:
        logger.error(f"Usage row update failed for {entity_type} {entity_id} on {resource_type}: {e}")
        await db.rollback()
    return None


async def reset_usage(
    redis_client: RedisClient,
    db: AsyncSession,
    entity_id: str,
    entity_type: EntityType,
    resource_type: str,
) -> None:
    """Clear a counter in Redis and the database. A missing row is ignored."""
    await redis_client.delete(usage_key(entity_id, entity_type, resource_type))

    row = await _get_usage_row(db, entity_id, entity_type, resource_type)
    if row is not None:
        await db.delete(row)
        await db.commit()


def _parse_limit(limits: Any, resource_type: str) -> Optional[int]:
    if not limits:
        return None
    try:
        if isinstance(limits, str):
            limits = json.loads(limits)
        if isinstance(limits, dict):
            value = limits.get(resource_type)
            return int(value) if value is not None else None
    except (TypeError, ValueError) as e:
        logger.error(f"Error parsing tier limits {limits!r}: {e}")
    return None


async def get_entity_tier(
    db: AsyncSession, entity_id: str, entity_type: EntityType
) -> Optional[Tier]:
    """
    Tier of the entity's first active subscription, or the default tier.
    """
    model = User if entity_type == "user" else Team
    try:
        entity_uuid = UUID(str(entity_id))
    except ValueError:
        entity_uuid = None

    entity = None
    if entity_uuid is not None:
        result = await db.execute(
            select(model)
            .options(selectinload(model.subscriptions).selectinload(Subscription.tier))
            .where(model.id == entity_uuid)
        )
        entity = result.scalar_one_or_none()

    if entity is not None:
        for subscription in entity.subscriptions:
            if subscription.active and subscription.tier is not None:
                return subscription.tier

    return await db.get(Tier, get_settings().default_tier_id)


async def check_usage_limit(
    redis_client: RedisClient,
    db: AsyncSession,
    entity_id: str,
    entity_type: EntityType,
    resource_type: str,
) -> UsageCheckResult:
    """
    Compare current usage of ``resource_type`` with the entity's plan limit.

    System entities are never limited. The limit is the tier's per-resource
    value from ``limits``, falling back to ``max_api_calls``; no limit at
    all means the request is allowed.
    """
    if entity_type == "system":
        return UsageCheckResult(allowed=True, current_usage=0, limit=None)

    tier = await get_entity_tier(db, entity_id, entity_type)
    current_usage = await get_usage(redis_client, db, entity_id, entity_type, resource_type)

    limit = _parse_limit(tier.limits, resource_type) if tier else None
    if limit is None and tier is not None:
        limit = tier.max_api_calls

    logger.debug(
        f"Usage check for {entity_type} {entity_id} on {resource_type}: "
        f"current={current_usage}, limit={limit}"
    )

    if limit is None:
        return UsageCheckResult(allowed=True, current_usage=current_usage, limit=None)

    return UsageCheckResult(
        allowed=current_usage < limit, current_usage=current_usage, limit=limit
    )
