"""
API usage middleware.

FastAPI dependency factories that count requests per user and resource
and reject requests once the caller's plan limit is reached.

Usage:
    @router.post("/nitpick", dependencies=[Depends(enforce_api_usage("analysis"))])
    async def nitpick(...):
        ...
"""

import logging
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from nitpickr.database import get_db
from nitpickr.infrastructure.cache import QueryCache
from nitpickr.infrastructure.redis import RedisClient, get_redis_client
from nitpickr.middleware.auth import get_optional_user
from nitpickr.models import User
from nitpickr.services.usage import UsageCheckResult, check_usage_limit, record_usage

logger = logging.getLogger(__name__)


class QuotaExceededError(Exception):
    """Raised when a request would exceed the caller's plan limit."""

    def __init__(self, usage: UsageCheckResult, json_errors: bool = True):
        super().__init__(f"Usage limit exceeded ({usage.current_usage}/{usage.limit})")
        self.usage = usage
        self.json_errors = json_errors

    def to_dict(self) -> dict:
        return {
            "error": "Usage limit exceeded",
            "code": "QUOTA_EXCEEDED",
            "currentUsage": self.usage.current_usage,
            "limit": self.usage.limit,
            "message": (
                f"You've used {self.usage.current_usage} of {self.usage.limit} "
                "allowed requests. Please upgrade your plan."
            ),
        }

    def to_text(self) -> str:
        return (
            "429 - Usage Limit Exceeded.\n"
            f"You've used {self.usage.current_usage} of {self.usage.limit} allowed requests.\n"
            "Please upgrade your plan or contact support.\n"
        )


async def get_redis() -> RedisClient:
    """Shared Redis client dependency."""
    return await get_redis_client()


async def get_query_cache(redis_client: RedisClient = Depends(get_redis)) -> QueryCache:
    return QueryCache(redis_client)


def _entity(user: Optional[User]) -> tuple[str, str]:
    if user is None:
        return "system", "system"
    return str(user.id), "user"


def enforce_api_usage(resource_type: Optional[str] = None, json_errors: bool = True):
    """
    Dependency factory: reject over-limit callers with 429, then count the request.

    Args:
        resource_type: Counter name; defaults to the request path
        json_errors: JSON 429 body when True, plain text otherwise
    """

    async def usage_enforcer(
        request: Request,
        user: Optional[User] = Depends(get_optional_user),
        db: AsyncSession = Depends(get_db),
        redis_client: RedisClient = Depends(get_redis),
    ) -> UsageCheckResult:
        entity_id, entity_type = _entity(user)
        resource = resource_type or request.url.path

        usage = await check_usage_limit(redis_client, db, entity_id, entity_type, resource)
        if not usage.allowed:
            logger.info(
                f"Quota exceeded for {entity_type} {entity_id} on {resource}: "
                f"{usage.current_usage}/{usage.limit}"
            )
            raise QuotaExceededError(usage, json_errors=json_errors)

        await record_usage(redis_client, db, entity_id, entity_type, resource)
        return usage

    return usage_enforcer


def track_api_usage(resource_type: Optional[str] = None):
    """Dependency factory: count the request without enforcing a limit."""

    async def usage_tracker(
        request: Request,
        user: Optional[User] = Depends(get_optional_user),
        db: AsyncSession = Depends(get_db),
        redis_client: RedisClient = Depends(get_redis),
    ) -> None:
        entity_id, entity_type = _entity(user)
        await record_usage(redis_client, db, entity_id, entity_type, resource_type or request.url.path)

    return usage_tracker
