"""
Client configuration and usage endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from nitpickr.config.settings import get_settings
from nitpickr.database import get_db
from nitpickr.infrastructure.redis import RedisClient
from nitpickr.middleware.auth import get_current_active_user
from nitpickr.middleware.usage import get_redis
from nitpickr.models import User
from nitpickr.services.usage import check_usage_limit

router = APIRouter(prefix="/api", tags=["misc"])


@router.get("/env")
async def get_env():
    """Public client-side configuration."""
    settings = get_settings()
    return {"data": {"mixpanel": {"token": settings.mixpanel_token}}}


@router.get("/usage/{resource_type}")
async def get_usage(
    resource_type: str,
    db: AsyncSession = Depends(get_db),
    redis_client: RedisClient = Depends(get_redis),
    current_user: User = Depends(get_current_active_user),
):
    """Current usage and plan limit of the caller for ``resource_type``."""
    usage = await check_usage_limit(redis_client, db, str(current_user.id), "user", resource_type)
    return {
        "resourceType": resource_type,
        "allowed": usage.allowed,
        "currentUsage": usage.current_usage,
        "limit": usage.limit,
    }
