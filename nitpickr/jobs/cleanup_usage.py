"""Weekly reset of all usage counters."""

import logging

from redis.asyncio import RedisError
from sqlalchemy.exc import SQLAlchemyError

from nitpickr.database import AsyncSessionLocal
from nitpickr.infrastructure.redis import get_redis_client
from nitpickr.jobs.cron import CronJob, cron_service
from nitpickr.services.usage import reset_usage

logger = logging.getLogger(__name__)

USAGE_CLEANUP_SCHEDULE = "0 0 * * 1"  # 00:00 every Monday


async def cleanup_usage_job(redis_client=None, session_factory=AsyncSessionLocal) -> int:
    """
    Reset every ``usage:*`` counter in Redis and the database.

    Returns:
        Number of counters reset
    """
    logger.info("Starting usage cleanup job")
    count = 0
    try:
        redis_client = redis_client or await get_redis_client()
        keys = await redis_client.keys("usage:*")

        async with session_factory() as db:
            for key in keys:
                parts = key.split(":", 3)
                if len(parts) != 4:
                    logger.warning(f"Skipping malformed usage key {key}")
                    continue
                _, entity_type, entity_id, resource_type = parts
                await reset_usage(redis_client, db, entity_id, entity_type, resource_type)
                count += 1

        logger.info(f"Cleaned up {count} usage records")
    except (RedisError, SQLAlchemyError, RuntimeError) as e:
        logger.error(f"Error in usage cleanup job: {e}")
    return count


def register_usage_cleanup() -> None:
    if any(job.name == "usage-cleanup" for job in cron_service.jobs):
        return
    cron_service.register_job(
        CronJob(name="usage-cleanup", schedule=USAGE_CLEANUP_SCHEDULE, job=cleanup_usage_job)
    )
