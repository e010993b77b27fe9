import logging

import redis.asyncio as redis

from backend.app.core.config import settings


logger = logging.getLogger(__name__)

redis_client: redis.Redis | None = None


async def init_redis(url: str | None = None) -> redis.Redis:
    """Initialise the shared Redis connection used by the adjustment store."""
    global redis_client
    redis_client = redis.from_url(
        url or settings.REDIS_URL,
        decode_responses=True,
    )
    logger.debug("Redis client initialised for %s", url or settings.REDIS_URL)
    return redis_client


async def close_redis() -> None:
    """Close the Redis connection if it was initialised."""
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
