import redis.asyncio as redis
import logging
from typing import Optional

from microgrid.core.config import Settings, settings

logger = logging.getLogger(__name__)


async def init_redis(config: Optional[Settings] = None) -> redis.Redis:
    """Create a Redis client from the app's settings and verify the connection"""
    config = config or settings
    try:
        client = redis.from_url(
            config.REDIS_URL,
            password=config.REDIS_PASSWORD,
            db=config.REDIS_DB,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30
        )

        # Test connection
        await client.ping()
        logger.info("Redis connection established successfully")
        return client

    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}")
        raise


async def close_redis(client: Optional[redis.Redis]) -> None:
    """Close Redis connection"""
    if client:
        await client.aclose()
        logger.info("Redis connection closed")


async def redis_health(client: Optional[redis.Redis]) -> str:
    """Report Redis status for health endpoints"""
    if client is None:
        return "disabled"
    try:
        await client.ping()
        return "healthy"
    except Exception as e:
        logger.warning(f"Redis health check failed: {e}")
        return "unhealthy"
