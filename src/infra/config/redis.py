import redis.asyncio as redis
from functools import lru_cache
from typing import Optional
from src.infra.config.settings import settings
from src.core.logger.logger import logger

_client: Optional[redis.Redis] = None


@lru_cache()
def get_redis_pool():
    """Get Redis connection pool (cached)"""
    return redis.ConnectionPool.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        max_connections=settings.REDIS_MAX_CONNECTIONS
    )


async def get_redis() -> redis.Redis:
    """Get the shared Redis client, verifying the connection on first use"""
    global _client
    if _client is not None:
        return _client
    try:
        client = redis.Redis(connection_pool=get_redis_pool())
        await client.ping()
        logger.info("Connected to Redis successfully", extra={"max_connections": settings.REDIS_MAX_CONNECTIONS})
        _client = client
        return client
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}")
        raise


async def close_redis():
    """Release the shared client and its pool"""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
    get_redis_pool.cache_clear()
