"""Shared Redis client for rate limiting and idempotent replays.

The ledger itself never depends on Redis. When it is down, requests are
served without rate limiting or replay caching and the health check says so.
"""
import logging
from typing import Optional
from redis.asyncio import Redis
from redis.exceptions import RedisError
from fieldledger.core.config import settings

logger = logging.getLogger(__name__)

redis: Optional[Redis] = None


async def init_redis() -> Redis:
    global redis
    client = Redis.from_url(settings.REDIS_URL, decode_responses=False)
    try:
        await client.ping()
    except RedisError as e:
        logger.error(f"Failed to connect to Redis at {settings.REDIS_URL}: {e}")
        await client.close()
        raise
    redis = client
    logger.info("Connected to Redis")
    return redis


async def close_redis():
    global redis
    if redis:
        await redis.close()
        redis = None


def get_redis() -> Redis:
    if redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return redis


async def redis_alive() -> bool:
    if redis is None:
        return False
    try:
        return bool(await redis.ping())
    except RedisError as e:
        logger.warning(f"Redis ping failed: {e}")
        return False
