"""Replay protection for retried client writes.

A response is cached under ``idemp:<scope>:<key>`` so the same key sent to a
different order or endpoint never collides. Requests without a key are not
cached. The cache is best effort: when Redis is unreachable a lookup misses
and a store is skipped, so a committed write is never reported as failed.
"""
import json
import logging
from typing import Optional
from redis.exceptions import RedisError
from fieldledger.core.redis import get_redis
from fieldledger.core.config import settings

logger = logging.getLogger(__name__)


def _redis_key(scope: str, key: str) -> str:
    return f"idemp:{scope}:{key}"


async def get_idempotent(scope: str, key: Optional[str]):
    if not key:
        return None
    try:
        v = await get_redis().get(_redis_key(scope, key))
    except (RedisError, RuntimeError) as e:
        logger.warning(f"Idempotency lookup for {scope} skipped: {e}")
        return None
    return json.loads(v) if v else None


async def set_idempotent(scope: str, key: Optional[str], value: dict):
    if not key:
        return
    try:
        await get_redis().set(
            _redis_key(scope, key),
            json.dumps(value, default=str),
            ex=settings.IDEMPOTENCY_TTL,
        )
    except (RedisError, RuntimeError) as e:
        logger.error(f"Could not cache response for {scope} key {key}: {e}")
