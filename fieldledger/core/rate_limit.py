import logging
from fastapi import Depends, HTTPException
from redis.exceptions import RedisError
from fieldledger.core.redis import get_redis
from fieldledger.core.config import settings
from fieldledger.core.metrics import rate_limit_exceeded
from fieldledger.core.security import Actor, get_current_actor

logger = logging.getLogger(__name__)


async def check_rate_limit(actor_id: int):
    try:
        redis = get_redis()
        key = f"rl:{actor_id}"
        current = await redis.get(key)
        if current is None:
            await redis.set(key, "1", ex=settings.RATE_LIMIT_WINDOW)
            return
        count = int(current)
        if count >= settings.RATE_LIMIT:
            rate_limit_exceeded.labels(actor_id=str(actor_id)).inc()
            raise HTTPException(status_code=429, detail="Rate limit exceeded")
        await redis.incr(key)
    except (RedisError, RuntimeError) as e:
        # fail open while Redis is unavailable
        logger.warning(f"Rate limit check skipped for actor {actor_id}: {e}")


async def rate_limited(actor: Actor = Depends(get_current_actor)) -> Actor:
    await check_rate_limit(actor.id)
    return actor
