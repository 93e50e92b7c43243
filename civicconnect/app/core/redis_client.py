"""
Shared Redis connection.

Backs token revocation and request rate limiting. Callers that must
keep working without Redis catch its errors themselves.
"""

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from civicconnect.app.core.config import settings

logger = logging.getLogger("civicconnect.redis")

redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """FastAPI dependency; tests override it with an in-memory double."""
    return redis_client


async def ping_redis() -> bool:
    """True when Redis answers PING; used by the health endpoint."""
    try:
        return bool(await redis_client.ping())
    except (RedisError, OSError) as exc:
        logger.warning("Redis ping failed: %s", exc)
        return False


async def close_redis() -> None:
    await redis_client.aclose()
