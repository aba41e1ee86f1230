"""
Redis connection pool shared by trip locks and notifications.

Responses are decoded to ``str`` so lock tokens compare equal in the
release script and pub/sub payloads arrive as text.
"""

import redis.asyncio as aioredis

from src.config import settings

_pool = aioredis.ConnectionPool.from_url(
    settings.redis_url, decode_responses=True
)


async def get_redis() -> aioredis.Redis:
    """Return a Redis client backed by the shared connection pool."""
    return aioredis.Redis(connection_pool=_pool)


async def close_redis() -> None:
    """Drop pooled connections on shutdown."""
    await _pool.disconnect()
