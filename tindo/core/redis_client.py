"""
Tindo API - Redis clients

One shared command client (idempotency cache, publishing, health) and a
factory for pub/sub handles, one per live subscription.
"""
import asyncio

import redis.asyncio as aioredis
from redis.asyncio.client import PubSub

from tindo.core.config import get_settings

settings = get_settings()
_redis_client: aioredis.Redis | None = None


def get_redis() -> aioredis.Redis:
    global _redis_client
    if _redis_client is None:
        _redis_client = aioredis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=settings.HEALTH_CHECK_TIMEOUT,
        )
    return _redis_client


def new_pubsub() -> PubSub:
    """Pub/sub handle on the shared pool; the caller must aclose() it."""
    return get_redis().pubsub(ignore_subscribe_messages=True)


async def ping_redis() -> None:
    await asyncio.wait_for(get_redis().ping(), timeout=settings.HEALTH_CHECK_TIMEOUT)


async def close_redis():
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
