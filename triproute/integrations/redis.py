from __future__ import annotations

from redis.asyncio import Redis

from triproute.core.config import get_settings


_redis_client: Redis | None = None


async def get_redis() -> Redis | None:
    global _redis_client
    if _redis_client is None:
        settings = get_settings()
        if not settings.redis_url:
            return None
        _redis_client = Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.close()
        _redis_client = None
