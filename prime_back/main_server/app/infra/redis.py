from __future__ import annotations

from functools import lru_cache

from redis.asyncio import Redis

from prime_back.main_server.app.infra.config import get_config

"""
    builds the one shared client from REDIS_URL
"""
@lru_cache
# created on first call
def get_redis() -> Redis:
    return Redis.from_url(get_config().redis_url, decode_responses=True)


# called on application shutdown
async def close_redis() -> None:
    if get_redis.cache_info().currsize == 0:
        return
    r = get_redis()
    await r.aclose()
    get_redis.cache_clear()
