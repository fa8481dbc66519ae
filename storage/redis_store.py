"""
Redis Cache Store

Production CacheStore backed by ``redis.asyncio``. Several service instances
pointed at the same Redis share one logical snapshot and one UpdateStatus.

Mapping of the contract onto Redis:
    set_with_ttl   -> SETEX
    set_if_absent  -> SET NX EX
    extend_lock    -> Lua compare-and-pexpire
    release_lock   -> Lua compare-and-delete
    get_all        -> SCAN MATCH prefix* + MGET
    pipeline       -> MULTI/EXEC transaction

Every RedisError and timeout is re-raised as CacheUnavailableError.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from core.cache_interface import CachePipeline, CacheStore
from core.config import settings
from core.errors import CacheUnavailableError
from core.logging import get_logger
from storage.keys import CacheKeys


# Deletes the lock only if it still holds our token
_RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

# Resets the lock expiry only if it still holds our token
_EXTEND_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("pexpire", KEYS[1], ARGV[2])
else
    return 0
end
"""


@asynccontextmanager
async def _redis_errors(operation: str):
    try:
        yield
    except (RedisError, asyncio.TimeoutError, OSError) as e:
        raise CacheUnavailableError(f"Redis {operation} failed: {e}") from e


class RedisPipeline(CachePipeline):
    """Transaction pipeline: all queued commands run inside MULTI/EXEC."""

    def __init__(self, client: aioredis.Redis):
        self._pipe = client.pipeline(transaction=True)
        self._size = 0

    def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> "RedisPipeline":
        self._pipe.setex(key, ttl_seconds, value)
        self._size += 1
        return self

    def set(self, key: str, value: str) -> "RedisPipeline":
        self._pipe.set(key, value)
        self._size += 1
        return self

    async def execute(self) -> None:
        async with _redis_errors("pipeline"):
            await self._pipe.execute()

    def __len__(self) -> int:
        return self._size


class RedisCacheStore(CacheStore):
    """
    Redis-backed cache store.

    Args:
        url: Redis URL (defaults to settings.redis_dsn)
        client: Pre-built ``redis.asyncio.Redis`` (tests inject a mock here)
        keys: Key layout whose health key the health check writes

    Example:
        >>> store = RedisCacheStore("redis://localhost:6379/0")
        >>> await store.health_check()
        True
        >>> await store.close()
    """

    name = "redis"

    def __init__(
        self,
        url: Optional[str] = None,
        client: Optional[aioredis.Redis] = None,
        keys: Optional[CacheKeys] = None
    ):
        self.logger = get_logger(__name__)
        self.keys = keys or CacheKeys()
        self._redis = client or aioredis.from_url(
            url or settings.redis_dsn,
            decode_responses=True,
            socket_timeout=settings.cache_timeout,
            socket_connect_timeout=settings.cache_timeout,
        )

    async def get(self, key: str) -> Optional[str]:
        async with _redis_errors("GET"):
            return await self._redis.get(key)

    async def get_all(self, prefix: str) -> List[str]:
        async with _redis_errors("SCAN/MGET"):
            keys = [key async for key in self._redis.scan_iter(match=f"{prefix}*", count=500)]
            if not keys:
                return []
            values = await self._redis.mget(keys)
        # A key can expire between SCAN and MGET
        return [v for v in values if v is not None]

    async def set(self, key: str, value: str) -> None:
        async with _redis_errors("SET"):
            await self._redis.set(key, value)

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        async with _redis_errors("SETEX"):
            await self._redis.setex(key, ttl_seconds, value)

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        async with _redis_errors("SET NX"):
            return bool(await self._redis.set(key, value, nx=True, ex=ttl_seconds))

    async def release_lock(self, key: str, token: str) -> bool:
        async with _redis_errors("lock release"):
            return bool(await self._redis.eval(_RELEASE_LOCK_SCRIPT, 1, key, token))

    async def extend_lock(self, key: str, token: str, ttl_seconds: int) -> bool:
        async with _redis_errors("lock extend"):
            ttl_ms = max(1, int(ttl_seconds * 1000))
            return bool(await self._redis.eval(_EXTEND_LOCK_SCRIPT, 1, key, token, ttl_ms))

    async def delete_prefix(self, prefix: str) -> int:
        async with _redis_errors("DEL"):
            keys = [key async for key in self._redis.scan_iter(match=f"{prefix}*", count=500)]
            if not keys:
                return 0
            return int(await self._redis.delete(*keys))

    def pipeline(self) -> RedisPipeline:
        return RedisPipeline(self._redis)

    async def health_check(self) -> bool:
        """Ping and write a short-lived health key; False on any Redis failure."""
        try:
            await self._redis.ping()
            await self._redis.setex(self.keys.health, 60, "ok")
            return True
        except (RedisError, asyncio.TimeoutError, OSError) as e:
            self.logger.error(f"Redis health check failed: {e}")
            return False

    async def close(self) -> None:
        try:
            await self._redis.aclose()
            self.logger.debug("Redis connection closed")
        except RedisError as e:
            self.logger.error(f"Error closing Redis connection: {e}")
