"""
Storage Package

Cache backends implementing core.cache_interface.CacheStore:
- RedisCacheStore: shared Redis cache (production)
- InMemoryCacheStore: process-local TTL cache (development, tests)

Use create_cache_store() to get the backend selected by configuration and
cache_call() to bound any cache operation by the configured timeout.
"""

import asyncio
from typing import Any, Awaitable, Optional

from core.cache_interface import CacheStore
from core.config import settings
from core.errors import CacheUnavailableError
from core.logging import logger
from storage.keys import CacheKeys
from storage.memory_store import InMemoryCacheStore


def create_cache_store(keys: Optional[CacheKeys] = None) -> CacheStore:
    """
    Build the cache backend selected by settings.

    Args:
        keys: Key layout shared with the services (Redis writes its health key there)

    Returns:
        RedisCacheStore when REDIS_URL or REDIS_HOST is set, InMemoryCacheStore otherwise
    """
    if settings.use_redis:
        from storage.redis_store import RedisCacheStore

        logger.info("Using Redis cache store")
        return RedisCacheStore(settings.redis_dsn, keys=keys)

    logger.info("Using in-memory cache store (REDIS_HOST not set)")
    return InMemoryCacheStore()


async def cache_call(awaitable: Awaitable[Any], timeout: Optional[float] = None) -> Any:
    """
    Await a cache operation, bounded by ``timeout`` (default settings.cache_timeout).

    Raises:
        CacheUnavailableError: If the operation timed out
    """
    timeout = timeout or settings.cache_timeout
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as e:
        raise CacheUnavailableError(f"Cache operation timed out after {timeout}s") from e


__all__ = ["CacheKeys", "InMemoryCacheStore", "cache_call", "create_cache_store"]
