"""
In-Memory Cache Store

Process-local implementation of the CacheStore contract, used when no Redis
is configured (local development) and throughout the test suite.

Expiry uses the monotonic clock and is evaluated lazily on access. None of
the operations suspend, so each one (including a whole pipeline) runs
without interleaving with other tasks on the event loop.
"""

import time
from typing import Callable, Dict, List, Optional, Tuple

from core.cache_interface import CachePipeline, CacheStore
from core.errors import CacheUnavailableError
from core.logging import get_logger


class InMemoryPipeline(CachePipeline):
    """Buffers writes and applies them in one step on execute()."""

    def __init__(self, store: "InMemoryCacheStore"):
        self._store = store
        self._commands: List[Tuple[str, str, Optional[int]]] = []

    def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> "InMemoryPipeline":
        self._commands.append((key, str(value), ttl_seconds))
        return self

    def set(self, key: str, value: str) -> "InMemoryPipeline":
        self._commands.append((key, str(value), None))
        return self

    async def execute(self) -> None:
        self._store._ensure_open()
        for key, value, ttl in self._commands:
            self._store._write(key, value, ttl)
        self._commands.clear()

    def __len__(self) -> int:
        return len(self._commands)


class InMemoryCacheStore(CacheStore):
    """
    Dict-backed cache with per-key TTL.

    Attributes:
        name: "memory"

    Example:
        >>> store = InMemoryCacheStore()
        >>> await store.set_with_ttl("drift:market:SOL-PERP", "{...}", 90)
        >>> await store.get_all("drift:market:")
        ['{...}']
    """

    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        # key -> (value, expires_at or None)
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._clock = clock
        self._closed = False
        self.logger = get_logger(__name__)

    # ============================================
    # Internal Helpers
    # ============================================

    def _ensure_open(self) -> None:
        if self._closed:
            raise CacheUnavailableError("In-memory cache store is closed")

    def _alive(self, key: str) -> bool:
        entry = self._data.get(key)
        if entry is None:
            return False
        expires_at = entry[1]
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return False
        return True

    def _write(self, key: str, value: str, ttl_seconds: Optional[int]) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
        self._data[key] = (str(value), expires_at)

    # ============================================
    # CacheStore Implementation
    # ============================================

    async def get(self, key: str) -> Optional[str]:
        self._ensure_open()
        if not self._alive(key):
            return None
        return self._data[key][0]

    async def get_all(self, prefix: str) -> List[str]:
        self._ensure_open()
        keys = [k for k in list(self._data.keys()) if k.startswith(prefix)]
        return [self._data[k][0] for k in keys if self._alive(k)]

    async def set(self, key: str, value: str) -> None:
        self._ensure_open()
        self._write(key, value, None)

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        self._ensure_open()
        self._write(key, value, ttl_seconds)

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        self._ensure_open()
        if self._alive(key):
            return False
        self._write(key, value, ttl_seconds)
        return True

    async def release_lock(self, key: str, token: str) -> bool:
        self._ensure_open()
        if self._alive(key) and self._data[key][0] == token:
            del self._data[key]
            return True
        return False

    async def extend_lock(self, key: str, token: str, ttl_seconds: int) -> bool:
        self._ensure_open()
        if self._alive(key) and self._data[key][0] == token:
            self._write(key, token, ttl_seconds)
            return True
        return False

    async def delete_prefix(self, prefix: str) -> int:
        self._ensure_open()
        keys = [k for k in list(self._data.keys()) if k.startswith(prefix) and self._alive(k)]
        for k in keys:
            del self._data[k]
        return len(keys)

    def pipeline(self) -> InMemoryPipeline:
        return InMemoryPipeline(self)

    async def health_check(self) -> bool:
        return not self._closed

    async def close(self) -> None:
        self._closed = True
        self.logger.debug("In-memory cache store closed")

    def ttl(self, key: str) -> Optional[float]:
        """Seconds until ``key`` expires, None if it has no expiry or does not exist."""
        if not self._alive(key):
            return None
        expires_at = self._data[key][1]
        return None if expires_at is None else expires_at - self._clock()
