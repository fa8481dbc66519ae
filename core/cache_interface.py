"""
Cache Store Interface - Abstract Contract for Key-Value Backends

The market cache needs a small set of key-value operations with per-key TTL
and an atomic multi-command pipeline. This module defines that contract so
the refresh job and read service work identically against Redis in
production and the in-process store used in development and tests.

Guarantees every implementation must provide:
    - Values are strings (JSON documents or decimal scalars)
    - TTL expiry is the only eviction in the steady-state path
    - A pipeline is applied as a whole or raises; callers never need to
      reason about half-written snapshots
    - Backend failures surface as CacheUnavailableError

Implementations:
    - storage.redis_store.RedisCacheStore
    - storage.memory_store.InMemoryCacheStore
"""

from abc import ABC, abstractmethod
from typing import List, Optional


class CachePipeline(ABC):
    """
    A batch of writes submitted as one round trip.

    Commands are buffered by ``set`` / ``set_with_ttl`` and applied by
    ``execute``. A pipeline is single-use.
    """

    @abstractmethod
    def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> "CachePipeline":
        """Queue a write that expires after ``ttl_seconds``."""
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> "CachePipeline":
        """Queue a write without expiry."""
        ...

    @abstractmethod
    async def execute(self) -> None:
        """
        Apply every queued command atomically.

        Raises:
            CacheUnavailableError: If the batch could not be applied
        """
        ...

    @abstractmethod
    def __len__(self) -> int:
        """Number of queued commands."""
        ...


class CacheStore(ABC):
    """
    Abstract Base Class for Cache Backends

    Abstract Methods:
        - get / get_all: Point and prefix reads
        - set / set_with_ttl: Single writes
        - set_if_absent / extend_lock / release_lock: Atomic primitives for the refresh lock
        - delete_prefix: Debug-only bulk delete
        - pipeline: Create a CachePipeline
        - health_check: Reachability probe (never raises)
        - close: Release connections
    """

    name: str = "cache"

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Value for ``key`` or None if absent/expired."""
        ...

    @abstractmethod
    async def get_all(self, prefix: str) -> List[str]:
        """Values of every live key starting with ``prefix``."""
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Write without expiry."""
        ...

    @abstractmethod
    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        """Write with expiry."""
        ...

    @abstractmethod
    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        """
        Atomically write ``key`` only if it does not exist.

        Returns:
            bool: True if this call created the key
        """
        ...

    @abstractmethod
    async def release_lock(self, key: str, token: str) -> bool:
        """
        Delete ``key`` only if it still holds ``token``.

        Returns:
            bool: True if the key was deleted
        """
        ...

    @abstractmethod
    async def extend_lock(self, key: str, token: str, ttl_seconds: int) -> bool:
        """
        Reset the expiry of ``key`` only if it still holds ``token``.

        Returns:
            bool: True if the lock is still ours
        """
        ...

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """
        Delete every key starting with ``prefix``. Debug/test tooling only.

        Returns:
            int: Number of keys deleted
        """
        ...

    @abstractmethod
    def pipeline(self) -> CachePipeline:
        """Create a new write pipeline."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """True if the backend is reachable and writable. Never raises."""
        ...

    async def close(self) -> None:
        """Release backend connections. Default does nothing."""
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name='{self.name}')>"
