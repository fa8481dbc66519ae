"""
Update Status & Health Tracking

The UpdateStatus record is the one piece of shared mutable state in the
system. It lives in the cache under a single key (no TTL) so every service
instance reads and writes the same record, and it is always overwritten as a
whole rather than patched field by field.

Components:
    - UpdateStatusStore: read/write access to the UpdateStatus key
    - StatusTracker: health report combining cache, upstream and status
"""

import asyncio
import json
from typing import Optional, Tuple

from pydantic import ValidationError

from core.cache_interface import CacheStore
from core.config import settings
from core.errors import MarketCacheError
from core.logging import get_logger
from core.market_source import MarketSource
from core.schemas import HealthReport, UpdateStatus
from core.utils.time import current_utc_timestamp
from storage import cache_call
from storage.keys import CacheKeys


class UpdateStatusStore:
    """
    Cache-backed handle on the UpdateStatus record.

    Example:
        >>> store = UpdateStatusStore(cache, CacheKeys())
        >>> await store.write(UpdateStatus(is_updating=True, last_attempt=now))
        >>> (await store.read()).is_updating
        True
    """

    def __init__(self, cache: CacheStore, keys: CacheKeys):
        self.cache = cache
        self.keys = keys
        self.logger = get_logger(__name__)

    async def read(self) -> Optional[UpdateStatus]:
        """
        Current status, or None if never written or unreadable.

        Raises:
            CacheUnavailableError: If the cache cannot be reached
        """
        raw = await cache_call(self.cache.get(self.keys.update_status))
        if raw is None:
            return None
        try:
            return UpdateStatus.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            self.logger.warning(f"Ignoring corrupt update status: {e}")
            return None

    async def write(self, status: UpdateStatus) -> None:
        """
        Overwrite the status record.

        Raises:
            CacheUnavailableError: If the write fails
        """
        await cache_call(self.cache.set(self.keys.update_status, status.to_json()))

    async def write_best_effort(self, status: UpdateStatus) -> bool:
        """
        Write ``status``; if that fails, try a minimal status instead.

        Neither failure propagates.

        Returns:
            bool: True if the full status was written
        """
        try:
            await self.write(status)
            return True
        except MarketCacheError as e:
            self.logger.error(f"Failed to write update status: {e}")

        # Smaller payload, same history
        minimal = UpdateStatus(
            is_updating=False,
            last_attempt=status.last_attempt,
            last_success=status.last_success,
            error_count=status.error_count,
            last_error=status.last_error,
        )
        try:
            await self.write(minimal)
            self.logger.warning("Wrote minimal update status instead")
        except MarketCacheError as e:
            self.logger.error(f"Failed to write minimal update status: {e}")
        return False


class StatusTracker:
    """
    Health reporting for monitoring callers.

    Healthy iff both the cache and the upstream checks pass. Serving markets
    never depends on this report.
    """

    def __init__(
        self,
        cache: CacheStore,
        source: MarketSource,
        keys: CacheKeys,
        status_store: Optional[UpdateStatusStore] = None
    ):
        self.cache = cache
        self.source = source
        self.keys = keys
        self.status_store = status_store or UpdateStatusStore(cache, keys)
        self.logger = get_logger(__name__)

    async def get_health(self) -> Tuple[HealthReport, int]:
        """
        Run the cache and upstream checks concurrently and collect status.

        Returns:
            (HealthReport, HTTP status code): 200 when healthy, 503 otherwise
        """
        try:
            cache_ok, upstream_ok = await asyncio.gather(
                self._check_cache(),
                self._check_upstream(),
            )
            last_update = await self._read_last_update()
            status = await self._read_status()

            healthy = cache_ok and upstream_ok
            report = HealthReport(
                healthy=healthy,
                cache_healthy=cache_ok,
                upstream_healthy=upstream_ok,
                last_update=last_update,
                update_status=status,
                timestamp=current_utc_timestamp(milliseconds=True),
            )
            if not healthy:
                self.logger.warning(f"Health check failed (cache={cache_ok}, upstream={upstream_ok})")
            return report, 200 if healthy else 503

        except Exception as e:
            self.logger.error(f"Health check error: {e}")
            report = HealthReport(
                healthy=False,
                timestamp=current_utc_timestamp(milliseconds=True),
                error=str(e),
            )
            return report, 503

    async def _check_cache(self) -> bool:
        try:
            return await asyncio.wait_for(self.cache.health_check(), settings.cache_timeout)
        except asyncio.TimeoutError:
            self.logger.error(f"Cache health check timed out after {settings.cache_timeout}s")
            return False

    async def _check_upstream(self) -> bool:
        try:
            return await asyncio.wait_for(self.source.health_check(), settings.upstream_timeout)
        except asyncio.TimeoutError:
            self.logger.error(f"Upstream health check timed out after {settings.upstream_timeout}s")
            return False

    async def _read_last_update(self) -> Optional[int]:
        try:
            raw = await cache_call(self.cache.get(self.keys.last_update))
        except MarketCacheError as e:
            self.logger.warning(f"Could not read last update: {e}")
            return None
        return parse_timestamp(raw)

    async def _read_status(self) -> Optional[UpdateStatus]:
        try:
            return await self.status_store.read()
        except MarketCacheError as e:
            self.logger.warning(f"Could not read update status: {e}")
            return None


def parse_timestamp(raw: Optional[str]) -> Optional[int]:
    """Epoch ms stored as a decimal string; None when absent or malformed."""
    if raw is None:
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None
