"""
Market Refresh Job

Produces a fresh snapshot of every market and publishes it to the cache in
one atomic pipeline.

Flow of run():
    1. Announce the attempt in UpdateStatus (isUpdating=true)
    2. Upstream health check (fail fast if unhealthy)
    3. Fetch all markets (an empty result is a failure)
    4. Serialize each record (a bad record gets a fallback projection)
    5. One pipeline: every market key (TTL), last update (no TTL), market count (TTL)
    6. Success: UpdateStatus with lastSuccess=timestamp, errorCount=0
    7. Failure: UpdateStatus keeping the previous lastSuccess, errorCount+1

run() never raises; it always returns a RefreshResult. The job does not
exclude concurrent runs: duplicate pipelines write the same keys with the
same TTL and the last writer wins. Only the on-demand path from readers goes
through refresh_single_flight().
The lock holder keeps the lock alive while it works, so a slow upstream
cannot let a second reader start its own fetch.
"""

import asyncio
import contextlib
import json
import math
import time
import uuid
from typing import Any, List, NamedTuple, Optional

from core.cache_interface import CacheStore
from core.config import settings
from core.errors import CacheUnavailableError, EmptyUpstreamResultError, UpstreamUnavailableError
from core.logging import get_logger
from core.market_source import MarketSource
from core.schemas import MarketRecord, RefreshResult, UpdateStatus
from core.utils.time import current_utc_timestamp
from services.status_tracker import UpdateStatusStore
from storage import cache_call
from storage.keys import CacheKeys


logger = get_logger(__name__)


class RefreshSnapshot(NamedTuple):
    """A published snapshot: write timestamp and the exact payloads cached."""

    timestamp: int
    payloads: List[dict]


# ============================================
# Serialization
# ============================================

def _finite(value: Any, default: Optional[float]) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return value if math.isfinite(value) else default


def fallback_projection(record: Any, timestamp: int) -> dict:
    """
    Minimal safe payload for a record that could not be serialized.

    Non-finite or non-numeric numbers become 0 (null for prices).
    """
    symbol = str(getattr(record, "symbol", "") or "")
    market_index = getattr(record, "market_index", None)
    return {
        "symbol": symbol,
        "displayName": str(getattr(record, "display_name", None) or symbol),
        "price": _finite(getattr(record, "price", None), None),
        "priceChange24h": _finite(getattr(record, "price_change_24h", None), None),
        "quoteVolume": _finite(getattr(record, "quote_volume", None), 0.0),
        "baseVolume": _finite(getattr(record, "base_volume", None), 0.0),
        "marketIndex": market_index if isinstance(market_index, int) and not isinstance(market_index, bool) else -1,
        "marketType": str(getattr(record, "market_type", None) or "perp"),
        "openInterest": _finite(getattr(record, "open_interest", None), 0.0),
        "lastUpdated": timestamp,
    }


def serialize_market_record(record: MarketRecord, timestamp: int) -> str:
    """
    JSON for one market, stamped with the write timestamp.

    Falls back to fallback_projection() instead of raising, so one bad record
    never blocks the rest of the batch.

    Example:
        >>> serialize_market_record(record, 1704110400000)
        '{"symbol": "SOL-PERP", ..., "lastUpdated": 1704110400000}'
    """
    try:
        payload = record.model_dump(by_alias=True)
        payload["lastUpdated"] = timestamp
        return json.dumps(payload, allow_nan=False)
    except (TypeError, ValueError, AttributeError) as e:
        logger.warning(f"Serialization failed for {getattr(record, 'symbol', '?')}, using fallback: {e}")
        return json.dumps(fallback_projection(record, timestamp), allow_nan=False)


def decode_market_values(values: List[str]) -> List[Any]:
    """Decode raw cached market values, skipping anything that is not JSON."""
    decoded = []
    for value in values:
        try:
            decoded.append(json.loads(value))
        except (TypeError, ValueError):
            logger.warning("Skipping undecodable cached market value")
    return decoded


# ============================================
# Refresh Job
# ============================================

class MarketRefreshJob:
    """
    Refresh orchestration against one cache and one upstream source.

    Example:
        >>> job = MarketRefreshJob(cache, DriftMarketSource(), CacheKeys())
        >>> result = await job.run()
        >>> result.success, result.markets_updated
        (True, 42)
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

    async def run(self) -> RefreshResult:
        """
        Scheduled full refresh with UpdateStatus bookkeeping.

        Returns:
            RefreshResult: Never raises
        """
        started_at = current_utc_timestamp(milliseconds=True)
        clock = time.monotonic()
        self.logger.info("Starting market data update...")

        # Captured before the announcement overwrites it
        previous = await self._read_previous_status()

        try:
            await self.status_store.write(UpdateStatus(
                is_updating=True,
                last_attempt=started_at,
                last_success=0,
                error_count=0,
            ))
        except CacheUnavailableError as e:
            self.logger.warning(f"Could not announce update: {e}")

        try:
            snapshot = await self.fetch_and_cache()
        except asyncio.CancelledError:
            self.logger.warning("Market data update cancelled")
            await self.status_store.write_best_effort(UpdateStatus(
                is_updating=False,
                last_attempt=started_at,
                last_success=previous.last_success if previous else 0,
                error_count=(previous.error_count if previous else 0) + 1,
                last_error="Update cancelled",
            ))
            raise
        except Exception as e:
            duration = int((time.monotonic() - clock) * 1000)
            error = str(e) or e.__class__.__name__
            self.logger.error(f"Market data update failed after {duration}ms: {error}")

            await self.status_store.write_best_effort(UpdateStatus(
                is_updating=False,
                last_attempt=started_at,
                last_success=previous.last_success if previous else 0,
                error_count=(previous.error_count if previous else 0) + 1,
                last_error=error,
            ))
            return RefreshResult(
                success=False,
                timestamp=started_at,
                markets_updated=0,
                duration=duration,
                message="Market data update failed",
                error=error,
            )

        await self.status_store.write_best_effort(UpdateStatus(
            is_updating=False,
            last_attempt=started_at,
            last_success=snapshot.timestamp,
            error_count=0,
        ))

        duration = int((time.monotonic() - clock) * 1000)
        count = len(snapshot.payloads)
        self.logger.info(f"Updated {count} markets in {duration}ms")
        return RefreshResult(
            success=True,
            timestamp=snapshot.timestamp,
            markets_updated=count,
            duration=duration,
            message=f"Successfully updated {count} markets",
        )

    async def fetch_and_cache(self) -> RefreshSnapshot:
        """
        Health check, fetch, serialize and publish one snapshot.

        No UpdateStatus bookkeeping; shared by run() and the read path.

        Raises:
            UpstreamUnavailableError: Health check failed, fetch failed or timed out
            EmptyUpstreamResultError: Upstream returned no markets
            CacheUnavailableError: Pipeline failed or timed out
        """
        try:
            healthy = await asyncio.wait_for(self.source.health_check(), settings.upstream_timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailableError(
                f"Drift API health check timed out after {settings.upstream_timeout}s"
            ) from e
        if not healthy:
            raise UpstreamUnavailableError("Drift API health check failed")

        try:
            records = await asyncio.wait_for(self.source.get_all_market_data(), settings.upstream_timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailableError(
                f"Market data fetch timed out after {settings.upstream_timeout}s"
            ) from e
        if not records:
            raise EmptyUpstreamResultError("No market data received from Drift API")

        timestamp = current_utc_timestamp(milliseconds=True)
        ttl = settings.cache_ttl_seconds

        # Last record wins when a symbol repeats
        serialized = {}
        for record in records:
            serialized[record.symbol] = serialize_market_record(record, timestamp)
        if len(serialized) != len(records):
            self.logger.warning(f"Upstream returned {len(records) - len(serialized)} duplicate symbols")

        pipe = self.cache.pipeline()
        for symbol, value in serialized.items():
            pipe.set_with_ttl(self.keys.market(symbol), value, ttl)
        pipe.set(self.keys.last_update, str(timestamp))
        pipe.set_with_ttl(self.keys.markets_count, str(len(serialized)), ttl)
        await cache_call(pipe.execute())

        self.logger.info(f"Cached {len(serialized)} markets (TTL {ttl}s)")
        return RefreshSnapshot(timestamp, [json.loads(v) for v in serialized.values()])

    async def refresh_single_flight(self) -> List[Any]:
        """
        On-demand refresh guarded by a short-lived lock key.

        The caller that takes the lock refreshes and returns what it wrote.
        Everyone else polls the cache until data shows up, the lock goes
        away, or the wait times out.

        Returns:
            List of decoded market payloads (empty when nothing became available)

        Raises:
            MarketCacheError: If this caller's own refresh fails
        """
        token = uuid.uuid4().hex
        acquired = await cache_call(
            self.cache.set_if_absent(self.keys.refresh_lock, token, settings.refresh_lock_ttl_seconds)
        )

        if acquired:
            self.logger.info("Acquired refresh lock, fetching from Drift API")
            heartbeat = asyncio.create_task(self._keep_lock(token))
            try:
                snapshot = await self.fetch_and_cache()
                return snapshot.payloads
            finally:
                heartbeat.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await heartbeat
                try:
                    await cache_call(self.cache.release_lock(self.keys.refresh_lock, token))
                except CacheUnavailableError as e:
                    self.logger.warning(f"Could not release refresh lock, it will expire: {e}")

        self.logger.info("Refresh already in progress, waiting for it")
        return await self._wait_for_refresh()

    async def _keep_lock(self, token: str) -> None:
        ttl = settings.refresh_lock_ttl_seconds
        while True:
            await asyncio.sleep(ttl / 3)
            try:
                still_ours = await cache_call(self.cache.extend_lock(self.keys.refresh_lock, token, ttl))
            except CacheUnavailableError as e:
                self.logger.warning(f"Could not extend refresh lock: {e}")
                continue
            if not still_ours:
                self.logger.warning("Refresh lock lost before the refresh finished")
                return

    async def _wait_for_refresh(self) -> List[Any]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + settings.refresh_wait_timeout_seconds

        while loop.time() < deadline:
            await asyncio.sleep(settings.refresh_poll_interval_seconds)

            values = await cache_call(self.cache.get_all(self.keys.market_prefix))
            if values:
                return decode_market_values(values)

            if await cache_call(self.cache.get(self.keys.refresh_lock)) is None:
                # Holder finished; one last look in case it wrote after our read
                values = await cache_call(self.cache.get_all(self.keys.market_prefix))
                return decode_market_values(values)

        self.logger.warning(
            f"Gave up waiting for in-flight refresh after {settings.refresh_wait_timeout_seconds}s"
        )
        return []

    async def _read_previous_status(self) -> Optional[UpdateStatus]:
        try:
            return await self.status_store.read()
        except CacheUnavailableError as e:
            self.logger.warning(f"Could not read previous update status: {e}")
            return None
