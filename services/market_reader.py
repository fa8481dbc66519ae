"""
Market Read Service

Answers "what are the current markets" from the cache with best-effort
freshness:

    1. Read every cached market and the last update timestamp
    2. Empty cache: refresh inline (single-flight) and serve that instead
    3. Drop records that fail strict validation
    4. Compute cache age; flag (but still serve) stale data
    5. Sort by 24h quote volume, most active first (stable)
    6. Build the response body and HTTP headers

A cache failure becomes a structured error payload with status 500; no
exception leaves get_markets().
"""

import asyncio
import time
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from core.cache_interface import CacheStore
from core.config import settings
from core.errors import MarketCacheError
from core.logging import get_logger
from core.schemas import MarketRecord, MarketsErrorResponse, MarketsResponse, validate_market_record
from core.utils.time import age_in_seconds, current_utc_timestamp
from services.refresh_job import MarketRefreshJob, decode_market_values
from services.status_tracker import UpdateStatusStore, parse_timestamp
from storage import cache_call
from storage.keys import CacheKeys


SOURCE_UPSTREAM = "drift-api"
SOURCE_CACHE = "redis-cache"

CACHE_CONTROL_REFRESHED = "public, s-maxage=10, stale-while-revalidate=30"
CACHE_CONTROL_CACHED = "public, s-maxage=30, stale-while-revalidate=60"
CACHE_CONTROL_ERROR = "no-cache, no-store, must-revalidate"


class MarketsResult(NamedTuple):
    """What the read endpoint sends back."""

    body: dict
    status_code: int
    headers: Dict[str, str]
    is_stale: bool = False


def sort_by_quote_volume(markets: List[MarketRecord]) -> List[MarketRecord]:
    """Most active first; equal volumes keep their original order."""
    return sorted(markets, key=lambda m: m.quote_volume, reverse=True)


def validate_markets(raw: List[Any]) -> Tuple[List[MarketRecord], int]:
    """
    Strictly validate decoded cache values.

    Returns:
        (valid records, number dropped)
    """
    valid = [record for record in (validate_market_record(item) for item in raw) if record is not None]
    return valid, len(raw) - len(valid)


def _latest_timestamp(payloads: List[Any]) -> Optional[int]:
    stamps = [
        p["lastUpdated"] for p in payloads
        if isinstance(p, dict) and isinstance(p.get("lastUpdated"), int) and not isinstance(p.get("lastUpdated"), bool)
    ]
    return max(stamps) if stamps else None


class MarketReadService:
    """
    Read path for the market cache.

    Example:
        >>> reader = MarketReadService(cache, refresh_job, CacheKeys())
        >>> result = await reader.get_markets()
        >>> result.body["count"], result.headers["X-Data-Source"]
        (42, 'redis-cache')
    """

    def __init__(
        self,
        cache: CacheStore,
        refresh_job: MarketRefreshJob,
        keys: CacheKeys,
        status_store: Optional[UpdateStatusStore] = None
    ):
        self.cache = cache
        self.refresh_job = refresh_job
        self.keys = keys
        self.status_store = status_store or UpdateStatusStore(cache, keys)
        self.logger = get_logger(__name__)

    # ============================================
    # Read Endpoint
    # ============================================

    async def get_markets(self) -> MarketsResult:
        """
        Serve the current markets, refreshing inline when the cache is empty.

        Returns:
            MarketsResult: 200 with MarketsResponse, or 500 with MarketsErrorResponse
        """
        clock = time.monotonic()
        try:
            values, last_update_raw = await asyncio.gather(
                cache_call(self.cache.get_all(self.keys.market_prefix)),
                cache_call(self.cache.get(self.keys.last_update)),
            )
            raw = decode_market_values(values)
            last_updated = parse_timestamp(last_update_raw)
            refreshed = False

            if not raw:
                self.logger.info("No cached markets found, fetching fresh data from Drift API")
                fresh = await self._inline_refresh()
                if fresh:
                    raw = fresh
                    refreshed = True
                    last_updated = _latest_timestamp(fresh) or last_updated

            markets, dropped = validate_markets(raw)
            if dropped:
                self.logger.warning(f"Filtered out {dropped} invalid market records")

            cache_age = age_in_seconds(last_updated)
            is_stale = cache_age is not None and cache_age > settings.stale_threshold_seconds
            if is_stale and not refreshed:
                self.logger.warning(f"Market data is {cache_age} seconds old (stale)")

            markets = sort_by_quote_volume(markets)
            count = len(markets)

            if refreshed:
                message = f"{count} markets fetched fresh from Drift API"
            elif count:
                message = f"{count} markets loaded from cache"
            else:
                message = "No market data available"

            body = MarketsResponse(
                markets=markets,
                last_updated=last_updated,
                count=count,
                cache_age=cache_age,
                refreshed=refreshed,
                message=message,
            ).to_wire()

            headers = {
                "Cache-Control": CACHE_CONTROL_REFRESHED if refreshed else CACHE_CONTROL_CACHED,
                "X-Markets-Count": str(count),
                "X-Last-Updated": str(last_updated or ""),
                "X-Cache-Age": "" if cache_age is None else str(cache_age),
                "X-Cache-Stale": "true" if is_stale else "false",
                "X-Response-Time": f"{int((time.monotonic() - clock) * 1000)}ms",
                "X-Data-Source": SOURCE_UPSTREAM if refreshed else SOURCE_CACHE,
            }
            self.logger.info(message)
            return MarketsResult(body, 200, headers, is_stale)

        except Exception as e:
            error = str(e) or e.__class__.__name__
            self.logger.error(f"Failed to load market data: {error}")
            body = MarketsErrorResponse(error=error).to_wire()
            headers = {
                "Cache-Control": CACHE_CONTROL_ERROR,
                "X-Error": "true",
                "X-Response-Time": f"{int((time.monotonic() - clock) * 1000)}ms",
            }
            return MarketsResult(body, 500, headers, False)

    async def _inline_refresh(self) -> List[Any]:
        try:
            return await self.refresh_job.refresh_single_flight()
        except Exception as e:
            self.logger.error(f"Inline refresh failed: {e}")
            return []

    # ============================================
    # Manual Refresh
    # ============================================

    async def manual_refresh(self) -> Tuple[dict, int]:
        """
        Run the full refresh job, but only when no markets are cached.

        Returns:
            (response body, HTTP status code)
        """
        try:
            current = await cache_call(self.cache.get_all(self.keys.market_prefix))
            if current:
                return {
                    "success": True,
                    "message": "Markets already available",
                    "count": len(current),
                    "refreshed": False,
                }, 200

            result = await self.refresh_job.run()
            if not result.success:
                return {
                    "success": False,
                    "error": result.error,
                    "message": "Failed to refresh market data",
                    "refreshResult": result.to_wire(),
                }, 500

            updated = await cache_call(self.cache.get_all(self.keys.market_prefix))
            return {
                "success": True,
                "message": "Markets refreshed successfully",
                "count": len(updated),
                "refreshed": True,
                "refreshResult": result.to_wire(),
            }, 200

        except MarketCacheError as e:
            self.logger.error(f"Manual refresh failed: {e}")
            return {
                "success": False,
                "error": str(e),
                "message": "Failed to refresh market data",
            }, 500

    # ============================================
    # Non-production Tooling
    # ============================================

    async def debug_info(self) -> dict:
        """Cache diagnostics for the debug endpoint."""
        cache_healthy = await self.cache.health_check()
        values = await cache_call(self.cache.get_all(self.keys.market_prefix))
        raw = decode_market_values(values)
        last_update = parse_timestamp(await cache_call(self.cache.get(self.keys.last_update)))
        status = await self.status_store.read()

        return {
            "cacheHealthy": cache_healthy,
            "lastUpdate": last_update,
            "cacheAge": age_in_seconds(last_update),
            "updateStatus": status.to_wire() if status else None,
            "totalMarkets": len(raw),
            "sampleMarket": raw[0] if raw else None,
            "environment": {
                "environment": settings.environment,
                "cacheBackend": self.cache.name,
                "refreshIntervalSeconds": settings.refresh_interval_seconds,
                "cacheTtlSeconds": settings.cache_ttl_seconds,
                "staleThresholdSeconds": settings.stale_threshold_seconds,
                "cronSecretConfigured": bool(settings.cron_secret),
            },
            "timestamp": current_utc_timestamp(milliseconds=True),
        }

    async def clear_markets(self) -> int:
        """Delete every cached market key. Returns the number deleted."""
        cleared = await cache_call(self.cache.delete_prefix(self.keys.market_prefix))
        self.logger.info(f"Cleared {cleared} market records")
        return cleared
