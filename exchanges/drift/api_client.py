"""
Drift Data API Client

This module provides an async HTTP client for the public Drift data API.
It handles:
- HTTP requests with retry logic
- Rate limit and server error handling (429, 5xx)
- Timeouts and connection errors
- Cleaning of the raw volume rows

API Base:
    https://data.api.drift.trade

Endpoints Used:
    GET /stats/markets/volume/24h
        {"success": true, "total": "...", "markets": [{symbol, quoteVolume, baseVolume, marketIndex, marketType}]}
    GET /amm/openInterest?marketName=SOL-PERP&start=...&end=...&samples=100
        {"success": true, "data": [[ts, "value"], ...]}

Usage:
    async with DriftAPIClient() as client:
        volumes = await client.get_volume_24h()
        oi = await client.get_open_interest("SOL-PERP")
"""

import aiohttp
import asyncio
import math
import time
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from core.config import settings
from core.errors import DriftAPIError, DriftTimeoutError
from core.logging import get_logger, log_api_request, log_api_response
from core.schemas import DriftVolumeMarket
from core.utils.time import time_range_seconds


VOLUME_PATH = "/stats/markets/volume/24h"
OPEN_INTEREST_PATH = "/amm/openInterest"

# Statuses worth another attempt; anything else non-200 fails immediately
RETRYABLE_STATUSES = (429, 500, 502, 503, 504)


logger = get_logger(__name__)


def clean_volume_row(row: Any) -> Optional[DriftVolumeMarket]:
    """
    Parse one raw volume row, or return None if it is unusable.

    A row is dropped when the symbol is missing or blank, a volume is
    negative or not a number, or the market index is not an integer.

    Example:
        >>> clean_volume_row({"symbol": "SOL-PERP", "quoteVolume": "125000000.5",
        ...                   "baseVolume": "850000", "marketIndex": 0, "marketType": "perp"})
        DriftVolumeMarket(symbol='SOL-PERP', quote_volume=125000000.5, ...)
    """
    if not isinstance(row, dict) or not isinstance(row.get("symbol"), str):
        logger.warning(f"Dropping volume row without a symbol: {row!r}")
        return None

    # bool is an int subclass; "1" or 1.5 are not market indexes either
    market_index = row.get("marketIndex")
    if isinstance(market_index, bool) or not isinstance(market_index, int):
        logger.warning(f"Dropping {row['symbol']}: invalid marketIndex {market_index!r}")
        return None

    try:
        return DriftVolumeMarket.model_validate(row)
    except ValidationError as e:
        logger.warning(f"Dropping {row['symbol']}: {e.error_count()} invalid field(s)")
        return None


class DriftAPIClient:
    """
    Async HTTP client for the Drift data API

    Attributes:
        base_url: Drift data API base URL
        timeout: Per-request timeout in seconds
        max_retries: Attempts per request
        retry_delay: Base delay; attempt N waits retry_delay * N before retrying
        session: aiohttp ClientSession for HTTP requests

    Example:
        >>> async with DriftAPIClient() as client:
        ...     markets = await client.get_volume_24h()
        ...     print(f"Fetched {len(markets)} markets")

    Notes:
        - Uses context manager for automatic session cleanup
        - No API key needed; every endpoint used here is public
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None
    ):
        self.base_url = (base_url or settings.drift_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.max_retries = max_retries if max_retries is not None else settings.max_retries
        self.retry_delay = retry_delay if retry_delay is not None else settings.retry_delay
        self.logger = get_logger(__name__)
        self.session: Optional[aiohttp.ClientSession] = None

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        self.session = aiohttp.ClientSession(
            headers={"Accept": "application/json", "Content-Type": "application/json"}
        )
        self.logger.debug("DriftAPIClient session created")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.debug("DriftAPIClient session closed")

    # ============================================
    # HTTP Request Handler with Retry Logic
    # ============================================

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Make GET request to the Drift API with retry logic.

        Args:
            path: API endpoint path (e.g., "/stats/markets/volume/24h")
            params: Optional query parameters

        Returns:
            Decoded JSON response

        Raises:
            DriftAPIError: Non-retryable HTTP status, or retries exhausted
            DriftTimeoutError: Retries exhausted and the last attempt timed out

        Retry Handling:
            - 429 and 5xx, timeouts and connection errors are retried
            - Retry delay: retry_delay * attempt (no wait after the last attempt)
        """
        if not self.session:
            raise RuntimeError("Client session not initialized. Use 'async with' statement.")

        url = f"{self.base_url}{path}"
        last_error: Optional[DriftAPIError] = None

        for attempt in range(1, self.max_retries + 1):
            log_api_request("drift", path, params)
            started = time.monotonic()
            try:
                async with self.session.get(
                    url,
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as resp:
                    log_api_response("drift", path, resp.status, time.monotonic() - started)

                    if resp.status == 200:
                        return await resp.json(content_type=None)

                    text = await resp.text()
                    if resp.status not in RETRYABLE_STATUSES:
                        self.logger.error(f"HTTP {resp.status} on {path}: {text[:200]}")
                        raise DriftAPIError(f"HTTP {resp.status}: {text[:200]}", url, resp.status)

                    last_error = DriftAPIError(f"HTTP {resp.status}", url, resp.status)
                    self.logger.warning(
                        f"HTTP {resp.status} on {path} (attempt {attempt}/{self.max_retries})"
                    )

            except asyncio.TimeoutError:
                last_error = DriftTimeoutError(url, self.timeout)
                self.logger.warning(f"Timeout on {path} (attempt {attempt}/{self.max_retries})")

            except aiohttp.ClientError as e:
                last_error = DriftAPIError(f"Network error: {e}", url)
                self.logger.warning(f"Request failed on {path}: {e} (attempt {attempt}/{self.max_retries})")

            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_delay * attempt)

        self.logger.error(f"Failed to fetch {path} after {self.max_retries} attempts")
        raise last_error or DriftAPIError(f"Failed to fetch {url}", url)

    # ============================================
    # API Methods
    # ============================================

    async def get_volume_24h(self) -> List[DriftVolumeMarket]:
        """
        Fetch 24-hour volume for every market.

        Returns:
            List[DriftVolumeMarket]: Cleaned rows (unusable rows are dropped)

        Raises:
            DriftAPIError: If the response is not the expected structure
        """
        data = await self._get(VOLUME_PATH)

        if not isinstance(data, dict) or not data.get("success") or not isinstance(data.get("markets"), list):
            raise DriftAPIError("Invalid volume API response structure", f"{self.base_url}{VOLUME_PATH}")

        markets = [m for m in (clean_volume_row(row) for row in data["markets"]) if m is not None]

        dropped = len(data["markets"]) - len(markets)
        if dropped:
            self.logger.warning(f"Dropped {dropped} invalid volume rows")
        self.logger.info(f"Fetched 24h volume for {len(markets)} markets (total: {data.get('total')})")
        return markets

    async def get_open_interest(self, market_name: str, hours_back: Optional[int] = None) -> float:
        """
        Fetch the latest open interest sample for one market.

        Args:
            market_name: Market symbol (e.g., "SOL-PERP")
            hours_back: Sampling window in hours (defaults to settings)

        Returns:
            float: Latest open interest, 0.0 when the API has no usable sample

        Raises:
            DriftAPIError: If the request itself fails
        """
        start, end = time_range_seconds(hours_back or settings.open_interest_hours_back)
        params = {
            "marketName": market_name,
            "start": str(start),
            "end": str(end),
            "samples": str(settings.open_interest_samples),
        }

        data = await self._get(OPEN_INTEREST_PATH, params)

        samples = data.get("data") if isinstance(data, dict) and data.get("success") else None
        if not isinstance(samples, list) or not samples:
            self.logger.warning(f"No open interest data found for {market_name}")
            return 0.0

        latest = samples[-1]
        if not isinstance(latest, (list, tuple)) or len(latest) < 2:
            self.logger.warning(f"Invalid open interest data format for {market_name}")
            return 0.0

        try:
            value = float(latest[1])
        except (TypeError, ValueError):
            self.logger.warning(f"Unparsable open interest for {market_name}: {latest[1]!r}")
            return 0.0

        if not math.isfinite(value) or value < 0:
            self.logger.warning(f"Invalid open interest for {market_name}: {value}")
            return 0.0

        return value

    async def ping(self) -> int:
        """
        Single GET of the volume endpoint, without retries.

        Returns:
            int: HTTP status code

        Raises:
            aiohttp.ClientError / asyncio.TimeoutError on transport failure
        """
        if not self.session:
            raise RuntimeError("Client session not initialized. Use 'async with' statement.")

        async with self.session.get(
            f"{self.base_url}{VOLUME_PATH}",
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        ) as resp:
            return resp.status
