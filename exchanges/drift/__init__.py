"""
Drift Market Source

This module implements the MarketSource interface for the Drift protocol.

A full snapshot is assembled from two public endpoints:
    1. 24h volume for every market (one request)
    2. Open interest per market (one request each, run concurrently)

Limitations:
    - Price and 24h price change are not provided by these endpoints and
      are published as null
    - displayName is the symbol itself

Structure:
    exchanges/drift/
    ├── __init__.py          # This file (DriftMarketSource class)
    └── api_client.py        # REST API client with aiohttp
"""

import asyncio
from typing import List, Optional

from core.config import settings
from core.errors import DriftAPIError, UpstreamUnavailableError
from core.logging import get_logger
from core.market_source import MarketSource
from core.schemas import DriftVolumeMarket, MarketRecord
from core.utils.time import current_utc_timestamp
from .api_client import DriftAPIClient, clean_volume_row


class DriftMarketSource(MarketSource):
    """
    Drift Market Source

    Attributes:
        name: Source identifier ("drift")
        client: DriftAPIClient (created in initialize())
        max_concurrency: Bound on parallel open interest requests

    Example:
        >>> source = DriftMarketSource()
        >>> await source.initialize()
        >>> if await source.health_check():
        ...     markets = await source.get_all_market_data()
        >>> await source.shutdown()
    """

    name = "drift"

    def __init__(self, client: Optional[DriftAPIClient] = None, max_concurrency: Optional[int] = None):
        self.client = client
        self.max_concurrency = max_concurrency or settings.max_concurrent_requests
        self.logger = get_logger(__name__)

    async def initialize(self) -> None:
        """Open the API client session (idempotent)."""
        if self.client is None:
            self.client = DriftAPIClient()
        if self.client.session is None:
            await self.client.__aenter__()
        self.logger.info("Drift market source initialized")

    async def shutdown(self) -> None:
        if self.client:
            try:
                await self.client.__aexit__(None, None, None)
            except Exception as e:
                self.logger.error(f"Error closing Drift API client: {e}")
        self.logger.info("Drift market source shut down")

    async def health_check(self) -> bool:
        """
        True iff the volume endpoint answers HTTP 200.

        One attempt, no retries; never raises.
        """
        if not self.client or not self.client.session:
            return False
        try:
            status = await self.client.ping()
        except Exception as e:
            self.logger.error(f"Drift health check failed: {e}")
            return False
        if status != 200:
            self.logger.warning(f"Drift health check returned HTTP {status}")
        return status == 200

    async def get_all_market_data(self) -> List[MarketRecord]:
        """
        Fetch volume for all markets, then open interest for each market.

        Returns:
            List[MarketRecord]: One record per market (may be empty)

        Raises:
            UpstreamUnavailableError: If the volume request fails
        """
        if not self.client or not self.client.session:
            raise UpstreamUnavailableError("Drift market source not initialized")

        self.logger.info("Starting complete market data fetch...")
        volumes = await self.client.get_volume_24h()
        if not volumes:
            self.logger.warning("No volume data available")
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency)
        now = current_utc_timestamp(milliseconds=True)

        async def build(market: DriftVolumeMarket) -> MarketRecord:
            async with semaphore:
                open_interest = await self._open_interest_or_zero(market.symbol)
            return MarketRecord(
                symbol=market.symbol,
                display_name=market.symbol,
                price=None,
                price_change_24h=None,
                quote_volume=market.quote_volume,
                base_volume=market.base_volume,
                market_index=market.market_index,
                market_type=market.market_type,
                open_interest=open_interest,
                last_updated=now,
            )

        records = await asyncio.gather(*(build(m) for m in volumes))
        self.logger.info(f"Fetched complete data for {len(records)} markets")
        return list(records)

    async def _open_interest_or_zero(self, symbol: str) -> float:
        # One market's open interest failing must not sink the batch
        try:
            return await self.client.get_open_interest(symbol)
        except (DriftAPIError, ValueError) as e:
            self.logger.warning(f"Open interest unavailable for {symbol}, using 0: {e}")
            return 0.0


__all__ = ["DriftMarketSource", "DriftAPIClient", "clean_volume_row"]
