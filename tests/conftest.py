"""
Shared fixtures for the market cache tests.

Everything runs against InMemoryCacheStore and a scripted FakeMarketSource,
so no test touches the network or a real Redis.
"""

import asyncio
from typing import List, Optional

import pytest

from core.market_source import MarketSource
from core.schemas import MarketRecord
from services import build_services
from storage.keys import CacheKeys
from storage.memory_store import InMemoryCacheStore


def make_record(symbol: str, quote_volume: float = 1000.0, **overrides) -> MarketRecord:
    """MarketRecord with sensible defaults; pass camelCase or snake_case overrides."""
    data = {
        "symbol": symbol,
        "displayName": symbol,
        "price": None,
        "priceChange24h": None,
        "quoteVolume": quote_volume,
        "baseVolume": quote_volume / 100,
        "marketIndex": 0,
        "marketType": "perp",
        "openInterest": 5000.0,
        "lastUpdated": 1704110400000,
    }
    data.update(overrides)
    return MarketRecord.model_validate(data)


class FakeMarketSource(MarketSource):
    """
    Scripted upstream.

    Attributes:
        healthy: What health_check() returns
        records: What get_all_market_data() returns
        error: Raised by get_all_market_data() when set
        fetch_calls / health_calls: Call counters
    """

    name = "fake"

    def __init__(self, records: Optional[List[MarketRecord]] = None, healthy: bool = True):
        self.records = list(records or [])
        self.healthy = healthy
        self.error: Optional[Exception] = None
        self.fetch_delay = 0.0
        self.fetch_calls = 0
        self.health_calls = 0

    async def health_check(self) -> bool:
        self.health_calls += 1
        return self.healthy

    async def get_all_market_data(self) -> List[MarketRecord]:
        self.fetch_calls += 1
        if self.fetch_delay:
            await asyncio.sleep(self.fetch_delay)
        if self.error:
            raise self.error
        return list(self.records)


@pytest.fixture
def keys():
    return CacheKeys("test")


@pytest.fixture
def cache():
    return InMemoryCacheStore()


@pytest.fixture
def source():
    return FakeMarketSource([
        make_record("SOL-PERP", 5.0, marketIndex=0),
        make_record("BTC-PERP", 50.0, marketIndex=1),
        make_record("ETH-PERP", 1.0, marketIndex=2),
    ])


@pytest.fixture
def services(cache, source, keys):
    return build_services(cache, source, keys)


@pytest.fixture
def fast_polling(monkeypatch):
    """Shrink the single-flight wait so loser paths finish quickly."""
    from core.config import settings

    monkeypatch.setattr(settings, "refresh_poll_interval_seconds", 0.01)
    monkeypatch.setattr(settings, "refresh_wait_timeout_seconds", 0.5)
    yield settings
