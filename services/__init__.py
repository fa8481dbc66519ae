"""
Services Package

Wires the market cache together around one cache store and one upstream
source:

- MarketRefreshJob: scheduled full refresh (services.refresh_job)
- MarketReadService: read path with inline refresh (services.market_reader)
- StatusTracker: health reporting (services.status_tracker)
- RefreshScheduler: optional in-process refresh loop (services.refresh_scheduler)
"""

from typing import Optional

from core.cache_interface import CacheStore
from core.market_source import MarketSource
from services.market_reader import MarketReadService
from services.refresh_job import MarketRefreshJob
from services.refresh_scheduler import RefreshScheduler
from services.status_tracker import StatusTracker, UpdateStatusStore
from storage.keys import CacheKeys


class MarketServices:
    """All services sharing one cache, one source and one key layout."""

    def __init__(self, cache: CacheStore, source: MarketSource, keys: Optional[CacheKeys] = None):
        self.cache = cache
        self.source = source
        self.keys = keys or CacheKeys()
        self.status_store = UpdateStatusStore(cache, self.keys)
        self.refresh_job = MarketRefreshJob(cache, source, self.keys, self.status_store)
        self.reader = MarketReadService(cache, self.refresh_job, self.keys, self.status_store)
        self.status_tracker = StatusTracker(cache, source, self.keys, self.status_store)
        self.scheduler = RefreshScheduler(self.refresh_job)

    def __repr__(self) -> str:
        return f"<MarketServices(cache={self.cache!r}, source={self.source!r})>"


def build_services(cache: CacheStore, source: MarketSource, keys: Optional[CacheKeys] = None) -> MarketServices:
    """Create the service set for one cache/source pair."""
    return MarketServices(cache, source, keys)


__all__ = [
    "MarketServices",
    "MarketReadService",
    "MarketRefreshJob",
    "RefreshScheduler",
    "StatusTracker",
    "UpdateStatusStore",
    "build_services",
]
