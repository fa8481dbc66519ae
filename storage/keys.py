"""
Cache key layout.

    <prefix>:market:<symbol>   MarketRecord JSON, TTL'd
    <prefix>:last_update       epoch ms of the last published snapshot
    <prefix>:markets_count     number of records in that snapshot, TTL'd
    <prefix>:update_status     UpdateStatus JSON, never expires
    <prefix>:refresh_lock      single-flight token for on-demand refreshes
    <prefix>:health            scratch key written by health checks
"""

from core.config import settings


class CacheKeys:
    """Builds every cache key under one namespace prefix."""

    def __init__(self, prefix: str = None):
        self.prefix = prefix or settings.cache_key_prefix

    def market(self, symbol: str) -> str:
        return f"{self.prefix}:market:{symbol}"

    @property
    def market_prefix(self) -> str:
        return f"{self.prefix}:market:"

    @property
    def last_update(self) -> str:
        return f"{self.prefix}:last_update"

    @property
    def markets_count(self) -> str:
        return f"{self.prefix}:markets_count"

    @property
    def update_status(self) -> str:
        return f"{self.prefix}:update_status"

    @property
    def refresh_lock(self) -> str:
        return f"{self.prefix}:refresh_lock"

    @property
    def health(self) -> str:
        return f"{self.prefix}:health"

    def __repr__(self) -> str:
        return f"<CacheKeys(prefix='{self.prefix}')>"
