"""
Market Source Interface - Abstract Contract for Upstream Providers

This module defines the abstract base class an upstream market data provider
must implement for the refresh job to consume it. The refresh job, the read
service and the status tracker only ever talk to ``MarketSource``; the
concrete Drift connector lives in ``exchanges.drift``.

Contract:
    - health_check(): cheap reachability probe, returns bool, never raises
    - get_all_market_data(): one MarketRecord per tradable symbol

Example:
    class DriftMarketSource(MarketSource):
        name = "drift"

        async def health_check(self) -> bool:
            ...

        async def get_all_market_data(self) -> List[MarketRecord]:
            ...
"""

from abc import ABC, abstractmethod
from typing import List
from core.schemas import MarketRecord


class MarketSource(ABC):
    """
    Abstract Base Class for Upstream Market Sources

    Class Attributes:
        name: Unique identifier for the source (lowercase, e.g., "drift")

    Abstract Methods (MUST be implemented):
        - health_check: Verify the upstream API is reachable
        - get_all_market_data: Fetch a full snapshot of all markets

    Optional Methods (can be overridden):
        - initialize: Setup HTTP sessions
        - shutdown: Cleanup connections
    """

    name: str
    """Unique source identifier (lowercase). Example: "drift" """

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the upstream API is accessible.

        Returns:
            bool: True if reachable, False otherwise

        Notes:
            - Should make a single lightweight call without retries
            - Don't raise exceptions; return False on errors
        """
        ...

    @abstractmethod
    async def get_all_market_data(self) -> List[MarketRecord]:
        """
        Fetch the current snapshot of every market.

        Returns:
            List[MarketRecord]: One record per symbol. May be empty; the
            refresh job decides whether an empty snapshot is a failure.

        Raises:
            UpstreamUnavailableError: If the snapshot cannot be fetched

        Notes:
            - ``last_updated`` is informational only; the refresh job
              overwrites it with the cache write time
            - A failure fetching one auxiliary field for one market (e.g.
              open interest) should degrade that field, not the batch
        """
        ...

    # ============================================
    # Optional Lifecycle Methods
    # ============================================

    async def initialize(self) -> None:
        """
        Initialize the source (open HTTP sessions, etc.).

        Notes:
            - Default implementation does nothing
            - Should be idempotent
        """
        pass

    async def shutdown(self) -> None:
        """
        Release resources held by the source.

        Notes:
            - Default implementation does nothing
            - Should handle errors gracefully (don't raise exceptions)
        """
        pass

    def __repr__(self) -> str:
        """String representation of the source."""
        return f"<{self.__class__.__name__}(name='{self.name}')>"
