"""
Error Types

Exception hierarchy for the market cache. Every entry point (refresh job,
read endpoint, health endpoint) catches these at its outermost handler and
converts them into a structured result, so none of them reach the scheduler
or the HTTP layer unhandled.

Hierarchy:
    MarketCacheError
    ├── UpstreamUnavailableError      health check or fetch failed
    │   ├── EmptyUpstreamResultError  upstream answered with zero markets
    │   └── DriftAPIError             HTTP-level failure talking to Drift
    │       └── DriftTimeoutError     request exceeded its timeout
    └── CacheUnavailableError         cache backend unreachable or failing

Per-record serialization and validation problems are recovered where they
happen and have no exception type here.
"""

from typing import Optional


class MarketCacheError(Exception):
    """Base class for all market cache errors."""


class UpstreamUnavailableError(MarketCacheError):
    """The upstream market source could not provide data."""


class EmptyUpstreamResultError(UpstreamUnavailableError):
    """The upstream answered but returned no markets."""


class DriftAPIError(UpstreamUnavailableError):
    """
    HTTP-level failure talking to the Drift data API.

    Attributes:
        endpoint: URL that failed
        status_code: HTTP status if a response was received
    """

    def __init__(self, message: str, endpoint: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.endpoint = endpoint
        self.status_code = status_code


class DriftTimeoutError(DriftAPIError):
    """A Drift API request did not complete within its timeout."""

    def __init__(self, endpoint: str, timeout: float):
        super().__init__(f"Request timeout after {timeout}s", endpoint)
        self.timeout = timeout


class CacheUnavailableError(MarketCacheError):
    """The cache store failed or could not be reached."""
