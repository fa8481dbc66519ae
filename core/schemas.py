"""
Normalized Data Schemas

This module defines Pydantic models for every payload the market cache
stores or serves. Python attributes are snake_case; the cache and the HTTP
API use camelCase (field aliases), which is the format upstream consumers
already depend on.

Models:
    - MarketRecord: One perpetual market's price/volume/open-interest snapshot
    - UpdateStatus: Singleton bookkeeping record written by the refresh job
    - RefreshResult: Structured outcome of one refresh run
    - MarketsResponse / MarketsErrorResponse: Read endpoint payloads
    - HealthReport: Health endpoint payload
    - DriftVolumeMarket: One raw row of the upstream 24h volume endpoint
"""

from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


# ============================================
# Base Model
# ============================================

class CamelModel(BaseModel):
    """
    Base model for all wire schemas.

    Accepts both the camelCase alias and the Python field name on input;
    dump with ``by_alias=True`` to produce the wire format.
    """

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        """JSON-compatible dict using camelCase keys."""
        return self.model_dump(by_alias=True, mode="json")


# ============================================
# Market Record Schema
# ============================================

class MarketRecord(CamelModel):
    """
    Market Record Data Model

    One record per tradable symbol, stored under ``<prefix>:market:<symbol>``.

    Attributes:
        symbol: Unique market symbol (e.g., "SOL-PERP")
        display_name: Human-readable name
        price: Latest price (None until the upstream provides one)
        price_change_24h: 24h price change (None until the upstream provides one)
        quote_volume: 24h volume in quote asset
        base_volume: 24h volume in base asset
        market_index: Stable upstream identifier
        market_type: Market kind (e.g., "perp")
        open_interest: Current open interest
        last_updated: Epoch milliseconds of the cache write (not upstream time)

    Example:
        >>> MarketRecord(
        ...     symbol="SOL-PERP",
        ...     displayName="SOL-PERP",
        ...     price=None,
        ...     priceChange24h=None,
        ...     quoteVolume=125000000.0,
        ...     baseVolume=850000.0,
        ...     marketIndex=0,
        ...     marketType="perp",
        ...     openInterest=3200000.0,
        ...     lastUpdated=1704110400000
        ... )
    """

    symbol: str = Field(..., min_length=1, description="Unique market symbol")

    display_name: str = Field(..., alias="displayName", description="Display name")

    # Required but nullable: the key must be present even when no price exists yet
    price: Optional[float] = Field(..., allow_inf_nan=False, description="Latest price")

    price_change_24h: Optional[float] = Field(
        ...,
        alias="priceChange24h",
        allow_inf_nan=False,
        description="24h price change"
    )

    quote_volume: float = Field(
        ...,
        ge=0,
        alias="quoteVolume",
        allow_inf_nan=False,
        description="24h volume in quote asset"
    )

    base_volume: float = Field(
        ...,
        ge=0,
        alias="baseVolume",
        allow_inf_nan=False,
        description="24h volume in base asset"
    )

    market_index: int = Field(..., alias="marketIndex", description="Upstream market index")

    market_type: str = Field(..., alias="marketType", description="Market type (e.g., perp)")

    open_interest: float = Field(
        ...,
        ge=0,
        alias="openInterest",
        allow_inf_nan=False,
        description="Current open interest"
    )

    last_updated: int = Field(
        ...,
        ge=0,
        alias="lastUpdated",
        description="Epoch milliseconds of the cache write"
    )

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "symbol": "SOL-PERP",
                "displayName": "SOL-PERP",
                "price": None,
                "priceChange24h": None,
                "quoteVolume": 125000000.0,
                "baseVolume": 850000.0,
                "marketIndex": 0,
                "marketType": "perp",
                "openInterest": 3200000.0,
                "lastUpdated": 1704110400000
            }
        }
    )


def validate_market_record(data: Any) -> Optional[MarketRecord]:
    """
    Strictly validate a decoded cache value against the MarketRecord shape.

    Strict mode means no coercion: "12" is not a number, 1.0 is not a
    market index, True is not an integer. Integers are accepted for float
    fields.

    Returns:
        MarketRecord if valid, None otherwise (never raises)
    """
    if not isinstance(data, dict):
        return None
    try:
        return MarketRecord.model_validate(data, strict=True)
    except ValidationError:
        return None


# ============================================
# Update Status Schema
# ============================================

class UpdateStatus(CamelModel):
    """
    Refresh bookkeeping record (one instance, no TTL).

    Attributes:
        is_updating: True while a refresh is in progress
        last_attempt: Epoch ms when the latest refresh started
        last_success: Epoch ms of the latest successful refresh (0 = never)
        error_count: Consecutive failures; reset to 0 on success
        last_error: Message of the latest failure
    """

    is_updating: bool = Field(..., alias="isUpdating")
    last_attempt: int = Field(..., ge=0, alias="lastAttempt")
    last_success: int = Field(0, ge=0, alias="lastSuccess")
    error_count: int = Field(0, ge=0, alias="errorCount")
    last_error: Optional[str] = Field(None, alias="lastError")

    def to_json(self) -> str:
        """Serialize for the cache (lastError omitted when unset)."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


# ============================================
# Refresh Result Schema
# ============================================

class RefreshResult(CamelModel):
    """
    Outcome of one refresh run. The refresh job always returns one of these
    instead of raising.

    Attributes:
        success: Whether the snapshot was published
        timestamp: Write timestamp on success, start time on failure (epoch ms)
        markets_updated: Number of records written
        duration: Wall time in milliseconds
        message: Human-readable summary
        error: Failure message (failures only)
    """

    success: bool
    timestamp: int
    markets_updated: int = Field(0, alias="marketsUpdated")
    duration: int = Field(..., ge=0)
    message: str
    error: Optional[str] = None


# ============================================
# Read Endpoint Schemas
# ============================================

class MarketsResponse(CamelModel):
    """Successful read payload, markets sorted by quote volume (most active first)."""

    success: bool = True
    markets: List[MarketRecord] = Field(default_factory=list)
    last_updated: Optional[int] = Field(None, alias="lastUpdated")
    count: int = 0
    cache_age: Optional[int] = Field(None, alias="cacheAge")
    refreshed: bool = False
    message: str = ""


class MarketsErrorResponse(CamelModel):
    """Read payload returned when the cache itself is unavailable."""

    success: bool = False
    error: str
    markets: List[MarketRecord] = Field(default_factory=list)
    count: int = 0
    last_updated: Optional[int] = Field(None, alias="lastUpdated")
    message: str = "Failed to load market data"


# ============================================
# Health Schema
# ============================================

class HealthReport(CamelModel):
    """
    Health endpoint payload. ``healthy`` is true only when both the cache
    and the upstream checks pass.
    """

    healthy: bool
    cache_healthy: bool = Field(False, alias="cacheHealthy")
    upstream_healthy: bool = Field(False, alias="upstreamHealthy")
    last_update: Optional[int] = Field(None, alias="lastUpdate")
    update_status: Optional[UpdateStatus] = Field(None, alias="updateStatus")
    timestamp: int
    error: Optional[str] = None


# ============================================
# Upstream Schemas
# ============================================

class DriftVolumeMarket(CamelModel):
    """
    One row of the Drift 24h volume endpoint.

    The API sends volumes as decimal strings; they are parsed to floats here.
    """

    symbol: str = Field(..., min_length=1)
    quote_volume: float = Field(..., ge=0, alias="quoteVolume", allow_inf_nan=False)
    base_volume: float = Field(..., ge=0, alias="baseVolume", allow_inf_nan=False)
    market_index: int = Field(..., alias="marketIndex")
    market_type: str = Field("perp", alias="marketType")

    @field_validator("symbol")
    @classmethod
    def strip_symbol(cls, v: str) -> str:
        """Trim whitespace and reject blank symbols."""
        v = v.strip()
        if not v:
            raise ValueError("symbol must not be blank")
        return v
