"""
Unit Tests for Schemas

Covers the wire format (camelCase aliases) and the strict read-time
validator that decides which cached records are served.

Run with:
    pytest tests/unit/test_schemas.py -v
"""

import pytest
from pydantic import ValidationError

from core.schemas import (
    DriftVolumeMarket,
    MarketRecord,
    MarketsErrorResponse,
    UpdateStatus,
    validate_market_record,
)


def wire_record(**overrides) -> dict:
    data = {
        "symbol": "SOL-PERP",
        "displayName": "SOL-PERP",
        "price": None,
        "priceChange24h": None,
        "quoteVolume": 125000000.0,
        "baseVolume": 850000.0,
        "marketIndex": 0,
        "marketType": "perp",
        "openInterest": 3200000.0,
        "lastUpdated": 1704110400000,
    }
    data.update(overrides)
    return data


class TestMarketRecord:
    """Tests for the MarketRecord model"""

    def test_wire_format_uses_camel_case(self):
        """Verify to_wire emits camelCase keys"""
        record = MarketRecord.model_validate(wire_record())
        wire = record.to_wire()
        assert set(wire) == set(wire_record())
        assert wire["quoteVolume"] == 125000000.0

    def test_accepts_snake_case_names(self):
        """Verify Python field names work as constructor arguments"""
        record = MarketRecord(
            symbol="BTC-PERP", display_name="BTC-PERP", price=42000.0, price_change_24h=-1.5,
            quote_volume=1.0, base_volume=1.0, market_index=1, market_type="perp",
            open_interest=0.0, last_updated=1,
        )
        assert record.price == 42000.0

    def test_negative_volume_rejected(self):
        """Verify volumes cannot be negative"""
        with pytest.raises(ValidationError):
            MarketRecord.model_validate(wire_record(quoteVolume=-1.0))

    def test_nan_open_interest_rejected(self):
        """Verify NaN is not a valid number"""
        with pytest.raises(ValidationError):
            MarketRecord.model_validate(wire_record(openInterest=float("nan")))


class TestValidateMarketRecord:
    """Tests for strict read-time validation"""

    def test_valid_record_passes(self):
        """Verify a complete record is accepted"""
        assert validate_market_record(wire_record()) is not None

    def test_integer_volumes_accepted(self):
        """Verify JSON integers are valid for float fields"""
        assert validate_market_record(wire_record(quoteVolume=5, openInterest=0)) is not None

    def test_missing_open_interest_rejected(self):
        """Verify a record missing openInterest is dropped"""
        data = wire_record()
        del data["openInterest"]
        assert validate_market_record(data) is None

    def test_missing_nullable_price_key_rejected(self):
        """Verify price must be present even though it may be null"""
        data = wire_record()
        del data["price"]
        assert validate_market_record(data) is None

    def test_string_number_rejected(self):
        """Verify numeric strings are not coerced"""
        assert validate_market_record(wire_record(quoteVolume="5")) is None

    def test_float_market_index_rejected(self):
        """Verify marketIndex must be an integer"""
        assert validate_market_record(wire_record(marketIndex=1.0)) is None

    def test_empty_symbol_rejected(self):
        """Verify symbol cannot be empty"""
        assert validate_market_record(wire_record(symbol="")) is None

    @pytest.mark.parametrize("value", [None, "string", 42, ["list"]])
    def test_non_dict_rejected(self, value):
        """Verify non-object cache values never raise"""
        assert validate_market_record(value) is None


class TestUpdateStatus:
    """Tests for the UpdateStatus model"""

    def test_to_json_omits_missing_error(self):
        """Verify lastError is left out when unset"""
        status = UpdateStatus(is_updating=True, last_attempt=10)
        assert status.to_json() == '{"isUpdating":true,"lastAttempt":10,"lastSuccess":0,"errorCount":0}'

    def test_negative_error_count_rejected(self):
        """Verify errorCount is non-negative"""
        with pytest.raises(ValidationError):
            UpdateStatus(is_updating=False, last_attempt=1, error_count=-1)


class TestResponses:
    """Tests for read endpoint payloads"""

    def test_error_response_defaults(self):
        """Verify the error payload shape"""
        wire = MarketsErrorResponse(error="Redis down").to_wire()
        assert wire == {
            "success": False,
            "error": "Redis down",
            "markets": [],
            "count": 0,
            "lastUpdated": None,
            "message": "Failed to load market data",
        }


class TestDriftVolumeMarket:
    """Tests for raw upstream volume rows"""

    def test_parses_decimal_strings(self):
        """Verify volumes sent as strings are parsed"""
        row = DriftVolumeMarket.model_validate({
            "symbol": " SOL-PERP ", "quoteVolume": "12.5", "baseVolume": "3", "marketIndex": 0,
        })
        assert row.symbol == "SOL-PERP"
        assert row.quote_volume == 12.5
        assert row.market_type == "perp"

    def test_blank_symbol_rejected(self):
        """Verify whitespace-only symbols are rejected"""
        with pytest.raises(ValidationError):
            DriftVolumeMarket.model_validate({
                "symbol": "   ", "quoteVolume": "1", "baseVolume": "1", "marketIndex": 0,
            })


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
