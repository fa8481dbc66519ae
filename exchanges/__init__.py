"""
Upstream Connectors Package

Each upstream provider has its own subfolder with:
- api_client.py: REST API logic
- __init__.py: Source class implementing core.market_source.MarketSource

Currently implemented:
- drift: Drift protocol perpetual markets (volume + open interest)
"""
