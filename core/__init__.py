"""
Core Package

Contains the source- and backend-agnostic core of the market cache:
- MarketSource: Abstract base class for upstream market data providers
- CacheStore / CachePipeline: Abstract contract for key-value cache backends
- Schemas: Pydantic models for market records, update status and API payloads
- Config, logging and the error hierarchy shared by every layer
"""
