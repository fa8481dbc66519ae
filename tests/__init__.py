"""
Test Suite

Unit tests for the Drift market cache.

Structure:
- tests/conftest.py: Shared fixtures (in-memory cache, scripted market source)
- tests/unit/: Tests for individual components and the HTTP routes

Uses pytest with pytest-asyncio for testing async functionality.
"""
