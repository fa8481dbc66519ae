"""
Core Utilities Package

This package contains utility functions and helpers used throughout the application.

Modules:
    - time: Epoch-millisecond helpers and cache age computation
"""

from core.utils.time import current_utc_timestamp, age_in_seconds

__all__ = ["current_utc_timestamp", "age_in_seconds"]
