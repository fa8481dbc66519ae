"""
Unified Logging Configuration

This module sets up a centralized logging system for the entire application.
All modules should import and use the logger from this module instead of
using print() statements.

Usage:
    from core.logging import logger

    logger.info("Refresh job started")
    logger.warning("Filtered out 2 invalid market records")
    logger.error("Pipeline execution failed")

Log Levels (from most to least verbose):
    DEBUG    - Detailed diagnostic information (e.g., "API Request: drift /amm/openInterest")
    INFO     - General informational messages (e.g., "Retrieved 42 markets")
    WARNING  - Potential issues (e.g., "Market data is 412 seconds old")
    ERROR    - Errors that don't crash the app (e.g., "Market data update failed")
    CRITICAL - Severe errors

Configuration:
    Log level is controlled by the LOG_LEVEL setting in .env file.
"""

import logging
import sys
from typing import Optional


def setup_logging(
    log_level: str = "INFO",
    log_format: Optional[str] = None,
    include_timestamp: bool = True,
    include_module: bool = True
) -> logging.Logger:
    """
    Configure and return the application logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom log format string (uses default if None)
        include_timestamp: Include timestamp in log messages
        include_module: Include module name in log messages

    Returns:
        logging.Logger: Configured logger instance

    Example:
        >>> logger = setup_logging(log_level="DEBUG")
        >>> logger.info("Application started")
        2024-01-01 12:00:00 [INFO] driftcache: Application started
    """
    if log_format is None:
        format_parts = []

        if include_timestamp:
            format_parts.append("%(asctime)s")

        format_parts.append("[%(levelname)s]")

        if include_module:
            format_parts.append("%(name)s")

        format_parts.append("%(message)s")

        log_format = " ".join(format_parts)

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True  # Override any existing configuration
    )

    logger = logging.getLogger("driftcache")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    return logger


# ============================================
# Initialize Logger with Settings
# ============================================

# Try to load log level from settings, fallback to INFO
try:
    from core.config import settings
    log_level = settings.log_level if hasattr(settings, 'log_level') else "INFO"
except ImportError:
    log_level = "INFO"

# Create the global logger instance
logger = setup_logging(log_level=log_level)


# ============================================
# Convenience Functions
# ============================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module or component.

    Args:
        name: Name for the logger (typically __name__)

    Returns:
        logging.Logger: Logger instance for the specified name

    Example:
        # In services/refresh_job.py:
        from core.logging import get_logger
        logger = get_logger(__name__)  # Creates "driftcache.services.refresh_job"
    """
    return logging.getLogger(f"driftcache.{name}")


def set_log_level(level: str) -> None:
    """
    Change the log level at runtime.

    Args:
        level: New log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logging.getLogger().setLevel(getattr(logging, level.upper(), logging.INFO))


# ============================================
# Log Helper Functions
# ============================================

def log_api_request(source: str, endpoint: str, params: dict = None) -> None:
    """
    Log an upstream API request with consistent formatting.

    Example:
        >>> log_api_request("drift", "/amm/openInterest", {"marketName": "SOL-PERP"})
        [DEBUG] API Request: drift /amm/openInterest | Params: {'marketName': 'SOL-PERP'}
    """
    if params:
        logger.debug(f"API Request: {source} {endpoint} | Params: {params}")
    else:
        logger.debug(f"API Request: {source} {endpoint}")


def log_api_response(source: str, endpoint: str, status: int, response_time: float = None) -> None:
    """
    Log an upstream API response with status and timing information.

    Example:
        >>> log_api_response("drift", "/stats/markets/volume/24h", 200, 0.342)
        [DEBUG] API Response: drift /stats/markets/volume/24h | Status: 200 | Time: 0.342s
    """
    time_str = f" | Time: {response_time:.3f}s" if response_time else ""
    logger.debug(f"API Response: {source} {endpoint} | Status: {status}{time_str}")


logger.debug("Logging system initialized")
