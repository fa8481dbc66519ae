"""
Configuration Management Module

This module handles loading, validating, and providing access to application configuration
from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file
- Validates the cache TTL policy against the refresh interval
- Provides type-safe access to configuration values
- Builds the Redis connection URL from host/port/db when no URL is given
- Handles optional settings with sensible defaults

Usage:
    from core.config import settings

    # Access configuration values
    print(settings.drift_base_url)
    print(settings.cache_ttl_seconds)
"""

from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


VALID_ENVIRONMENTS = ["development", "staging", "production"]
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    """
    Application Settings

    This class defines all configuration parameters for the application.
    Values are automatically loaded from environment variables or .env file.

    Attributes:
        drift_base_url: Base URL for the Drift data API
        request_timeout: Timeout for a single HTTP request in seconds
        max_retries: Attempts per upstream request before giving up
        retry_delay: Base delay between retries (multiplied by the attempt number)
        refresh_interval_seconds: How often the scheduler refreshes the cache
        cache_ttl_seconds: TTL for per-market keys (one interval plus a safety buffer)
        stale_threshold_seconds: Age after which served data is flagged stale
        upstream_timeout: Bound on a whole health check or market fetch
        cache_timeout: Bound on a single cache call or pipeline
        redis_url / redis_host: Redis location (both empty = in-memory cache)
        cron_secret: Bearer token the scheduler must present
    """

    # ============================================
    # Drift API Configuration
    # ============================================

    drift_base_url: str = Field(
        default="https://data.api.drift.trade",
        description="Drift data API base URL"
    )

    request_timeout: int = Field(
        default=10,
        description="HTTP request timeout in seconds"
    )

    max_retries: int = Field(
        default=3,
        description="Maximum attempts per upstream request"
    )

    retry_delay: float = Field(
        default=1.0,
        description="Base retry delay in seconds (linear backoff)"
    )

    open_interest_hours_back: int = Field(
        default=1,
        description="Window (hours) used when sampling open interest"
    )

    open_interest_samples: int = Field(
        default=100,
        description="Number of open interest samples requested per market"
    )

    max_concurrent_requests: int = Field(
        default=10,
        description="Maximum parallel open interest requests during a fetch"
    )

    # ============================================
    # Refresh & Cache Policy
    # ============================================

    refresh_interval_seconds: int = Field(
        default=60,
        description="Interval of the scheduled full refresh"
    )

    cache_ttl_seconds: int = Field(
        default=90,
        description="TTL of market keys; must exceed one refresh interval but not two"
    )

    stale_threshold_seconds: int = Field(
        default=300,
        description="Cache age (seconds) after which data is reported stale"
    )

    upstream_timeout: float = Field(
        default=30.0,
        description="Upper bound (seconds) for an upstream health check or full fetch"
    )

    cache_timeout: float = Field(
        default=5.0,
        description="Upper bound (seconds) for a cache call or pipeline execution"
    )

    cache_key_prefix: str = Field(
        default="drift",
        description="Namespace prefix for every cache key"
    )

    # ============================================
    # Single-Flight Refresh Guard
    # ============================================

    refresh_lock_ttl_seconds: int = Field(
        default=30,
        description="TTL of the lock key taken by an on-demand refresh (renewed while the refresh runs)"
    )

    refresh_wait_timeout_seconds: float = Field(
        default=70.0,
        description="How long a reader waits for another reader's refresh (covers a full refresh)"
    )

    refresh_poll_interval_seconds: float = Field(
        default=0.5,
        description="Poll interval while waiting for another reader's refresh"
    )

    # ============================================
    # Redis Configuration
    # ============================================

    redis_url: str = Field(
        default="",
        description="Full Redis URL (takes precedence over host/port/db)"
    )

    redis_host: str = Field(
        default="",
        description="Redis server host (empty = use in-memory cache)"
    )

    redis_port: int = Field(
        default=6379,
        description="Redis server port"
    )

    redis_db: int = Field(
        default=0,
        description="Redis database number"
    )

    redis_password: str = Field(
        default="",
        description="Redis password (optional)"
    )

    # ============================================
    # Security
    # ============================================

    cron_secret: str = Field(
        default="",
        description="Bearer token required on the scheduled refresh endpoint"
    )

    # ============================================
    # Application Configuration
    # ============================================

    app_host: str = Field(
        default="0.0.0.0",
        description="FastAPI server host address"
    )

    app_port: int = Field(
        default=8000,
        description="FastAPI server port"
    )

    environment: str = Field(
        default="development",
        description="Application environment (development, staging, production)"
    )

    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    enable_internal_scheduler: bool = Field(
        default=False,
        description="Run the refresh loop in-process instead of relying on an external cron"
    )

    # ============================================
    # CORS Configuration
    # ============================================

    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins"
    )

    # ============================================
    # Pydantic Settings Configuration
    # ============================================

    model_config = SettingsConfigDict(
        # Look for .env file in the project root
        env_file=".env",
        # Ignore extra fields in .env that aren't defined here
        extra="ignore",
        # Case-insensitive environment variable matching
        case_sensitive=False
    )

    # ============================================
    # Custom Properties
    # ============================================

    @property
    def cors_origins_list(self) -> List[str]:
        """
        Convert comma-separated CORS origins string to a list.

        Example:
            >>> settings.cors_origins_list
            ['http://localhost:3000', 'http://localhost:5173']
        """
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def use_redis(self) -> bool:
        """
        Check if Redis is configured.

        Returns:
            True if a Redis URL or host is set, False otherwise (use in-memory cache)
        """
        return bool(self.redis_url or self.redis_host)

    @property
    def redis_dsn(self) -> str:
        """
        Redis connection URL.

        Returns redis_url verbatim when set, otherwise builds one from
        host/port/db/password.

        Example:
            >>> settings.redis_dsn
            'redis://localhost:6379/0'
        """
        if self.redis_url:
            return self.redis_url
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    @property
    def is_production(self) -> bool:
        """True when running in the production environment."""
        return self.environment.lower() == "production"


# ============================================
# Global Settings Instance
# ============================================

# Create a single instance of settings to be imported throughout the application
settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration(config: Settings = None) -> None:
    """
    Validate critical configuration settings on application startup.

    Args:
        config: Settings to validate (defaults to the global settings)

    Raises:
        ValueError: If required configuration is missing or invalid

    The TTL policy: a market key must survive one missed refresh but not two,
    so refresh_interval < cache_ttl < 2 * refresh_interval.
    """
    # Import logger here to avoid circular import
    # (logging.py imports config.py, so we can't import at module level)
    from core.logging import logger

    config = config or settings

    if config.refresh_interval_seconds <= 0:
        raise ValueError("REFRESH_INTERVAL_SECONDS must be positive")

    interval = config.refresh_interval_seconds
    ttl = config.cache_ttl_seconds
    if not (interval < ttl < 2 * interval):
        raise ValueError(
            f"CACHE_TTL_SECONDS ({ttl}) must be greater than REFRESH_INTERVAL_SECONDS ({interval}) "
            f"and less than twice it ({2 * interval})"
        )

    if config.stale_threshold_seconds <= 0:
        raise ValueError("STALE_THRESHOLD_SECONDS must be positive")

    if config.refresh_lock_ttl_seconds <= 0:
        raise ValueError("REFRESH_LOCK_TTL_SECONDS must be positive")

    # Waiting readers must outlast the longest refresh: health check + fetch + pipeline
    longest_refresh = 2 * config.upstream_timeout + config.cache_timeout
    if config.refresh_wait_timeout_seconds < longest_refresh:
        raise ValueError(
            f"REFRESH_WAIT_TIMEOUT_SECONDS ({config.refresh_wait_timeout_seconds}) must be at least "
            f"2 * UPSTREAM_TIMEOUT + CACHE_TIMEOUT ({longest_refresh})"
        )

    # Validate port number
    if not (1 <= config.app_port <= 65535):
        raise ValueError(f"Invalid port number: {config.app_port}. Must be between 1 and 65535")

    if config.log_level.upper() not in VALID_LOG_LEVELS:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{config.log_level}'. "
            f"Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )

    if config.environment.lower() not in VALID_ENVIRONMENTS:
        raise ValueError(
            f"Invalid ENVIRONMENT: '{config.environment}'. "
            f"Must be one of: {', '.join(VALID_ENVIRONMENTS)}"
        )

    if not config.cron_secret:
        logger.warning("CRON_SECRET is not set - scheduled refresh requests will be rejected")

    # Log successful validation
    logger.info("Configuration validated successfully")
    logger.info(f"Drift API: {config.drift_base_url}")
    logger.info(f"Refresh interval: {interval}s | Cache TTL: {ttl}s | Stale after: {config.stale_threshold_seconds}s")
    logger.info(f"Server: {config.app_host}:{config.app_port} ({config.environment})")
    logger.info(f"Log level: {config.log_level.upper()}")
    logger.info(f"Cache: {'Redis' if config.use_redis else 'In-Memory'}")
