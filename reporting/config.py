"""
Reporting service configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All configuration values come from environment variables or .env files;
no hardcoded URLs or credentials.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings


class ReportingSettings(BaseSettings):
    """Reporting service configuration.

    Attributes:
        database_url: SQLAlchemy async URL of the sample store.
        redis_url: Redis URL for the component registry cache.
        live_poll_interval_s: Seconds between store polls while a stream
            follows live data.
        component_cache_ttl_s: Lifetime of cached component registries.
        max_aggregation_configs: Max formulas per aggregation request.
        max_samples_per_request: Max samples per ingest batch.
        max_request_bytes: Max ingest request body size.
        api_host: Interface the HTTP server binds to.
        api_port: Port the HTTP server listens on.
        log_level: Root log level.
    """

    database_url: str
    redis_url: str
    live_poll_interval_s: float = 1.0
    component_cache_ttl_s: int = 60
    max_aggregation_configs: int = 100
    max_samples_per_request: int = 1000
    max_request_bytes: int = 1048576
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    @field_validator("live_poll_interval_s")
    @classmethod
    def live_poll_interval_must_be_positive(cls, v: float) -> float:
        """Validate the live poll interval is strictly positive."""
        if v <= 0:
            raise ValueError("LIVE_POLL_INTERVAL_S must be > 0")
        return v

    @field_validator("component_cache_ttl_s")
    @classmethod
    def cache_ttl_must_be_positive(cls, v: int) -> int:
        """Validate the cache TTL is at least one second."""
        if v < 1:
            raise ValueError("COMPONENT_CACHE_TTL_S must be >= 1")
        return v

    @field_validator("max_aggregation_configs", "max_samples_per_request")
    @classmethod
    def limits_must_be_positive(cls, v: int) -> int:
        """Validate request limits are at least 1."""
        if v < 1:
            raise ValueError("request limits must be >= 1")
        return v

    @field_validator("max_request_bytes")
    @classmethod
    def max_request_bytes_must_be_positive(cls, v: int) -> int:
        """Validate the request body limit is at least 1 byte."""
        if v < 1:
            raise ValueError("MAX_REQUEST_BYTES must be >= 1")
        return v

    @field_validator("api_port")
    @classmethod
    def api_port_must_be_valid(cls, v: int) -> int:
        """Validate the HTTP port is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("API_PORT must be between 1 and 65535")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        """Validate and normalise the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"LOG_LEVEL must be a standard level name (got: {v!r})")
        return level

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> ReportingSettings:
    """Return the process-wide settings, loading them on first use."""
    return ReportingSettings()
