"""
Centralized configuration management using Pydantic Settings
Single source of truth for the exporter's configuration

Every value can be supplied through the process environment (case-insensitive)
or a local .env file. A missing or malformed DSMR_BASE_URL fails validation,
which the entrypoint treats as a fatal startup error.
"""
import re
from functools import lru_cache

from pydantic import AnyHttpUrl, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from . import __version__
from .exceptions import ConfigurationError

METRIC_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")


class Settings(BaseSettings):
    """Exporter settings with environment variable support and validation"""

    # ========================================================================
    # Application
    # ========================================================================
    app_name: str = Field(
        default="DSMR Logger Exporter",
        description="Application name"
    )
    app_version: str = Field(
        default=__version__,
        description="Application version"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )
    json_logs: bool = Field(
        default=True,
        description="Render logs as JSON (False: human-readable console output)"
    )

    # ========================================================================
    # API Server
    # ========================================================================
    api_host: str = Field(
        default="0.0.0.0",
        description="API server bind host"
    )
    api_port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="API server port"
    )

    # ========================================================================
    # Upstream (DSMR logger)
    # ========================================================================
    dsmr_base_url: AnyHttpUrl = Field(
        ...,
        description="Base URL of the DSMR logger, e.g. http://192.168.1.50"
    )
    upstream_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        le=120,
        description="Timeout for a single upstream poll in seconds"
    )

    # ========================================================================
    # Metrics
    # ========================================================================
    metrics_prefix: str = Field(
        default="dsmr_logger",
        description="Prefix for every exported metric name"
    )
    serve_stale_on_error: bool = Field(
        default=True,
        description="On upstream failure, serve the last good gauges marked as stale"
    )

    # ========================================================================
    # Validators
    # ========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()

    @field_validator("metrics_prefix")
    @classmethod
    def validate_metrics_prefix(cls, v: str) -> str:
        """Prefix must itself be a valid metric name"""
        if not METRIC_NAME_RE.match(v):
            raise ValueError(f"Invalid metrics prefix: {v!r}")
        return v

    class Config:
        """Pydantic configuration"""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance
    Uses lru_cache so the environment is parsed once per process
    """
    return Settings()


def load_settings() -> Settings:
    """
    Load settings for process startup

    Raises:
        ConfigurationError: environment is missing or has invalid values
    """
    try:
        return get_settings()
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        ]
        raise ConfigurationError("Invalid exporter configuration", errors=errors) from e
