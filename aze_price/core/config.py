"""
Configuration management for AZE Price Service.
Uses pydantic-settings for environment variable management.
"""

import math
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Retention horizon is fixed in code, not configurable through the environment
RETENTION_DAYS = 7


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="AZE Price Service")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)

    # Server configuration
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=3100)

    # Database configuration
    database_url: str = Field(default="sqlite:///./aze_price.db")
    database_echo: bool = Field(default=False)

    # Ingestion cadence (milliseconds, matches POLLING_INTERVAL_MS)
    polling_interval_ms: int = Field(default=30000, gt=0)

    # Derivation and fallback constants
    btc_divisor: float = Field(default=1000.0)
    fallback_btc_brl: float = Field(default=550000.0)
    fallback_btc_usd: float = Field(default=95000.0)
    fallback_usd_brl: float = Field(default=5.50)

    # Upstream quote API (AwesomeAPI)
    awesome_api_url: str = Field(
        default="https://economia.awesomeapi.com.br/json/last/BTC-BRL,BTC-USD,USD-BRL"
    )
    awesome_api_token: Optional[str] = Field(default=None)
    fetch_timeout_seconds: float = Field(default=10.0, gt=0)

    # Health and retention scheduling
    stale_threshold_seconds: int = Field(default=120, gt=0)
    cleanup_hour: int = Field(default=3, ge=0, le=23)
    cleanup_minute: int = Field(default=0, ge=0, le=59)

    # Logging configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    @field_validator('btc_divisor', 'fallback_btc_brl', 'fallback_btc_usd', 'fallback_usd_brl')
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Divisor and fallback prices must be finite and strictly positive."""
        if not math.isfinite(v) or v <= 0:
            raise ValueError("value must be finite and greater than zero")
        return v

    @field_validator('awesome_api_token')
    @classmethod
    def validate_token(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty token as unset."""
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = {'json', 'text'}
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {', '.join(valid_formats)}")
        return v.lower()

    @property
    def polling_interval_seconds(self) -> float:
        """Ingestion cadence in seconds."""
        return self.polling_interval_ms / 1000


# Global settings instance
settings = Settings()
