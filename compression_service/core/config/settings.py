#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
compression service. Provider credentials, timeouts, retry and circuit
breaker parameters and the quality tier table are all read here, exactly
once, and turned into a single ``CompressionServiceConfig`` value that is
handed to the orchestrator.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Easy testing with override mechanisms

Author: System Architect
Date: 2026-10-19
"""

import math
from typing import TYPE_CHECKING, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from compression_service.core.config.constants import (
    CB_FAILURE_THRESHOLD,
    CB_HALF_OPEN_MAX_ATTEMPTS,
    CB_RESET_TIMEOUT_MS,
    CB_SUCCESSES_TO_CLOSE,
    DEFAULT_QUALITY_TIER_TABLE,
    DOWNLOAD_TIMEOUT_MS,
    HEALTH_CHECK_TIMEOUT_MS,
    MAX_RETRIES,
    REQUEST_TIMEOUT_MS,
    RETRY_BASE_DELAY_MS,
    RETRY_MAX_DELAY_MS,
    SKIP_THRESHOLD_BYTES,
    ProviderName,
)

if TYPE_CHECKING:
    from compression_service.models import CompressionServiceConfig


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """
    General application settings.

    STAGE-0: Application initialization
    """

    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Image Compression Service", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from compression_service.core.config import get_settings

        settings = get_settings()
        config = settings.to_service_config()
        orchestrator = CompressionOrchestrator(config)
    """

    # Provider credentials
    TINIFY_API_KEY: str | None = Field(default=None, description="TinyPNG API key")
    CLOUDINARY_CLOUD_NAME: str | None = Field(default=None, description="Cloudinary cloud name")
    CLOUDINARY_API_KEY: str | None = Field(default=None, description="Cloudinary API key")
    CLOUDINARY_API_SECRET: str | None = Field(default=None, description="Cloudinary API secret")

    # Orchestration
    COMPRESSION_PROVIDER_PRIORITY: list[str] = Field(
        default=[ProviderName.TINYPNG.value, ProviderName.CLOUDINARY.value],
        description="Providers to attempt, in priority order",
    )
    COMPRESSION_TIMEOUT_MS: int = Field(default=REQUEST_TIMEOUT_MS, gt=0)
    COMPRESSION_DOWNLOAD_TIMEOUT_MS: int = Field(default=DOWNLOAD_TIMEOUT_MS, gt=0)
    COMPRESSION_HEALTH_TIMEOUT_MS: int = Field(default=HEALTH_CHECK_TIMEOUT_MS, gt=0)
    COMPRESSION_MAX_RETRIES: int = Field(default=MAX_RETRIES, ge=1)
    COMPRESSION_RETRY_DELAY_MS: int = Field(default=RETRY_BASE_DELAY_MS, ge=0)
    COMPRESSION_MAX_RETRY_DELAY_MS: int = Field(default=RETRY_MAX_DELAY_MS, ge=0)
    COMPRESSION_CANCEL_LOSING_ATTEMPTS: bool = Field(
        default=False,
        description="Cancel racing attempts once a winner is found",
    )
    COMPRESSION_QUALITY_TIERS: list[tuple[float, str, int]] = Field(
        default=list(DEFAULT_QUALITY_TIER_TABLE),
        description="(max_size, quality, width) rows; JSON in the environment",
    )
    COMPRESSION_SKIP_THRESHOLD: int = Field(default=SKIP_THRESHOLD_BYTES, ge=0)

    # Circuit Breaker settings
    CB_FAILURE_THRESHOLD: int = Field(default=CB_FAILURE_THRESHOLD, ge=1)
    CB_RESET_TIMEOUT_MS: int = Field(default=CB_RESET_TIMEOUT_MS, ge=0)
    CB_HALF_OPEN_MAX_ATTEMPTS: int = Field(default=CB_HALF_OPEN_MAX_ATTEMPTS, ge=1)
    CB_SUCCESSES_TO_CLOSE: int = Field(default=CB_SUCCESSES_TO_CLOSE, ge=1)

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Image Compression Service", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("COMPRESSION_PROVIDER_PRIORITY")
    @classmethod
    def validate_priority(cls, v):
        """Only known providers may appear in the priority list."""
        known = {name.value for name in ProviderName}
        normalized = [name.strip().lower() for name in v]
        unknown = [name for name in normalized if name not in known]
        if unknown:
            raise ValueError(f"Unknown providers in COMPRESSION_PROVIDER_PRIORITY: {unknown}")
        return normalized

    @field_validator("COMPRESSION_QUALITY_TIERS")
    @classmethod
    def validate_quality_tiers(cls, v):
        """Tiers must be ascending and end with an unbounded tier."""
        if not v:
            raise ValueError("COMPRESSION_QUALITY_TIERS must not be empty")
        sizes = [row[0] for row in v]
        if any(b <= a for a, b in zip(sizes, sizes[1:])):
            raise ValueError("COMPRESSION_QUALITY_TIERS must be strictly ascending by max_size")
        if not math.isinf(sizes[-1]):
            raise ValueError("The last quality tier must have an unbounded max_size")
        return v

    # Nested configuration objects
    @property
    def logging(self) -> LoggingSettings:
        """Get logging settings."""
        return LoggingSettings(LOG_LEVEL=self.LOG_LEVEL, LOG_FORMAT=self.LOG_FORMAT)

    @property
    def app(self) -> ApplicationSettings:
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            API_HOST=self.API_HOST,
            API_PORT=self.API_PORT,
        )

    def to_service_config(self) -> "CompressionServiceConfig":
        """
        Build the orchestrator configuration from these settings.

        Missing credentials produce ``None`` provider configs; the provider
        registry then leaves that provider unconfigured.
        """
        from compression_service.models import (
            CircuitBreakerConfig,
            CloudinaryConfig,
            CompressionServiceConfig,
            QualityTier,
            TinyPNGConfig,
        )

        tinypng = None
        if self.TINIFY_API_KEY:
            tinypng = TinyPNGConfig(api_key=self.TINIFY_API_KEY)

        cloudinary = None
        if self.CLOUDINARY_CLOUD_NAME or self.CLOUDINARY_API_KEY or self.CLOUDINARY_API_SECRET:
            cloudinary = CloudinaryConfig(
                cloud_name=self.CLOUDINARY_CLOUD_NAME or "",
                api_key=self.CLOUDINARY_API_KEY or "",
                api_secret=self.CLOUDINARY_API_SECRET or "",
            )

        return CompressionServiceConfig(
            provider_priority=tuple(self.COMPRESSION_PROVIDER_PRIORITY),
            timeout_ms=self.COMPRESSION_TIMEOUT_MS,
            download_timeout_ms=self.COMPRESSION_DOWNLOAD_TIMEOUT_MS,
            health_timeout_ms=self.COMPRESSION_HEALTH_TIMEOUT_MS,
            max_retries=self.COMPRESSION_MAX_RETRIES,
            retry_delay_ms=self.COMPRESSION_RETRY_DELAY_MS,
            max_retry_delay_ms=self.COMPRESSION_MAX_RETRY_DELAY_MS,
            circuit_breaker=CircuitBreakerConfig(
                failure_threshold=self.CB_FAILURE_THRESHOLD,
                reset_timeout_ms=self.CB_RESET_TIMEOUT_MS,
                half_open_max_attempts=self.CB_HALF_OPEN_MAX_ATTEMPTS,
                successes_to_close=self.CB_SUCCESSES_TO_CLOSE,
            ),
            quality_tiers=tuple(
                QualityTier(max_size=max_size, quality=quality, width=width)
                for max_size, quality, width in self.COMPRESSION_QUALITY_TIERS
            ),
            skip_threshold=self.COMPRESSION_SKIP_THRESHOLD,
            cancel_losing_attempts=self.COMPRESSION_CANCEL_LOSING_ATTEMPTS,
            tinypng=tinypng,
            cloudinary=cloudinary,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
