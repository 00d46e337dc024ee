# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for the
learning progress service. Settings are loaded from environment variables
with sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from src.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.progress.completion_threshold)
    90.0
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database configuration for progress and catalog data.

    Attributes:
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        database: Database name.
        url_override: Full connection URL, takes precedence over components.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    user: str = "progress"
    password: SecretStr = SecretStr("progress_password")
    host: str = "localhost"
    port: int = 5432
    database: str = "learning_progress"
    url_override: str | None = Field(
        default=None,
        validation_alias="DB_URL",
    )
    pool_size: int = 10
    max_overflow: int = 20

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        if self.url_override:
            return self.url_override
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"

    @property
    def sync_url(self) -> str:
        """Build the sync database URL for migrations."""
        if self.url_override:
            return self.url_override.replace("+asyncpg", "")
        pwd = self.password.get_secret_value()
        return f"postgresql://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"


class RateLimitSettings(BaseSettings):
    """Rate limiting configuration.

    Attributes:
        enabled: Whether rate limiting is applied.
        requests_per_minute: Maximum requests per minute per client.
        storage_uri: slowapi storage backend (memory:// or redis://...).
    """

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        extra="ignore",
    )

    enabled: bool = True
    requests_per_minute: int = 120
    storage_uri: str = "memory://"


class CORSSettings(BaseSettings):
    """CORS configuration for API.

    Attributes:
        origins: Comma-separated list of allowed origins.
        allow_credentials: Whether to allow credentials.
        allow_methods: Allowed HTTP methods.
        allow_headers: Allowed HTTP headers.
    """

    model_config = SettingsConfigDict(
        env_prefix="CORS_",
        extra="ignore",
    )

    origins: str = "http://localhost:3000"
    allow_credentials: bool = True
    allow_methods: list[str] = ["*"]
    allow_headers: list[str] = ["*"]

    @property
    def origins_list(self) -> list[str]:
        """Parse origins string into a list."""
        return [origin.strip() for origin in self.origins.split(",") if origin.strip()]


class APISettings(BaseSettings):
    """API server configuration.

    Attributes:
        host: Host to bind to.
        port: Port to listen on.
        workers: Number of worker processes.
        reload: Whether to enable auto-reload.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 2
    reload: bool = False


class ProgressSettings(BaseSettings):
    """Tunable thresholds of the progress tracking and analytics engine.

    Attributes:
        completion_threshold: percentWatched at which a lesson auto-completes.
        active_window_days: Window for counting a learner as active.
        streak_lookback_days: How far back sessions are read for streaks.
        streak_gap_tolerance_days: Largest gap between active days that
            keeps a streak alive.
        dropoff_threshold: Minimum lesson-to-lesson dropoff rate (%) reported.
        max_dropoff_points: Maximum course dropoff points returned.
        dropoff_bucket_seconds: Bucket width for lesson dropoff positions.
        min_dropoff_learners: Minimum learners in a dropoff bucket.
        max_lesson_dropoff_points: Maximum lesson dropoff buckets returned.
        hotspot_bucket_seconds: Bucket width for interaction hotspots.
        min_hotspot_interactions: Minimum interactions in a hotspot bucket.
        max_hotspots: Maximum hotspots returned.
        performance_quartile: Fraction of learners in the top/bottom tiers.
        struggling_time_multiplier: Lesson time over the learner average
            that marks a lesson as struggling.
        struggling_attempt_limit: Session count above which a lesson is
            marked as struggling.
        strong_time_ratio: Lesson time under the learner average that marks
            a first-try completion as strong.
    """

    model_config = SettingsConfigDict(
        env_prefix="PROGRESS_",
        extra="ignore",
    )

    completion_threshold: float = Field(default=90.0, ge=0, le=100)
    active_window_days: int = Field(default=7, ge=1)
    streak_lookback_days: int = Field(default=30, ge=1)
    streak_gap_tolerance_days: int = Field(default=1, ge=1)
    dropoff_threshold: float = 20.0
    max_dropoff_points: int = 5
    dropoff_bucket_seconds: int = Field(default=10, gt=0)
    min_dropoff_learners: int = 3
    max_lesson_dropoff_points: int = 5
    hotspot_bucket_seconds: int = Field(default=30, gt=0)
    min_hotspot_interactions: int = 5
    max_hotspots: int = 10
    performance_quartile: float = Field(default=0.25, gt=0, le=0.5)
    struggling_time_multiplier: float = 2.0
    struggling_attempt_limit: int = 3
    strong_time_ratio: float = 0.8


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        database: Database settings.
        rate_limit: Rate limiting settings.
        cors: CORS settings.
        api: API server settings.
        progress: Progress engine thresholds.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    # Subsettings - loaded with their own env prefixes
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)
    api: APISettings = Field(default_factory=APISettings)
    progress: ProgressSettings = Field(default_factory=ProgressSettings)

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
