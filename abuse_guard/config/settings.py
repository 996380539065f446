"""
Abuse Guard - Configuration Settings

Centralized configuration using Pydantic Settings for type-safe
environment variable handling with validation.

Detection thresholds are NOT read from here; they live in
``thresholds.py`` as per-detector models so they can be swapped
per plan tier at runtime. This module covers process-level knobs.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Example: APP_ENV=production will set app_env to "production"
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Application Settings
    # =========================================================================
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    app_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )

    # =========================================================================
    # Metrics Configuration
    # =========================================================================
    metrics_enabled: bool = Field(
        default=False,
        description="Start the standalone Prometheus exporter on setup_metrics()"
    )
    metrics_port: int = Field(
        default=9100,
        ge=1,
        le=65535,
        description="Prometheus metrics port"
    )

    # =========================================================================
    # Abuse Engine
    # =========================================================================
    abuse_engine_enabled: bool = Field(
        default=True,
        description="Master switch; a disabled engine returns empty reports"
    )
    abuse_plan_config_path: str | None = Field(
        default=None,
        description="Optional YAML file with per-plan-tier threshold overrides"
    )
    abuse_max_stored_reports: int = Field(
        default=1000,
        ge=1,
        description="Reports kept in memory for retrieval and false-positive marking"
    )

    @model_validator(mode="after")
    def _validate_production_metrics(self) -> "Settings":
        """Production deployments must expose metrics."""
        if self.app_env == "production" and not self.metrics_enabled:
            raise ValueError(
                "Missing required settings for production: METRICS_ENABLED"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to avoid re-parsing environment on every call.
    """
    return Settings()


# Singleton settings instance for easy import
settings = get_settings()
