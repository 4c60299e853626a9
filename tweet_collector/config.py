"""Collector settings using Pydantic Settings."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError


class Settings(BaseSettings):
    """Engine settings loaded from environment variables / .env file."""

    # Structured API (RapidAPI-style Twitter endpoint)
    rapidapi_url: str = ""
    rapidapi_key: str = ""
    page_size: int = Field(20, ge=1)
    request_timeout: float = Field(30.0, gt=0)

    # Transient failure retries
    max_attempts: int = Field(5, ge=1)
    transport_base_delay: float = Field(5.0, ge=0)
    transport_max_delay: float = Field(60.0, ge=0)

    # Rate limit backoff (seconds)
    rate_limit_threshold: int = Field(3, ge=1)
    rate_limit_base_delay: float = Field(60.0, ge=0)
    rate_limit_max_delay: float = Field(900.0, ge=0)
    jitter_ratio: float = Field(0.1, ge=0, le=1)

    # Primary progress tracking
    checkpoint_interval: int = Field(100, ge=1)
    stagnation_checkpoints: int = Field(2, ge=1)
    completion_ratio: float = Field(0.8, gt=0, le=1)
    max_records: int = Field(50000, ge=1)

    # Rendered-page fallback
    fallback_enabled: bool = True
    session_budget: float = Field(30 * 60.0, gt=0)
    max_unchanged_passes: int = Field(3, ge=1)
    scroll_delay_min: float = Field(1.0, ge=0)
    scroll_delay_max: float = Field(2.0, ge=0)
    navigation_timeout: float = Field(30.0, gt=0)
    selector_timeout: float = Field(15.0, gt=0)
    headless: bool = True
    cookies_path: str = ""

    # Diagnostics
    error_log_size: int = Field(100, ge=1)
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_ranges(self) -> "Settings":
        if self.scroll_delay_max < self.scroll_delay_min:
            raise ValueError("scroll_delay_max must be >= scroll_delay_min")
        if self.rate_limit_max_delay < self.rate_limit_base_delay:
            raise ValueError("rate_limit_max_delay must be >= rate_limit_base_delay")
        if self.transport_max_delay < self.transport_base_delay:
            raise ValueError("transport_max_delay must be >= transport_base_delay")
        return self


def load_settings(**overrides) -> Settings:
    """Build settings, converting validation failures into ConfigError."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        lines = ["Invalid collector settings:"]
        for item in e.errors():
            loc = ".".join(str(part) for part in item.get("loc", [])) or "<root>"
            lines.append(f"- {loc}: {item.get('msg', 'invalid value')}")
        raise ConfigError("\n".join(lines)) from e


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return load_settings()
