"""
Configuration management for the chronomap map state core.

Uses pydantic-settings for type-safe configuration with environment variable support.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ApiSettings(BaseSettings):
    """Settings for the historical map API."""

    model_config = SettingsConfigDict(
        env_prefix="CHRONOMAP_API_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    base_url: str = "https://api.chronas.org/v1"
    timeout: float = 30.0  # seconds
    max_retries: int = 3
    retry_delay: float = 1.0  # seconds
    user_agent: str = "chronomap/1.0"

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so paths can be appended with a single slash."""
        return v.rstrip("/")

    @field_validator("max_retries")
    @classmethod
    def at_least_one_attempt(cls, v: int) -> int:
        return max(1, v)


class MapSettings(BaseSettings):
    """Map session defaults."""

    model_config = SettingsConfigDict(
        env_prefix="CHRONOMAP_MAP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    default_marker_limit: int = 5000
    max_marker_limit: int = 10000
    initial_year: int = 1000

    @field_validator("default_marker_limit", "max_marker_limit")
    @classmethod
    def non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("marker limits must be non-negative")
        return v


class Settings(BaseSettings):
    """Main settings class that combines all settings."""

    model_config = SettingsConfigDict(
        env_prefix="CHRONOMAP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Sub-settings
    api: ApiSettings = Field(default_factory=ApiSettings)
    map: MapSettings = Field(default_factory=MapSettings)

    # Logging
    log_level: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience instance for quick access
settings = get_settings()
