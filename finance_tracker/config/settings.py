"""
Configuration Management for Finance Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every connection option is optional and defaults to strict behaviour,
so an empty environment still yields a working (flat-file) process.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """MongoDB connection configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MONGO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    uri: Optional[str] = Field(
        default=None,
        description="MongoDB connection string; unset means flat-file mode"
    )
    db_name: str = Field(
        default="finance_tracker",
        description="Database used when the URI does not name one"
    )
    server_selection_timeout_ms: int = Field(
        default=8000,
        ge=100,
        le=120000,
        description="Upper bound for the startup connection attempt"
    )

    # TLS trust overrides (local debugging only)
    tls_insecure: bool = Field(
        default=False,
        description="Disable certificate and hostname validation"
    )
    tls_allow_invalid_certs: bool = Field(
        default=False,
        description="Accept invalid server certificates"
    )
    tls_allow_invalid_hostnames: bool = Field(
        default=False,
        description="Accept certificates whose hostname does not match"
    )
    tls_ca_file: Optional[str] = Field(
        default=None,
        description="Path to a custom CA bundle"
    )

    @field_validator('uri', 'tls_ca_file')
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat empty or whitespace-only values as unset."""
        if v is None or not v.strip():
            return None
        return v.strip()

    @property
    def timeout_seconds(self) -> float:
        """Connection timeout in seconds."""
        return self.server_selection_timeout_ms / 1000


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="FINANCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug logging"
    )

    # Flat-file storage
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory holding the JSON collections"
    )

    # Budget alert thresholds (percent of limit)
    budget_warning_percent: int = Field(
        default=80,
        ge=1,
        le=100,
        description="Usage at which a budget_warning is raised"
    )
    budget_exceeded_percent: int = Field(
        default=100,
        ge=1,
        description="Usage at which a budget_exceeded is raised"
    )

    # Listing limits
    notification_list_limit: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Maximum notifications returned by a listing"
    )

    # New-user defaults
    default_currency: str = Field(
        default="$",
        max_length=4,
        description="Currency symbol for new users"
    )
    default_theme: str = Field(
        default="light",
        pattern="^(light|dark)$",
        description="Theme for new users"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus a
    ``<name>_error`` entry for each failure. Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.storage
        results["storage"] = True
    except Exception as e:
        results["storage"] = False
        results["storage_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
