"""
Configuration Management for Pocketbook

Uses pydantic-settings for type-safe configuration from environment variables.

All configuration is centralized here so the external dependencies
(Gemini, the database) are visible in one place and validated at startup.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use (must accept images)"
    )
    max_tokens: int = Field(
        default=2048,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )
    request_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        le=600,
        description="Upper bound on a single extraction call"
    )


class DatabaseSettings(BaseSettings):
    """Relational store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        default="sqlite:///pocketbook.db",
        description="SQLAlchemy database URL"
    )
    echo: bool = Field(
        default=False,
        description="Log every SQL statement"
    )
    connect_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Connection attempts before giving up at startup"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Upload limits
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum upload file size in MB"
    )
    supported_image_types: str = Field(
        default="image/jpeg,image/png,image/webp,image/heic",
        description="Comma-separated list of accepted image MIME types"
    )

    # Pipeline defaults
    default_pocket_name: str = Field(
        default="Personal",
        min_length=1,
        description="Pocket used when an invoice is saved without one"
    )
    image_placeholder_text: str = Field(
        default="Image Upload",
        description="Stored as raw text when the source was a photo"
    )
    enforce_pocket_access_on_create: bool = Field(
        default=False,
        description=(
            "Require the submitting user to own or be a member of an "
            "explicitly chosen pocket"
        )
    )
    default_currency: str = Field(
        default="IDR",
        description="Currency used for users with no stored preference"
    )
    invoices_per_page: int = Field(
        default=20,
        ge=1,
        le=200,
        description="Page size of the invoice list"
    )

    # Sanity thresholds (warnings only)
    future_date_tolerance_days: int = Field(
        default=7,
        description="How many days in the future an invoice date can be"
    )
    total_mismatch_tolerance: float = Field(
        default=0.01,
        ge=0.0,
        le=1.0,
        description="Relative difference tolerated between item sum and total"
    )

    @field_validator("default_pocket_name")
    @classmethod
    def strip_pocket_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("default_pocket_name cannot be blank")
        return v

    @property
    def supported_image_types_list(self) -> list[str]:
        """Get supported MIME types as a list."""
        return [
            t.strip().lower()
            for t in self.supported_image_types.split(",")
            if t.strip()
        ]

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    Sub-settings are loaded lazily to allow partial configuration
    (e.g. running the read views without a Gemini key).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings()

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


def validate_all_settings(settings: Optional[Settings] = None) -> dict[str, object]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid} plus
    {setting_name}_error entries for the failures.
    Useful for startup checks.
    """
    results: dict[str, object] = {}
    settings = settings or get_settings()

    for name in ("gemini", "database", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
