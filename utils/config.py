"""
Configuration Utility - Environment Variables Management

Centralized configuration loading from .env files using pydantic-settings.
Type-safe access to all environment variables with validation.

Usage:
    from utils.config import settings

    db_path = settings.SQLITE_PATH
    retention = settings.AUDIT_RETENTION_DAYS
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Database Configuration
    SQLITE_PATH: str = Field(default="/app/data/db/app.db")

    # Listing Configuration
    DEFAULT_TIMEZONE: str = Field(default="UTC")
    DEFAULT_PAGE_SIZE: int = Field(default=10, ge=1)
    MAX_PAGE_SIZE: int = Field(default=100, ge=1)
    LOW_STOCK_THRESHOLD: int = Field(default=10, ge=0)

    # Dashboard Configuration
    DASHBOARD_TOP_USERS: int = Field(default=5, ge=1)

    # Audit Retention Configuration
    AUDIT_RETENTION_DAYS: int = Field(default=90, ge=1)
    AUDIT_CLEANUP_ENABLED: bool = Field(default=True)
    AUDIT_CLEANUP_CRON: str = Field(default="0 2 1 * *")
    SWEEP_MAX_RETRIES: int = Field(default=3, ge=1)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")

    # Application Metadata
    ENVIRONMENT: str = Field(default="production")
    APP_NAME: str = Field(default="records-backend")
    APP_VERSION: str = Field(default="0.1.0")

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Only 'json' and 'text' formats are supported."""
        v = v.lower()
        if v not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be 'json' or 'text'")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
