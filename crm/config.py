"""
Configuration management for the CRM contact duplicate scrubber.

Uses pydantic-settings for type-safe configuration with environment variable support.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(
        env_prefix="POSTGRES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    user: str = "crm"
    password: str = ""  # Required: Set POSTGRES_PASSWORD in .env
    host: str = "localhost"
    port: int = 5432
    db: str = "crm"

    # Full URL override (e.g. DATABASE_URL=sqlite:///./crm.db)
    database_url: Optional[str] = Field(default=None, validation_alias="DATABASE_URL")

    @property
    def url(self) -> str:
        """Construct database URL."""
        if self.database_url:
            return self.database_url
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.db}"


class DedupeSettings(BaseSettings):
    """Duplicate detection and merge settings."""

    model_config = SettingsConfigDict(
        env_prefix="DEDUPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Scan page size
    batch_size: int = 1000

    # Groups returned by a preview (0 = all)
    preview_limit: int = 100

    # Per-group transaction budget
    group_timeout_seconds: float = 30.0

    # 1 = merge groups sequentially
    max_workers: int = 1

    lock_name: str = "contact-duplicate-scrub"

    # Tag given to a surviving contact that owns 2+ properties ("" disables)
    multiple_property_tag: str = "Multiple property"

    @field_validator("batch_size", "max_workers")
    @classmethod
    def ensure_positive(cls, v: int) -> int:
        """Page size and worker count must be at least 1."""
        if v < 1:
            raise ValueError("must be >= 1")
        return v


class APISettings(BaseSettings):
    """API server settings."""

    model_config = SettingsConfigDict(
        env_prefix="API_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    reload: bool = False
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]


class Settings(BaseSettings):
    """Main settings class that combines all settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Sub-settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    dedupe: DedupeSettings = Field(default_factory=DedupeSettings)
    api: APISettings = Field(default_factory=APISettings)

    # Logging
    log_level: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience function for quick access
settings = get_settings()
