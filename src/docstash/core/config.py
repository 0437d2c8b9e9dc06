"""Configuration management for docstash.

This module uses Pydantic Settings to load and validate configuration from
environment variables and .env files. A Settings instance is bound to a
Database when it is opened and is not mutated afterwards.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MEMORY_PATH = ":memory:"


class Settings(BaseSettings):
    """Database configuration settings.

    Settings are loaded from environment variables and .env files.
    All configuration values are validated on construction.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="DOCSTASH_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    environment: Literal["development", "production", "testing"] = "development"

    # Database Settings
    database_path: str = MEMORY_PATH
    read_only: bool = False
    fts_enabled: bool = False
    busy_timeout_seconds: float = 1.0
    db_echo: bool = False

    # SQLite Pragmas
    journal_mode: Literal["OFF", "MEMORY", "WAL", "DELETE", "TRUNCATE", "PERSIST"] = "WAL"
    synchronous: Literal["OFF", "NORMAL", "FULL", "EXTRA"] = "NORMAL"

    # Result Cache Settings
    cache_enabled: bool = False
    cache_lifetime_seconds: int = Field(
        default=60,
        description="Lifetime of cached query results; 0 means entries never expire",
    )
    cache_auto_prune: bool = False

    # Logging Settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "console"] = "console"

    @field_validator("cache_lifetime_seconds")
    @classmethod
    def validate_cache_lifetime(cls, v: int) -> int:
        """Reject negative cache lifetimes."""
        if v < 0:
            raise ValueError("cache_lifetime_seconds must be 0 (never expire) or positive")
        return v

    @field_validator("busy_timeout_seconds")
    @classmethod
    def validate_busy_timeout(cls, v: float) -> float:
        """Reject negative lock timeouts."""
        if v < 0:
            raise ValueError("busy_timeout_seconds must not be negative")
        return v

    @property
    def is_memory(self) -> bool:
        """Check if the database lives in memory."""
        return self.database_path == MEMORY_PATH

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @model_validator(mode="after")
    def validate_read_only_memory(self) -> "Settings":
        """Validate that an in-memory database is not opened read-only."""
        if self.read_only and self.is_memory:
            raise ValueError(
                "An in-memory database cannot be opened read-only; "
                "set database_path to an existing database file."
            )
        return self

    @property
    def database_url(self) -> str:
        """Get the SQLAlchemy URL for the configured database."""
        if self.is_memory:
            return "sqlite+pysqlite://"
        if self.read_only:
            return f"sqlite+pysqlite:///file:{self.database_path}?mode=ro&uri=true"
        return f"sqlite+pysqlite:///{self.database_path}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    This function caches the settings instance to avoid reloading
    configuration on every call. Settings are loaded once per process.

    Returns:
        Settings: Cached settings instance.
    """
    return Settings()
