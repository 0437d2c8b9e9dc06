"""Tests for configuration management."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from docstash.core.config import MEMORY_PATH, Settings, get_settings


def test_settings_default_values():
    """Test that settings have correct default values."""
    with patch.dict(os.environ, {}, clear=True):
        settings = Settings(_env_file=None)

    assert settings.environment == "development"
    assert settings.is_development is True
    assert settings.database_path == MEMORY_PATH
    assert settings.is_memory is True
    assert settings.read_only is False
    assert settings.fts_enabled is False
    assert settings.journal_mode == "WAL"
    assert settings.synchronous == "NORMAL"
    assert settings.cache_enabled is False
    assert settings.cache_lifetime_seconds == 60
    assert settings.log_format == "console"


def test_settings_from_environment():
    """Test that settings are loaded from DOCSTASH_ environment variables."""
    env = {
        "DOCSTASH_DATABASE_PATH": "/tmp/store.db",
        "DOCSTASH_FTS_ENABLED": "true",
        "DOCSTASH_CACHE_LIFETIME_SECONDS": "0",
        "DOCSTASH_ENVIRONMENT": "production",
    }
    with patch.dict(os.environ, env, clear=True):
        settings = Settings(_env_file=None)

    assert settings.database_path == "/tmp/store.db"
    assert settings.is_memory is False
    assert settings.fts_enabled is True
    assert settings.cache_lifetime_seconds == 0
    assert settings.environment == "production"


def test_get_settings_is_cached():
    """Test that get_settings returns the same instance."""
    get_settings.cache_clear()
    assert get_settings() is get_settings()


def test_negative_cache_lifetime_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, cache_lifetime_seconds=-1)


def test_negative_busy_timeout_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, busy_timeout_seconds=-0.5)


def test_read_only_memory_rejected():
    """An in-memory database cannot be opened read-only."""
    with pytest.raises(ValidationError, match="read-only"):
        Settings(_env_file=None, read_only=True)


def test_database_url():
    """Test the SQLAlchemy URL for each open mode."""
    assert Settings(_env_file=None).database_url == "sqlite+pysqlite://"
    assert (
        Settings(_env_file=None, database_path="/data/store.db").database_url
        == "sqlite+pysqlite:////data/store.db"
    )
    assert (
        Settings(_env_file=None, database_path="/data/store.db", read_only=True).database_url
        == "sqlite+pysqlite:///file:/data/store.db?mode=ro&uri=true"
    )


def test_invalid_journal_mode_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, journal_mode="SIDEWAYS")
