"""Pytest configuration for all tests."""

import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest

from docstash import Database
from docstash.core.config import Settings, get_settings


def _sqlite_has_fts5() -> bool:
    connection = sqlite3.connect(":memory:")
    try:
        connection.execute("CREATE VIRTUAL TABLE probe USING fts5(x)")
    except sqlite3.OperationalError:
        return False
    finally:
        connection.close()
    return True


FTS5_AVAILABLE = _sqlite_has_fts5()


def pytest_collection_modifyitems(config, items):
    """Skip tests marked ``fts`` when SQLite lacks FTS5."""
    if FTS5_AVAILABLE:
        return
    skip_fts = pytest.mark.skip(reason="SQLite built without FTS5")
    for item in items:
        if item.get_closest_marker("fts") is not None:
            item.add_marker(skip_fts)


class FakeClock:
    """Controllable UTC clock for cache expiry tests."""

    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> Generator[None, None, None]:
    """Make sure no test sees settings cached by another."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """In-memory settings for the testing environment."""
    return Settings(environment="testing")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db(clock: FakeClock) -> Generator[Database, None, None]:
    """In-memory database with full text search when SQLite supports it."""
    database = Database(
        Settings(environment="testing", fts_enabled=FTS5_AVAILABLE),
        clock=clock,
    )
    yield database
    database.close()


@pytest.fixture
def file_db(tmp_path) -> Generator[Database, None, None]:
    """File database in a temporary directory."""
    database = Database.file(tmp_path / "store.db", environment="testing")
    yield database
    database.close()


@pytest.fixture
def users(db: Database):
    return db.collection("users")
