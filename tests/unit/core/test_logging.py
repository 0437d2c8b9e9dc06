"""Tests for structured logging helpers."""

import structlog

from docstash import Database
from docstash.core.config import Settings
from docstash.core.logging import (
    LoggingContext,
    add_logger_name,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    rename_message_field,
    unbind_context,
)


def test_rename_message_field():
    """Test that the event key is renamed to message."""
    assert rename_message_field(None, "info", {"event": "hello"}) == {"message": "hello"}


def test_add_logger_name_defaults():
    """Test the fallback logger name for loggers without a name."""
    assert add_logger_name(object(), "info", {})["logger"] == "docstash"


def test_logging_context_binds_and_unbinds():
    clear_context()
    with LoggingContext(collection="users"):
        assert structlog.contextvars.get_contextvars() == {"collection": "users"}
    assert structlog.contextvars.get_contextvars() == {}


def test_bind_and_unbind_context():
    clear_context()
    bind_context(transaction="users")
    assert structlog.contextvars.get_contextvars() == {"transaction": "users"}
    unbind_context("transaction")
    assert structlog.contextvars.get_contextvars() == {}


def test_configure_logging_json(capsys):
    """Test that production settings render JSON lines."""
    configure_logging(Settings(_env_file=None, environment="production", log_format="json"))
    get_logger("docstash.test").info("Database opened", path=":memory:")

    output = capsys.readouterr().out
    assert '"message": "Database opened"' in output
    assert '"path": ":memory:"' in output

    structlog.reset_defaults()


def test_opening_database_keeps_host_configuration():
    """Test that the library never reconfigures the host application's logging."""
    structlog.configure(processors=[structlog.processors.JSONRenderer()])
    try:
        before = structlog.get_config()["processors"]
        with Database.memory(environment="testing") as db:
            db.collection("users")
        assert structlog.get_config()["processors"] == before
    finally:
        structlog.reset_defaults()
