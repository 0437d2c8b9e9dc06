"""Structured logging for docstash.

This module configures structlog for structured JSON or console logging
with context variables bound per operation (e.g. the collection that owns
the active transaction).
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from docstash.core.config import get_settings


def add_logger_name(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add logger name to log entry.

    Args:
        logger: Logger instance.
        method_name: Method name (unused).
        event_dict: Event dictionary to modify.

    Returns:
        EventDict: Modified event dictionary with logger name.
    """
    event_dict["logger"] = logger.name if hasattr(logger, "name") else "docstash"
    return event_dict


def rename_message_field(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Rename 'event' field to 'message' for compatibility.

    Args:
        logger: Logger instance (unused).
        method_name: Method name (unused).
        event_dict: Event dictionary to modify.

    Returns:
        EventDict: Modified event dictionary with message field.
    """
    if "event" in event_dict:
        event_dict["message"] = event_dict.pop("event")
    return event_dict


def configure_logging(settings: Any | None = None) -> None:
    """Configure structured logging.

    Sets up structlog with console formatting for development and
    JSON formatting otherwise.

    Args:
        settings: Optional settings instance. If not provided, will load from environment.
    """
    if settings is None:
        settings = get_settings()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        # structlog.stdlib.add_logger_name doesn't work with PrintLogger
        add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        rename_message_field,
    ]

    if settings.is_development or settings.log_format == "console":
        renderer: Processor = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        )
        cache_logger = False
    else:
        renderer = structlog.processors.JSONRenderer()
        cache_logger = True

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=cache_logger,
    )

    # Standard logging for SQLAlchemy's engine echo
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Optional logger name. If not provided, uses 'docstash'.

    Returns:
        BoundLogger: Configured structured logger instance.
    """
    return structlog.get_logger(name or "docstash")


class LoggingContext:
    """Context manager for adding logging context.

    Example:
        with LoggingContext(collection="users"):
            logger.info("Saving document")  # Will include collection
    """

    def __init__(self, **kwargs: str) -> None:
        """Initialize logging context with key-value pairs.

        Args:
            **kwargs: Key-value pairs to add to logging context.
        """
        self.context = kwargs
        self.token: Any | None = None

    def __enter__(self) -> "LoggingContext":
        """Enter the context and add context variables."""
        self.token = structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, *args: Any) -> None:
        """Exit the context and clear context variables."""
        if self.token is not None:
            structlog.contextvars.unbind_contextvars(*self.context.keys())


def bind_context(**kwargs: Any) -> None:
    """Bind key-value pairs to the current logging context.

    Args:
        **kwargs: Key-value pairs to bind.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove keys from the current logging context.

    Args:
        *keys: Context keys to remove.
    """
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all context variables from the current logging context."""
    structlog.contextvars.clear_contextvars()
