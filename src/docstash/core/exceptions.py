"""Exceptions raised by docstash."""

from typing import Any, Sequence


class DocstashError(Exception):
    """Base class for all docstash errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class DatabaseConnectionError(DocstashError):
    """Raised when the database cannot be opened or lacks a required feature."""
    pass


class QueryError(DocstashError):
    """Raised when a statement fails to prepare or execute.

    Attributes:
        query: The SQL text that failed.
        params: The parameters bound to it.
    """

    def __init__(self, message: str, query: str = "", params: Sequence[Any] = ()) -> None:
        self.query = query
        self.params = list(params)
        super().__init__(message)

    def __str__(self) -> str:
        if self.query:
            return f"{self.message} [{self.query}]"
        return self.message


class ValidationError(DocstashError):
    """Raised when a name, operator or argument is invalid."""
    pass


class MissingIdError(ValidationError):
    """Raised when a document has no internal identifier."""
    pass


class ConflictError(DocstashError):
    """Raised on transaction scope conflicts and identifier collisions."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ReadOnlyError(DocstashError):
    """Raised when a mutating operation is attempted on a read-only database."""
    pass


class CapabilityError(DocstashError):
    """Raised when a feature the engine does not provide is requested."""
    pass
