"""docstash - Embedded document store over SQLite JSON1 and FTS5.

Schemaless JSON documents live in collections; a chainable query API
compiles to parameterized SQL over SQLite's JSON functions.
"""

__version__ = "1.0.0"

from docstash.application.collection import Collection
from docstash.application.query_builder import QueryBuilder
from docstash.core.config import Settings, get_settings
from docstash.core.exceptions import (
    CapabilityError,
    ConflictError,
    DatabaseConnectionError,
    DocstashError,
    MissingIdError,
    QueryError,
    ReadOnlyError,
    ValidationError,
)
from docstash.domain.entities.document import Document
from docstash.infrastructure.persistence.database import Database

__all__ = [
    "__version__",
    "CapabilityError",
    "Collection",
    "ConflictError",
    "Database",
    "DatabaseConnectionError",
    "DocstashError",
    "Document",
    "MissingIdError",
    "QueryBuilder",
    "QueryError",
    "ReadOnlyError",
    "Settings",
    "ValidationError",
    "get_settings",
]
