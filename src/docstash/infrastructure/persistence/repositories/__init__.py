"""Persistence repositories for database operations."""

from docstash.infrastructure.persistence.repositories.document_repository import (
    DocumentRepository,
)

__all__ = [
    "DocumentRepository",
]
