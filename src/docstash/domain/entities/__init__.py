"""Domain entities for docstash.

Entities are plain Python classes with no dependencies on the storage
layer.
"""

from docstash.domain.entities.document import ID_FIELD, Document, DocumentStore

__all__ = [
    "Document",
    "DocumentStore",
    "ID_FIELD",
]
