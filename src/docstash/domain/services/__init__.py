"""Domain services for docstash.

Services contain logic that doesn't naturally fit within a single entity.
They have no dependencies on infrastructure.
"""

from docstash.domain.services.document_codec import DocumentCodec
from docstash.domain.services.name_validator import (
    CACHE_SUFFIX,
    NAME_PATTERN,
    NameValidator,
)

__all__ = [
    "CACHE_SUFFIX",
    "DocumentCodec",
    "NAME_PATTERN",
    "NameValidator",
]
