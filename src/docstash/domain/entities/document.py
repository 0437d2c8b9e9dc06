"""Document entity.

A document is a schemaless JSON object carrying the reserved ``__id``
key. Nested values are addressed with dot-separated paths; a trailing
``[]`` marker on a path segment is accepted and ignored.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Protocol

from docstash.core.exceptions import MissingIdError, ValidationError
from docstash.core.query.operators import PATH_SEARCH_MARKER
from docstash.domain.services.document_codec import DocumentCodec

ID_FIELD = "__id"


class DocumentStore(Protocol):
    """Anything a document can save itself to and delete itself from."""

    def save(self, document: "Document") -> bool: ...

    def delete_document(self, document: "Document | str") -> bool: ...


def split_path(path: str) -> list[str]:
    """Split a dotted path into keys, dropping empty segments and markers."""
    keys = []
    for segment in path.split("."):
        if segment.endswith(PATH_SEARCH_MARKER):
            segment = segment[: -len(PATH_SEARCH_MARKER)]
        if segment:
            keys.append(segment)
    if not keys:
        raise ValidationError(f'Invalid document path "{path}"')
    return keys


@dataclass(eq=False)
class Document:
    """Document entity bound (optionally) to the collection it came from.

    Attributes:
        data: The document's key/value map, including ``__id``.
        collection: The store used by ``save`` and ``delete``.
    """

    data: dict[str, Any]
    collection: DocumentStore | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        """Validate the document after initialization."""
        if not isinstance(self.data, dict):
            raise ValidationError("Document data must be a dictionary")
        if not self.data.get(ID_FIELD):
            raise MissingIdError(f"Document missing identifier field [{ID_FIELD}]")

    @property
    def id(self) -> str:
        return self.data[ID_FIELD]

    def get(self, path: str) -> Any:
        """Return the value at a dotted path.

        Raises:
            KeyError: If any segment of the path does not exist.
        """
        node: Any = self.data
        for key in split_path(path):
            if isinstance(node, dict) and key in node:
                node = node[key]
            elif isinstance(node, list) and key.isdigit() and int(key) < len(node):
                node = node[int(key)]
            else:
                raise KeyError(f"No such property [{path}]")
        return node

    def has(self, path: str) -> bool:
        try:
            self.get(path)
        except KeyError:
            return False
        return True

    def set(self, path: str, value: Any) -> "Document":
        """Set the value at a dotted path, creating intermediate objects."""
        keys = split_path(path)
        if keys == [ID_FIELD] and not value:
            raise MissingIdError(f"Document identifier field [{ID_FIELD}] cannot be empty")

        node = self.data
        for key in keys[:-1]:
            child = node.get(key)
            if not isinstance(child, dict):
                child = {}
                node[key] = child
            node = child
        node[keys[-1]] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self.data)

    def to_json(self) -> str:
        return DocumentCodec.encode(self.data)

    def save(self) -> bool:
        """Persist the document to its collection."""
        return self._store().save(self)

    def delete(self) -> bool:
        """Delete the document from its collection."""
        return self._store().delete_document(self)

    def _store(self) -> DocumentStore:
        if self.collection is None:
            raise ValidationError(f"Document {self.id} is not bound to a collection")
        return self.collection

    def __getitem__(self, path: str) -> Any:
        return self.get(path)

    def __setitem__(self, path: str, value: Any) -> None:
        self.set(path, value)

    def __contains__(self, path: str) -> bool:
        return self.has(path)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Document):
            return NotImplemented
        return self.data == other.data
