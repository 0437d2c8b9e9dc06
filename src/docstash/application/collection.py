"""Collection facade.

A Collection is the document-facing surface of one collection table:
CRUD by identifier and criteria, result caching, transactions scoped to
the collection name, full text indexes and query builder entry points.
"""

from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from docstash.application.query_builder import QueryBuilder
from docstash.core.exceptions import ReadOnlyError, ValidationError
from docstash.core.logging import LoggingContext, get_logger
from docstash.core.query.operators import Operator, SortDirection
from docstash.domain.entities.document import ID_FIELD, Document
from docstash.domain.services.document_codec import DocumentCodec
from docstash.infrastructure.persistence.fts_index_manager import FtsIndex
from docstash.infrastructure.persistence.result_cache import query_signature
from docstash.infrastructure.persistence.table_builder import TableBuilder

if TYPE_CHECKING:
    from docstash.infrastructure.persistence.database import Database

logger = get_logger(__name__)


class Collection:
    """Named set of documents backed by one table.

    Collections are obtained from :meth:`Database.collection`, which
    validates and lower-cases the name.
    """

    def __init__(self, database: "Database", name: str) -> None:
        self.database = database
        self.name = name
        self.cache_table = TableBuilder.cache_table_name(name)
        self._cache_enabled = database.settings.cache_enabled and not database.read_only
        self._cache_lifetime = database.settings.cache_lifetime_seconds
        self._ensure_tables()

    def _ensure_tables(self) -> None:
        repository = self.database.repository
        if not repository.table_exists(self.name):
            if self.database.read_only:
                raise ReadOnlyError(
                    f"Cannot create collection {self.name} in read only mode"
                )
            repository.create_table(self.name)
            logger.info("Collection created", collection=self.name)
        if not self.database.read_only and not repository.table_exists(self.cache_table):
            repository.create_cache_table(self.name)

    def __repr__(self) -> str:
        return f"Collection({self.name!r})"

    def make_document(self, data: str | dict[str, Any]) -> Document:
        """Wrap stored JSON (or an already decoded dict) as a bound Document."""
        if isinstance(data, str):
            data = DocumentCodec.decode(data)
        return Document(data, self)

    # Result cache

    @property
    def cache_enabled(self) -> bool:
        return self._cache_enabled

    @property
    def cache_lifetime(self) -> int:
        return self._cache_lifetime

    def enable_cache(self, enabled: bool = True) -> "Collection":
        """Enable (or disable) caching of query results.

        Raises:
            ReadOnlyError: If enabling on a read-only database.
        """
        if enabled and self.database.read_only:
            raise ReadOnlyError("Cannot enable cache in read only mode")
        self._cache_enabled = enabled
        return self

    def disable_cache(self) -> "Collection":
        return self.enable_cache(False)

    def set_cache_lifetime(self, seconds: int) -> "Collection":
        """Set the cache lifetime; 0 keeps entries until the cache is cleared."""
        if seconds < 0:
            raise ValidationError("Cache lifetime must not be negative")
        self._cache_lifetime = int(seconds)
        return self

    def clear_cache(self) -> int:
        """Delete every cached result of this collection."""
        return self.database.cache.clear(self.cache_table)

    def cached_results(
        self,
        query_type: str,
        description: Any,
        load: Callable[[], Iterable[str]],
    ) -> Iterable[str | dict[str, Any]]:
        """Return query results through the result cache.

        Args:
            query_type: Kind of query, part of the cache key.
            description: Serializable description of the query.
            load: Runs the query and yields stored document JSON.

        Returns:
            The loaded JSON texts when caching is disabled, otherwise a
            list of decoded documents (cached or freshly stored).
        """
        if not self._cache_enabled:
            return load()

        cache = self.database.cache
        signature = query_signature(description)
        with LoggingContext(collection=self.name, query_type=query_type):
            cached = cache.get(self.cache_table, query_type, signature, self._cache_lifetime)
            if cached is not None:
                return cached

            results = [DocumentCodec.decode(text) for text in load()]
            cache.put(self.cache_table, query_type, signature, results, self._cache_lifetime)
        return results

    # Documents

    def get(self, document_id: str | None = None) -> Document:
        """Get a document by identifier, creating it if it does not exist.

        A new identifier is generated when none is given.

        Raises:
            ReadOnlyError: If the document must be created on a read-only database.
        """
        stored = None
        if document_id:
            stored = self.database.repository.get_by_id(self.name, document_id)
        if stored is not None:
            return self.make_document(stored)

        if self.database.read_only:
            raise ReadOnlyError("Cannot create document in read only mode")
        data = {ID_FIELD: document_id or DocumentCodec.new_id()}
        self.database.repository.insert(self.name, DocumentCodec.encode(data))
        return Document(data, self)

    def find_one_by(self, criteria: dict[str, Any]) -> Document | None:
        """Find the first document whose fields equal the given values."""
        repository = self.database.repository
        rows = self.cached_results(
            "findOneBy",
            {"collection": self.name, "criteria": criteria},
            lambda: [text for text in [repository.find_one(self.name, criteria)] if text is not None],
        )
        for data in rows:
            return self.make_document(data)
        return None

    def find_all_by(self, criteria: dict[str, Any]) -> Iterator[Document]:
        """Yield every document whose fields equal the given values."""
        repository = self.database.repository
        rows = self.cached_results(
            "findAllBy",
            {"collection": self.name, "criteria": criteria},
            lambda: repository.find_all_by(self.name, criteria),
        )
        return (self.make_document(data) for data in rows)

    def find_all(self) -> Iterator[Document]:
        """Yield every document ordered by identifier."""
        repository = self.database.repository
        rows = self.cached_results(
            "findAll",
            {"collection": self.name},
            lambda: repository.find_all(self.name),
        )
        return (self.make_document(data) for data in rows)

    def save(self, document: Document | dict[str, Any]) -> bool:
        """Insert or replace a document by its identifier.

        Raises:
            MissingIdError: If the document has no identifier.
            ReadOnlyError: If the database is read-only.
            ConflictError: If several stored documents share the identifier.
        """
        if not isinstance(document, Document):
            document = Document(dict(document), self)
        self.database.repository.check_writable("save documents")
        saved = self.database.repository.replace(self.name, document.id, document.to_json())
        if document.collection is None:
            document.collection = self
        logger.debug("Document saved", collection=self.name, document_id=document.id)
        return saved

    def delete_document(self, document: Document | str) -> bool:
        """Delete a document, given the document or its identifier.

        Returns:
            False if no document had the identifier.
        """
        document_id = document.id if isinstance(document, Document) else document
        if not document_id:
            raise ValidationError("A document identifier is required")
        return self.database.repository.delete(self.name, document_id)

    def delete_all(self) -> int:
        """Delete every document and return how many were removed."""
        deleted = self.database.repository.flush(self.name)
        logger.info("Collection flushed", collection=self.name, count=deleted)
        return deleted

    def count(self) -> int:
        return self.database.repository.count(self.name)

    def add_index(self, *fields: str) -> bool:
        """Create an expression index over one or more fields.

        Returns:
            False if a field name is invalid.

        Raises:
            ReadOnlyError: If the database is read-only.
        """
        return self.database.repository.create_index(self.name, *fields)

    # Transactions

    def begin_transaction(self) -> bool:
        return self.database.begin_transaction(self.name)

    def commit(self) -> bool:
        return self.database.commit(self.name)

    def rollback(self) -> bool:
        return self.database.rollback(self.name)

    @contextmanager
    def transaction(self) -> Iterator["Collection"]:
        with self.database.transaction(self.name):
            yield self

    # Full text search

    def full_text_index(self, *fields: str) -> str:
        """Return the hash of a full text index over ``fields``, creating it if needed."""
        return self.database.fts.ensure_index(self.name, fields)

    def full_text_indexes(self) -> list[FtsIndex]:
        return self.database.fts.list_indexes(self.name)

    def drop_full_text_index(self, hash_id: str) -> bool:
        return self.database.fts.drop_index(self.name, hash_id)

    # Query builder entry points

    def query(self) -> QueryBuilder:
        return QueryBuilder(self)

    def where(self, field: str, operator: str | Operator, value: Any = None) -> QueryBuilder:
        return self.query().where(field, operator, value)

    def and_(self, field: str, operator: str | Operator, value: Any = None) -> QueryBuilder:
        return self.query().and_(field, operator, value)

    def or_(self, field: str, operator: str | Operator, value: Any = None) -> QueryBuilder:
        return self.query().or_(field, operator, value)

    def union(self) -> QueryBuilder:
        return self.query().union()

    def intersect(self) -> QueryBuilder:
        return self.query().intersect()

    def limit(self, limit: int | None) -> QueryBuilder:
        return self.query().limit(limit)

    def offset(self, offset: int | None) -> QueryBuilder:
        return self.query().offset(offset)

    def order_by(
        self, field: str, direction: str | SortDirection = SortDirection.ASC
    ) -> QueryBuilder:
        return self.query().order_by(field, direction)

    def join(
        self,
        foreign: "Collection | str",
        foreign_field: str,
        local_field: str,
        exclude_foreign_field: bool = False,
    ) -> QueryBuilder:
        return self.query().join(foreign, foreign_field, local_field, exclude_foreign_field)

    def fetch(self) -> Iterator[Document]:
        return self.query().fetch()

    def fetch_all(self) -> list[Document]:
        return self.query().fetch_all()

    def search(self, phrase: str, fields: list[str] | tuple[str, ...]) -> list[Document]:
        return self.query().search(phrase, fields)
