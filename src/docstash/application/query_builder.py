"""Fluent query builder over a collection.

Chain methods mutate the builder's own Query; terminal methods compile
it afresh on every call, so a builder can be executed repeatedly.
"""

from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from docstash.core.exceptions import ValidationError
from docstash.core.logging import get_logger
from docstash.core.query.compiler import QueryCompiler
from docstash.core.query.model import Connective, GroupKind, Query
from docstash.core.query.operators import Operator, SortDirection
from docstash.domain.entities.document import Document

if TYPE_CHECKING:
    from docstash.application.collection import Collection

logger = get_logger(__name__)


class QueryBuilder:
    """Chainable query against one collection.

    Example:
        users.where("age", ">=", 18).and_("roles[]", "=", "EDITOR").order_by("name").fetch_all()
    """

    def __init__(self, collection: "Collection", query: Query | None = None) -> None:
        self.collection = collection
        self.query = query or Query()
        self.compiler = QueryCompiler(collection.name)

    def where(self, field: str, operator: str | Operator, value: Any = None) -> "QueryBuilder":
        self.query.add_condition(Connective.AND, field, operator, value)
        return self

    def and_(self, field: str, operator: str | Operator, value: Any = None) -> "QueryBuilder":
        self.query.add_condition(Connective.AND, field, operator, value)
        return self

    def or_(self, field: str, operator: str | Operator, value: Any = None) -> "QueryBuilder":
        self.query.add_condition(Connective.OR, field, operator, value)
        return self

    def union(self) -> "QueryBuilder":
        """Start a group OR-ed with the conditions before it."""
        self.query.open_group(GroupKind.UNION)
        return self

    def intersect(self) -> "QueryBuilder":
        """Start a group AND-ed with the conditions before it."""
        self.query.open_group(GroupKind.INTERSECT)
        return self

    def limit(self, limit: int | None) -> "QueryBuilder":
        self.query.set_limit(limit)
        return self

    def offset(self, offset: int | None) -> "QueryBuilder":
        self.query.set_offset(offset)
        return self

    def order_by(
        self, field: str, direction: str | SortDirection = SortDirection.ASC
    ) -> "QueryBuilder":
        self.query.add_order(field, direction)
        return self

    def join(
        self,
        foreign: "Collection | str",
        foreign_field: str,
        local_field: str,
        exclude_foreign_field: bool = False,
    ) -> "QueryBuilder":
        """Embed matching documents of another collection.

        Matching foreign documents are merged into each result as an array
        under the foreign collection's name. Results without any match are
        left out.
        """
        if isinstance(foreign, str):
            foreign = self.collection.database.collection(foreign)
        self.query.add_join(foreign.name, foreign_field, local_field, exclude_foreign_field)
        return self

    def copy(self) -> "QueryBuilder":
        return QueryBuilder(self.collection, self.query.copy())

    def to_sql(self) -> tuple[str, list[Any]]:
        """Compile the SELECT this builder would run."""
        return self.compiler.compile_select(self.query)

    def fetch(self) -> Iterator[Document]:
        """Run the query and yield matching documents."""
        sql, params = self.compiler.compile_select(self.query)
        description = {"collection": self.collection.name, "query": self.query.describe()}
        rows = self.collection.cached_results(
            "fetch",
            description,
            lambda: (row["json"] for row in self.collection.database.repository.select(sql, params)),
        )
        return (self.collection.make_document(data) for data in rows)

    def fetch_all(self) -> list[Document]:
        return list(self.fetch())

    def fetch_one(self) -> Document | None:
        """Return the first matching document, or None."""
        return next(iter(self.copy().limit(1).fetch()), None)

    def count(self) -> int:
        """Count matching documents, ignoring limit and offset."""
        sql, params = self.compiler.compile_count(self.query)
        return int(self.collection.database.connection.query_one(sql, params) or 0)

    def delete(self) -> int:
        """Delete matching documents and return how many were removed.

        Raises:
            ReadOnlyError: If the database is read-only.
        """
        sql, params = self.compiler.compile_delete(self.query)
        deleted = self.collection.database.repository.delete_where(sql, params)
        logger.info("Documents deleted", collection=self.collection.name, count=deleted)
        return deleted

    def search(self, phrase: str, fields: list[str] | tuple[str, ...]) -> list[Document]:
        """Full text search within the documents matching the current filters.

        Results are ordered by relevance. An index over ``fields`` is
        created on first use.

        Raises:
            CapabilityError: If full text search is not enabled.
            ValidationError: If the phrase is empty or a field is invalid.
        """
        if not isinstance(phrase, str) or not phrase.strip():
            raise ValidationError("Search phrase must not be empty")
        self.query.set_search(phrase, tuple(fields))
        hash_id = self.collection.full_text_index(*fields)
        sql, params = self.compiler.compile_search(self.query, hash_id)
        description = {
            "collection": self.collection.name,
            "index": hash_id,
            "query": self.query.describe(),
        }
        rows = self.collection.cached_results(
            "search",
            description,
            lambda: (row["json"] for row in self.collection.database.repository.select(sql, params)),
        )
        return [self.collection.make_document(data) for data in rows]
