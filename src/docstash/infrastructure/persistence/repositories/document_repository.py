"""Repository for document storage.

Provides CRUD operations over collection tables using raw SQL, since
collection tables are created on demand and hold a single JSON column.
"""

from collections.abc import Iterator
from typing import Any

from docstash.core.exceptions import ConflictError, ReadOnlyError, ValidationError
from docstash.core.logging import get_logger
from docstash.core.query.compiler import quote_identifier
from docstash.core.query.operators import validate_field_name
from docstash.domain.services.name_validator import NameValidator
from docstash.infrastructure.persistence.connection import Connection
from docstash.infrastructure.persistence.table_builder import ID_FIELD, TableBuilder

logger = get_logger(__name__)

ID_PATH = f"$.{ID_FIELD}"


class DocumentRepository:
    """Repository for document database operations.

    Documents are passed in and out as JSON text; encoding and decoding
    belong to the caller.
    """

    def __init__(self, connection: Connection) -> None:
        """Initialize the repository with a database connection.

        Args:
            connection: The owning database connection.
        """
        self.connection = connection

    @property
    def read_only(self) -> bool:
        return self.connection.read_only

    def check_writable(self, action: str) -> None:
        """Raise ReadOnlyError if the connection is read-only.

        Args:
            action: Description of the refused operation for the message.
        """
        if self.read_only:
            raise ReadOnlyError(f"Cannot {action} in read only mode")

    def table_exists(self, table_name: str) -> bool:
        return TableBuilder.table_exists(self.connection, table_name)

    def create_table(self, table_name: str) -> bool:
        """Create a collection table and its identifier index.

        Returns:
            False if the table name is invalid.
        """
        self.check_writable("create table")
        if not NameValidator.is_valid_table_name(table_name):
            return False
        TableBuilder.create_table(self.connection, table_name)
        return True

    def create_cache_table(self, table_name: str) -> bool:
        self.check_writable("create table")
        if not NameValidator.is_valid_table_name(table_name):
            return False
        TableBuilder.create_cache_table(self.connection, table_name)
        return True

    def create_index(self, table_name: str, *fields: str) -> bool:
        """Create an expression index over document fields.

        Returns:
            False if no fields are given or any field name is invalid.
        """
        self.check_writable("create index")
        if not fields or not all(NameValidator.is_valid_index_field(f) for f in fields):
            return False
        self.connection.execute_script(TableBuilder.build_field_index_ddl(table_name, fields))
        logger.info("Index created", table_name=table_name, fields=list(fields))
        return True

    def get_by_id(self, table_name: str, document_id: str) -> str | None:
        """Get a document's JSON by its identifier."""
        return self.connection.query_one(
            f"SELECT json FROM {quote_identifier(table_name)} "
            "WHERE json_extract(json, ?) = ? LIMIT 1",
            [ID_PATH, document_id],
        )

    def insert(self, table_name: str, document_json: str) -> bool:
        self.check_writable("insert documents")
        inserted = self.connection.execute(
            f"INSERT INTO {quote_identifier(table_name)} (json) VALUES (json(?))",
            [document_json],
        )
        return inserted == 1

    def replace(self, table_name: str, document_id: str, document_json: str) -> bool:
        """Replace a document by identifier, inserting it if absent.

        Runs inside its own transaction unless one is already active.

        Raises:
            ReadOnlyError: If the connection is read-only.
            ConflictError: If more than one stored document has the identifier.
        """
        self.check_writable("save documents")
        owns_transaction = self.connection.begin_transaction()
        try:
            updated = self.connection.execute(
                f"UPDATE {quote_identifier(table_name)} SET json = json(?) "
                "WHERE json_extract(json, ?) = ?",
                [document_json, ID_PATH, document_id],
            )
            if updated > 1:
                logger.error(
                    "Identifier matched several documents",
                    table_name=table_name,
                    document_id=document_id,
                    matched=updated,
                )
                raise ConflictError(
                    f"Identifier {document_id} matches {updated} documents in {table_name}",
                    {"table": table_name, "id": document_id, "matched": updated},
                )
            if updated == 0:
                self.insert(table_name, document_json)
        except Exception:
            if owns_transaction:
                self.connection.rollback()
            raise
        if owns_transaction:
            self.connection.commit()
        return True

    def delete(self, table_name: str, document_id: str) -> bool:
        self.check_writable("delete documents")
        deleted = self.connection.execute(
            f"DELETE FROM {quote_identifier(table_name)} WHERE json_extract(json, ?) = ?",
            [ID_PATH, document_id],
        )
        return deleted > 0

    def flush(self, table_name: str) -> int:
        """Delete every row of a table and return the number removed."""
        self.check_writable("flush table")
        return self.connection.execute(f"DELETE FROM {quote_identifier(table_name)}")

    def count(self, table_name: str) -> int:
        return int(self.connection.query_one(f"SELECT COUNT(*) FROM {quote_identifier(table_name)}"))

    def build_find_query(
        self, table_name: str, criteria: dict[str, Any], limit: int | None = None
    ) -> tuple[str, list[Any]]:
        """Build a lookup by exact field values.

        A single criterion compares ``json_array(json_extract(...))``
        against ``json_array(?)``; several criteria extract all paths in
        one call and compare the resulting array.

        Raises:
            ValidationError: If criteria are empty, a field is invalid or a
                value is not a scalar.
        """
        if not criteria:
            raise ValidationError("At least one search criterion is required")

        paths = []
        values = []
        for field_name, value in criteria.items():
            validate_field_name(field_name)
            if isinstance(value, (dict, list, tuple, set)):
                raise ValidationError(f'Criterion "{field_name}" must be a scalar value')
            paths.append(f"$.{field_name}")
            values.append(value)

        placeholders = ", ".join("?" for _ in values)
        if len(paths) == 1:
            where = "json_array(json_extract(json, ?)) = json_array(?)"
        else:
            where = f"json_extract(json, {placeholders}) = json_array({placeholders})"

        sql = (
            f"SELECT json FROM {quote_identifier(table_name)} WHERE {where} "
            "ORDER BY ROWID"
        )
        if limit is not None:
            sql += f" LIMIT {int(limit)}"
        return sql, paths + values

    def find_one(self, table_name: str, criteria: dict[str, Any]) -> str | None:
        sql, params = self.build_find_query(table_name, criteria, limit=1)
        return self.connection.query_one(sql, params)

    def find_all_by(self, table_name: str, criteria: dict[str, Any]) -> Iterator[str]:
        sql, params = self.build_find_query(table_name, criteria)
        return (row["json"] for row in self.connection.query_stream(sql, params))

    def find_all(self, table_name: str) -> Iterator[str]:
        """Stream every document ordered by identifier."""
        rows = self.connection.query_stream(
            f"SELECT json FROM {quote_identifier(table_name)} ORDER BY json_extract(json, ?) ASC",
            [ID_PATH],
        )
        return (row["json"] for row in rows)

    def select(self, sql: str, params: list[Any]) -> Iterator[dict[str, Any]]:
        """Stream rows of a compiled query."""
        return self.connection.query_stream(sql, params)

    def delete_where(self, sql: str, params: list[Any]) -> int:
        """Run a compiled DELETE and return the number of removed documents."""
        self.check_writable("delete documents")
        return self.connection.execute(sql, params)
