"""Full text index lifecycle.

Indexes are identified by a hash of their (order-independent,
case-normalized) field set. Artifacts are named by convention so they
can be discovered from ``sqlite_master`` and torn down later.
"""

import hashlib
import re
from dataclasses import dataclass

from docstash.core.exceptions import CapabilityError, ReadOnlyError
from docstash.core.logging import get_logger
from docstash.core.query.compiler import fts_table_name
from docstash.domain.services.name_validator import NameValidator
from docstash.infrastructure.persistence.connection import Connection
from docstash.infrastructure.persistence.table_builder import TableBuilder

logger = get_logger(__name__)


@dataclass(frozen=True)
class FtsIndex:
    """Descriptor of an existing full text index.

    Attributes:
        hash_id: Digest of the indexed field set.
        fields: Indexed fields, lower-cased.
    """

    hash_id: str
    fields: tuple[str, ...]

    def covers(self, fields: set[str]) -> bool:
        return fields <= set(self.fields)


def field_set_hash(fields: list[str] | tuple[str, ...]) -> str:
    """Deterministic digest of a field set, independent of order and case."""
    normalized = sorted({field.lower() for field in fields})
    return hashlib.sha1(",".join(normalized).encode("utf-8")).hexdigest()


class FtsIndexManager:
    """Creates, reuses and consolidates full text indexes of one connection."""

    def __init__(self, connection: Connection, enabled: bool) -> None:
        self.connection = connection
        self.enabled = enabled

    def _check_enabled(self) -> None:
        if not self.enabled:
            raise CapabilityError("Full text search is not enabled for this database")

    def list_indexes(self, table_name: str) -> list[FtsIndex]:
        """Scan the schema for full text indexes of a collection table."""
        self._check_enabled()
        table = table_name.lower()
        prefix = f"fts_{table}_"
        pattern = re.compile(rf"^fts_{re.escape(table)}_([A-Za-z0-9]+)$")
        rows = self.connection.query_all(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name LIKE ? ORDER BY name",
            [prefix + "%"],
        )

        indexes = []
        for row in rows:
            match = pattern.match(row["name"])
            if match is None:
                continue
            columns = self.connection.query_all(f"PRAGMA table_info('{row['name']}')")
            fields = tuple(
                column["name"][len(table) + 1 :]
                for column in columns
                if column["name"].startswith(f"{table}_")
            )
            indexes.append(FtsIndex(match.group(1), fields))
        return indexes

    def find_index(self, table_name: str, fields: list[str] | tuple[str, ...]) -> FtsIndex | None:
        """Return an existing index covering every requested field."""
        wanted = {field.lower() for field in fields}
        exact_hash = field_set_hash(fields)
        covering = None
        for index in self.list_indexes(table_name):
            if index.hash_id == exact_hash:
                return index
            if covering is None and index.covers(wanted):
                covering = index
        return covering

    def ensure_index(self, table_name: str, fields: list[str] | tuple[str, ...]) -> str:
        """Return the hash of an index covering ``fields``, creating it if needed.

        An existing index on exactly these fields, or on a superset of
        them, is reused. Existing indexes on a proper subset are dropped
        and replaced by the new index.

        Raises:
            CapabilityError: If full text search is not enabled.
            ValidationError: If a field name is invalid.
            ReadOnlyError: If a new index is needed on a read-only database.
        """
        self._check_enabled()
        NameValidator.validate_index_fields(fields)

        existing = self.find_index(table_name, fields)
        if existing is not None:
            return existing.hash_id

        if self.connection.read_only:
            raise ReadOnlyError("Cannot create full text index in read only mode")

        wanted = {field.lower() for field in fields}
        for index in self.list_indexes(table_name):
            if set(index.fields) < wanted:
                logger.info(
                    "Consolidating full text index",
                    table_name=table_name,
                    hash_id=index.hash_id,
                    fields=list(index.fields),
                )
                self.drop_index(table_name, index.hash_id)

        hash_id = field_set_hash(fields)
        # Indexed paths are lower-cased, like the field set hash.
        unique_fields: list[str] = []
        for field in fields:
            if field.lower() not in unique_fields:
                unique_fields.append(field.lower())
        self.connection.execute_script(
            *TableBuilder.build_fts_ddl(table_name, hash_id, unique_fields)
        )
        logger.info(
            "Full text index created",
            table_name=table_name,
            hash_id=hash_id,
            fts_table=fts_table_name(table_name, hash_id),
        )
        return hash_id

    def drop_index(self, table_name: str, hash_id: str) -> bool:
        """Drop the table, view and triggers of an index.

        Returns:
            False if no such index exists.
        """
        self._check_enabled()
        if self.connection.read_only:
            raise ReadOnlyError("Cannot delete full text index in read only mode")
        if not re.fullmatch(r"[A-Za-z0-9]+", hash_id):
            return False
        if not TableBuilder.table_exists(self.connection, fts_table_name(table_name, hash_id)):
            return False
        self.connection.execute_script(*TableBuilder.build_drop_fts_ddl(table_name, hash_id))
        logger.info("Full text index dropped", table_name=table_name, hash_id=hash_id)
        return True
