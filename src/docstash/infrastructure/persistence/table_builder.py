"""DDL builder for collection, cache and full text index tables.

Every collection is one table holding a single JSON column, paired with
a result cache table and any number of full text index artifacts.
"""

from dataclasses import dataclass

from docstash.core.logging import get_logger
from docstash.core.query.compiler import fts_column_name, fts_table_name, quote_identifier
from docstash.domain.services.name_validator import CACHE_SUFFIX
from docstash.infrastructure.persistence.connection import Connection

logger = get_logger(__name__)

# Reserved document key holding the internal identifier
ID_FIELD = "__id"


@dataclass(frozen=True)
class FtsArtifacts:
    """Names of the objects backing one full text index."""

    table: str
    view: str
    insert_trigger: str
    update_trigger: str
    delete_trigger: str

    @property
    def triggers(self) -> tuple[str, str, str]:
        return (self.insert_trigger, self.update_trigger, self.delete_trigger)


class TableBuilder:
    """Builds and creates the tables backing a collection."""

    @classmethod
    def cache_table_name(cls, table_name: str) -> str:
        """Name of the result cache table paired with a collection table."""
        return f"{table_name}{CACHE_SUFFIX}"

    @classmethod
    def build_create_table_ddl(cls, table_name: str) -> str:
        return f"CREATE TABLE IF NOT EXISTS {quote_identifier(table_name)} (json TEXT NOT NULL)"

    @classmethod
    def build_id_index_ddl(cls, table_name: str) -> str:
        """Expression index on the internal identifier."""
        return (
            f"CREATE INDEX IF NOT EXISTS {quote_identifier(f'idx_{table_name}_{ID_FIELD}')} "
            f"ON {quote_identifier(table_name)} (json_extract(json, '$.{ID_FIELD}'))"
        )

    @classmethod
    def build_create_cache_table_ddl(cls, cache_table: str) -> list[str]:
        """Build the cache table and its lookup indexes.

        Rows are unique per (type, key, datakey) so one cached result can
        span several rows without two identical payloads colliding.
        """
        table = quote_identifier(cache_table)
        return [
            f"CREATE TABLE IF NOT EXISTS {table} ("
            '"type" TEXT NOT NULL, "key" TEXT NOT NULL, "datakey" TEXT, '
            '"data" TEXT, "expiry" TEXT)',
            f"CREATE INDEX IF NOT EXISTS {quote_identifier(f'idx_{cache_table}_key')} "
            f'ON {table} ("type", "key")',
            f"CREATE UNIQUE INDEX IF NOT EXISTS {quote_identifier(f'idx_{cache_table}_data_key')} "
            f'ON {table} ("type", "key", "datakey")',
        ]

    @classmethod
    def field_index_name(cls, table_name: str, fields: list[str] | tuple[str, ...]) -> str:
        return f"idx_{table_name}_" + "_".join(field.lower() for field in fields)

    @classmethod
    def build_field_index_ddl(cls, table_name: str, fields: list[str] | tuple[str, ...]) -> str:
        """Expression index over one or more document fields."""
        expressions = ", ".join(f"json_extract(json, '$.{field}')" for field in fields)
        return (
            f"CREATE INDEX IF NOT EXISTS {quote_identifier(cls.field_index_name(table_name, fields))} "
            f"ON {quote_identifier(table_name)} ({expressions})"
        )

    @classmethod
    def fts_artifacts(cls, table_name: str, hash_id: str) -> FtsArtifacts:
        fts_table = fts_table_name(table_name, hash_id)
        return FtsArtifacts(
            table=fts_table,
            view=f"v_{table_name.lower()}_{hash_id}",
            insert_trigger=f"{fts_table}_ai",
            update_trigger=f"{fts_table}_au",
            delete_trigger=f"{fts_table}_ad",
        )

    @classmethod
    def build_fts_ddl(
        cls, table_name: str, hash_id: str, fields: list[str] | tuple[str, ...]
    ) -> list[str]:
        """Build a full text index over document fields.

        Creates a projection view of the extracted fields keyed by rowid,
        an external-content FTS5 table over the view, a rebuild to index
        existing documents, and triggers keeping the index in sync.
        """
        names = cls.fts_artifacts(table_name, hash_id)
        table = quote_identifier(table_name)
        columns = [fts_column_name(table_name, field) for field in fields]
        column_list = ", ".join(columns)

        projection = ", ".join(
            f"json_extract(json, '$.{field}') AS {column}" for field, column in zip(fields, columns)
        )
        new_values = ", ".join(f"json_extract(new.json, '$.{field}')" for field in fields)
        old_values = ", ".join(f"json_extract(old.json, '$.{field}')" for field in fields)

        return [
            f"CREATE VIEW {names.view} AS SELECT ROWID AS id, {projection} FROM {table}",
            f"CREATE VIRTUAL TABLE {names.table} USING fts5("
            f"{column_list}, content='{names.view}', content_rowid='id')",
            f"INSERT INTO {names.table}({names.table}) VALUES ('rebuild')",
            f"CREATE TRIGGER {names.insert_trigger} AFTER INSERT ON {table} BEGIN "
            f"INSERT INTO {names.table} (rowid, {column_list}) VALUES (new.rowid, {new_values}); END",
            f"CREATE TRIGGER {names.update_trigger} AFTER UPDATE ON {table} BEGIN "
            f"INSERT INTO {names.table} ({names.table}, rowid, {column_list}) "
            f"VALUES ('delete', old.rowid, {old_values}); "
            f"INSERT INTO {names.table} (rowid, {column_list}) VALUES (new.rowid, {new_values}); END",
            f"CREATE TRIGGER {names.delete_trigger} AFTER DELETE ON {table} BEGIN "
            f"INSERT INTO {names.table} ({names.table}, rowid, {column_list}) "
            f"VALUES ('delete', old.rowid, {old_values}); END",
        ]

    @classmethod
    def build_drop_fts_ddl(cls, table_name: str, hash_id: str) -> list[str]:
        names = cls.fts_artifacts(table_name, hash_id)
        statements = [f"DROP TRIGGER IF EXISTS {trigger}" for trigger in names.triggers]
        statements.append(f"DROP TABLE IF EXISTS {names.table}")
        statements.append(f"DROP VIEW IF EXISTS {names.view}")
        return statements

    @classmethod
    def create_table(cls, connection: Connection, table_name: str) -> None:
        """Create a collection table and its identifier index."""
        logger.info("Creating collection table", table_name=table_name)
        connection.execute_script(
            cls.build_create_table_ddl(table_name),
            cls.build_id_index_ddl(table_name),
        )
        logger.debug("Collection table created", table_name=table_name)

    @classmethod
    def create_cache_table(cls, connection: Connection, table_name: str) -> None:
        cache_table = cls.cache_table_name(table_name)
        connection.execute_script(*cls.build_create_cache_table_ddl(cache_table))
        logger.debug("Cache table created", table_name=cache_table)

    @classmethod
    def table_exists(cls, connection: Connection, table_name: str) -> bool:
        """Check if a table already exists."""
        found = connection.query_one(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            [table_name],
        )
        return found is not None

