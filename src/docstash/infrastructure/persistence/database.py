"""Database handle and transaction coordinator.

A Database owns one Connection and the services built on it: the
document repository, the full text index manager and the result cache.
It guards the connection's single transaction, which is owned by the
name of the collection that began it.
"""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from docstash import __version__
from docstash.application.collection import Collection
from docstash.core.config import MEMORY_PATH, Settings, get_settings
from docstash.core.exceptions import (
    ConflictError,
    DatabaseConnectionError,
    ReadOnlyError,
)
from docstash.core.logging import bind_context, get_logger, unbind_context
from docstash.domain.services.name_validator import NameValidator
from docstash.infrastructure.persistence.connection import Connection
from docstash.infrastructure.persistence.fts_index_manager import FtsIndexManager
from docstash.infrastructure.persistence.repositories.document_repository import (
    DocumentRepository,
)
from docstash.infrastructure.persistence.result_cache import ResultCache, utc_now

logger = get_logger(__name__)

# File created inside a directory passed to Database.file
DEFAULT_FILE_NAME = "data.db"

JOURNAL_MODES = ("OFF", "MEMORY", "WAL", "DELETE", "TRUNCATE", "PERSIST")

SYNC_MODES = {"OFF": 0, "NORMAL": 1, "FULL": 2, "EXTRA": 3}


class Database:
    """Embedded document database.

    Example:
        with Database.memory() as db:
            users = db.collection("users")
            user = users.get()
            user.set("name", "Ada")
            user.save()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Open a database.

        Args:
            settings: Database settings. Loaded from the environment if omitted.
            clock: Source of the current UTC time for cache expiry.

        Raises:
            DatabaseConnectionError: If the database cannot be opened.
        """
        self.settings = settings or get_settings()
        self._prepare_path()

        self.connection = Connection(self.settings)
        self.repository = DocumentRepository(self.connection)
        self.fts = FtsIndexManager(self.connection, self.settings.fts_enabled)
        self.cache = ResultCache(
            self.connection,
            self,
            auto_prune=self.settings.cache_auto_prune,
            clock=clock,
        )
        self._transaction_owner: str | None = None
        self._collections: dict[str, Collection] = {}

        if not self.read_only:
            if not self.settings.is_memory:
                self.set_journal_mode(self.settings.journal_mode)
            self.set_sync_mode(self.settings.synchronous)

        logger.info(
            "Database opened",
            path=self.settings.database_path,
            read_only=self.read_only,
            fts_enabled=self.fts_enabled,
        )

    @classmethod
    def memory(cls, **overrides: Any) -> "Database":
        """Open a new in-memory database."""
        return cls(Settings(database_path=MEMORY_PATH, **overrides))

    @classmethod
    def file(cls, path: str | Path, **overrides: Any) -> "Database":
        """Open a database file, creating it unless opened read-only.

        A directory path opens ``data.db`` inside that directory.
        """
        target = Path(path)
        if target.is_dir():
            target = target / DEFAULT_FILE_NAME
        return cls(Settings(database_path=str(target), **overrides))

    def _prepare_path(self) -> None:
        if self.settings.is_memory:
            return
        path = Path(self.settings.database_path)
        if self.settings.read_only:
            if not path.is_file():
                raise DatabaseConnectionError(
                    f"Cannot open missing database file {path} in read only mode"
                )
            return
        path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def version(self) -> str:
        return __version__

    @property
    def read_only(self) -> bool:
        return self.settings.read_only

    @property
    def fts_enabled(self) -> bool:
        return self.settings.fts_enabled

    @property
    def cache_auto_prune(self) -> bool:
        return self.cache.auto_prune

    @cache_auto_prune.setter
    def cache_auto_prune(self, enabled: bool) -> None:
        self.cache.auto_prune = enabled

    @property
    def in_transaction(self) -> bool:
        return self._transaction_owner is not None

    @property
    def transaction_owner(self) -> str | None:
        return self._transaction_owner

    def collection(self, name: str) -> Collection:
        """Get a collection, creating its tables on first access.

        Raises:
            ValidationError: If the name is not a valid collection name.
            ReadOnlyError: If the collection does not exist on a read-only database.
        """
        table_name = NameValidator.normalize_collection_name(name)
        collection = self._collections.get(table_name)
        if collection is None:
            collection = Collection(self, table_name)
            self._collections[table_name] = collection
        return collection

    def collection_names(self) -> list[str]:
        """Names of the user collections stored in the database."""
        rows = self.connection.query_all(
            "SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name"
        )
        return [row["name"] for row in rows if not NameValidator.validate_name(row["name"])]

    def begin_transaction(self, name: str) -> bool:
        """Begin a transaction owned by ``name``.

        Returns:
            False if ``name`` already owns the active transaction.

        Raises:
            ReadOnlyError: If the database is read-only.
            ConflictError: If another name owns the active transaction.
        """
        if self.read_only:
            raise ReadOnlyError("Cannot begin transaction in read only mode")
        if self._transaction_owner is not None:
            if self._transaction_owner != name:
                raise ConflictError(
                    f"Transaction already in progress on collection {self._transaction_owner}",
                    {"owner": self._transaction_owner, "requested": name},
                )
            return False
        if not self.connection.begin_transaction():
            return False
        self._transaction_owner = name
        bind_context(transaction=name)
        logger.debug("Transaction started", owner=name)
        return True

    def commit(self, name: str) -> bool:
        """Commit the transaction owned by ``name``.

        Returns:
            False if no transaction is active.

        Raises:
            ConflictError: If another name owns the active transaction.
        """
        if not self._release_check(name):
            return False
        try:
            committed = self.connection.commit()
        finally:
            if not self.connection.in_transaction:
                self._release()
        logger.debug("Transaction committed", owner=name)
        return committed

    def rollback(self, name: str) -> bool:
        """Roll back the transaction owned by ``name``.

        Returns:
            False if no transaction is active.

        Raises:
            ConflictError: If another name owns the active transaction.
        """
        if not self._release_check(name):
            return False
        try:
            rolled_back = self.connection.rollback()
        finally:
            self._release()
        logger.debug("Transaction rolled back", owner=name)
        return rolled_back

    def _release_check(self, name: str) -> bool:
        if self._transaction_owner is None:
            return False
        if self._transaction_owner != name:
            raise ConflictError(
                f"Transaction already in progress on collection {self._transaction_owner}",
                {"owner": self._transaction_owner, "requested": name},
            )
        return True

    def _release(self) -> None:
        self._transaction_owner = None
        unbind_context("transaction")

    @contextmanager
    def transaction(self, name: str) -> Iterator["Database"]:
        """Run a block in a transaction owned by ``name``.

        Commits when the block succeeds and rolls back when it raises. When
        ``name`` already owns the active transaction the block joins it.
        """
        began = self.begin_transaction(name)
        try:
            yield self
        except BaseException:
            if began:
                self.rollback(name)
            raise
        if began:
            self.commit(name)

    def get_journal_mode(self) -> str:
        return str(self.connection.query_one("PRAGMA journal_mode")).upper()

    def set_journal_mode(self, mode: str) -> bool:
        """Set the rollback journal mode.

        Returns:
            False if the mode is unknown or the engine refused it (an
            in-memory database only supports MEMORY and OFF).
        """
        mode = str(mode).upper()
        if mode not in JOURNAL_MODES:
            return False
        if self.read_only:
            raise ReadOnlyError("Cannot change journal mode in read only mode")
        applied = self.connection.query_one(f"PRAGMA journal_mode = {mode}")
        return str(applied).upper() == mode

    def get_sync_mode(self) -> int:
        return int(self.connection.query_one("PRAGMA synchronous"))

    def set_sync_mode(self, mode: str | int) -> bool:
        """Set the synchronous mode by name or number.

        Returns:
            False if the mode is unknown.
        """
        if isinstance(mode, str):
            value = SYNC_MODES.get(mode.upper())
        else:
            value = mode if mode in SYNC_MODES.values() else None
        if value is None:
            return False
        if self.read_only:
            raise ReadOnlyError("Cannot change sync mode in read only mode")
        self.connection.execute_script(f"PRAGMA synchronous = {value}")
        return True

    def optimize(self) -> None:
        """Vacuum and optimize the database file.

        Raises:
            ReadOnlyError: If the database is read-only.
            ConflictError: If a transaction is active.
        """
        if self.read_only:
            raise ReadOnlyError("Cannot optimize in read only mode")
        if self._transaction_owner is not None or self.connection.in_transaction:
            raise ConflictError(
                f"Cannot optimize when transaction in progress [{self._transaction_owner}]",
                {"owner": self._transaction_owner},
            )
        self.connection.clear_statement_cache()
        self.connection.execute_script(
            "VACUUM",
            "PRAGMA optimize",
            "PRAGMA wal_checkpoint(TRUNCATE)",
        )
        logger.info("Database optimized", path=self.settings.database_path)

    def close(self) -> None:
        """Close the connection, rolling back any open transaction."""
        if self.connection.closed:
            return
        if self._transaction_owner is not None:
            logger.warning("Closing database with open transaction", owner=self._transaction_owner)
            self._release()
        self.connection.close()
        self._collections.clear()
        logger.info("Database closed", path=self.settings.database_path)

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
