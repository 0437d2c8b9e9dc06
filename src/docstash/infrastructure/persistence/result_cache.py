"""Per-collection result cache stored in companion cache tables.

Each cached result is stored as one row per payload item under
``(type, key)``, where ``key`` is the signature of the query description
and ``datakey`` a hash of the item itself.
"""

import hashlib
import json
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from docstash.core.exceptions import ReadOnlyError
from docstash.core.logging import get_logger
from docstash.core.query.compiler import quote_identifier
from docstash.infrastructure.persistence.connection import Connection

logger = get_logger(__name__)

# Datakey of the marker row recording an empty result
EMPTY_RESULT_KEY = ""


class TransactionCoordinator(Protocol):
    """Scoped transaction control used for cache writes."""

    @property
    def in_transaction(self) -> bool: ...

    def begin_transaction(self, name: str) -> bool: ...

    def commit(self, name: str) -> bool: ...

    def rollback(self, name: str) -> bool: ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Format a moment as a sortable UTC text timestamp with milliseconds."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M:%S.") + f"{moment.microsecond // 1000:03d}"


def query_signature(description: Any) -> str:
    """Hash a serializable query description into a cache key."""
    serialized = json.dumps(description, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


class ResultCache:
    """Reads and writes cached query results.

    Attributes:
        auto_prune: Delete expired rows of a cache table on every read.
    """

    def __init__(
        self,
        connection: Connection,
        coordinator: TransactionCoordinator,
        auto_prune: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.connection = connection
        self.coordinator = coordinator
        self.auto_prune = auto_prune
        self.clock = clock

    def get(
        self, cache_table: str, query_type: str, signature: str, lifetime: int = 0
    ) -> list[Any] | None:
        """Return the cached payload, or None on a miss.

        Args:
            cache_table: The cache table scoping the entry.
            query_type: The kind of query (e.g. ``fetch``).
            signature: The query signature.
            lifetime: Lifetime in seconds; 0 ignores expiry entirely.
        """
        now = format_timestamp(self.clock())
        if self.auto_prune and not self.connection.read_only:
            self.prune(cache_table, now)

        sql = f'SELECT "data" FROM {quote_identifier(cache_table)} WHERE "type" = ? AND "key" = ?'
        params: list[Any] = [query_type, signature]
        if lifetime > 0:
            sql += ' AND "expiry" > ?'
            params.append(now)
        rows = self.connection.query_all(sql + " ORDER BY rowid", params)

        if not rows:
            logger.debug("Cache miss", cache_table=cache_table, query_type=query_type)
            return None
        logger.debug("Cache hit", cache_table=cache_table, query_type=query_type, rows=len(rows))
        return [json.loads(row["data"]) for row in rows if row["data"] is not None]

    def put(
        self,
        cache_table: str,
        query_type: str,
        signature: str,
        payload: list[Any],
        lifetime: int = 0,
    ) -> bool:
        """Store a payload, replacing any earlier entry under the same signature.

        Writes run in a transaction scoped to the cache table unless a
        transaction is already active, in which case they join it.

        Raises:
            ReadOnlyError: If the connection is read-only.
        """
        if self.connection.read_only:
            raise ReadOnlyError("Cannot write cache in read only mode")

        expiry = None
        if lifetime > 0:
            expiry = format_timestamp(self.clock() + timedelta(seconds=lifetime))

        rows: list[tuple[str, str | None]] = []
        for item in payload:
            data = json.dumps(item, ensure_ascii=False, separators=(",", ":"))
            rows.append((hashlib.sha256(data.encode("utf-8")).hexdigest(), data))
        if not rows:
            rows.append((EMPTY_RESULT_KEY, None))

        table = quote_identifier(cache_table)
        owns_transaction = False
        if not self.coordinator.in_transaction:
            owns_transaction = self.coordinator.begin_transaction(cache_table)
        try:
            self.connection.execute(
                f'DELETE FROM {table} WHERE "type" = ? AND "key" = ?', [query_type, signature]
            )
            for data_key, data in rows:
                self.connection.execute(
                    f'REPLACE INTO {table} ("type", "key", "datakey", "data", "expiry") '
                    "VALUES (?, ?, ?, ?, ?)",
                    [query_type, signature, data_key, data, expiry],
                )
        except Exception:
            if owns_transaction:
                self.coordinator.rollback(cache_table)
            raise
        if owns_transaction:
            self.coordinator.commit(cache_table)

        logger.debug("Cache write", cache_table=cache_table, query_type=query_type, rows=len(rows))
        return True

    def prune(self, cache_table: str, now: str | None = None) -> int:
        """Delete expired rows and return how many were removed."""
        if self.connection.read_only:
            raise ReadOnlyError("Cannot prune cache in read only mode")
        removed = self.connection.execute(
            f'DELETE FROM {quote_identifier(cache_table)} '
            'WHERE "expiry" IS NOT NULL AND "expiry" < ?',
            [now or format_timestamp(self.clock())],
        )
        if removed:
            logger.debug("Cache pruned", cache_table=cache_table, rows=removed)
        return removed

    def clear(self, cache_table: str) -> int:
        """Delete every row of a cache table."""
        if self.connection.read_only:
            raise ReadOnlyError("Cannot clear cache in read only mode")
        return self.connection.execute(f"DELETE FROM {quote_identifier(cache_table)}")
