"""SQLite connection for docstash using SQLAlchemy Core.

The Connection owns one engine and one exclusively held connection in
autocommit mode; transactions are driven with explicit BEGIN, COMMIT and
ROLLBACK statements. All SQL arrives with positional ``?`` placeholders
and is rewritten by :func:`bind_parameters` before it is prepared.
"""

import hashlib
import json
import math
import re
from collections.abc import Iterator, Sequence
from typing import Any

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, Result
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql.elements import TextClause

from docstash.core.config import Settings
from docstash.core.exceptions import DatabaseConnectionError, QueryError
from docstash.core.logging import get_logger

logger = get_logger(__name__)

# Maximum number of prepared statements kept per connection
STATEMENT_CACHE_SIZE = 512

_IDENTIFIER_CHARS = re.compile(r"[A-Za-z0-9_]")


def _function_before(sql: str, position: int) -> str:
    """Name of the SQL function whose argument list opens at ``position``."""
    end = position
    while end > 0 and sql[end - 1].isspace():
        end -= 1
    start = end
    while start > 0 and _IDENTIFIER_CHARS.match(sql[start - 1]):
        start -= 1
    return sql[start:end].lower()


def _placeholder_contexts(sql: str) -> list[tuple[int, str]]:
    """Locate ``?`` placeholders outside of literals.

    Returns:
        List of (offset, enclosing function name) per placeholder. The
        function name is empty when the placeholder is not a direct
        function argument.
    """
    contexts: list[tuple[int, str]] = []
    stack: list[str] = []
    quote: str | None = None
    for index, char in enumerate(sql):
        if quote is not None:
            if char == quote:
                quote = None
            continue
        if char in ("'", '"'):
            quote = char
        elif char == "(":
            stack.append(_function_before(sql, index))
        elif char == ")":
            if stack:
                stack.pop()
        elif char == "?":
            contexts.append((index, stack[-1] if stack else ""))
    return contexts


def bind_parameters(sql: str, params: Sequence[Any]) -> tuple[str, dict[str, Any]]:
    """Rewrite positional placeholders into named binds with type coercion.

    SQLite's JSON functions report booleans as 0/1 when a single path is
    extracted but as JSON true/false inside an array when several paths
    are extracted in one call. Floats only compare reliably once they
    round-trip through JSON. Values are bound as follows:

    * finite floats become ``CAST(json(:pN) AS REAL)`` bound as their repr;
    * booleans are bound as 1/0 when the statement has exactly two
      parameters;
    * otherwise booleans passed directly to ``json_array(...)`` become
      ``json(:pN)`` bound as ``'true'``/``'false'``;
    * any other boolean is bound as 1/0.

    Args:
        sql: SQL text with positional ``?`` placeholders.
        params: Values in placeholder order.

    Returns:
        Tuple of (rewritten SQL, named parameter dict).

    Raises:
        QueryError: If the placeholder count does not match the parameters.
    """
    contexts = _placeholder_contexts(sql)
    if len(contexts) != len(params):
        raise QueryError(
            f"Statement has {len(contexts)} placeholders but {len(params)} parameters",
            sql,
            params,
        )

    pieces: list[str] = []
    bound: dict[str, Any] = {}
    cursor = 0
    for number, ((offset, function), value) in enumerate(zip(contexts, params)):
        name = f"p{number}"
        placeholder = f":{name}"
        if isinstance(value, bool):
            if len(params) != 2 and function == "json_array":
                placeholder = f"json(:{name})"
                value = "true" if value else "false"
            else:
                value = int(value)
        elif isinstance(value, float) and math.isfinite(value):
            placeholder = f"CAST(json(:{name}) AS REAL)"
            value = repr(value)
        pieces.append(sql[cursor:offset])
        pieces.append(placeholder)
        bound[name] = value
        cursor = offset + 1
    pieces.append(sql[cursor:])
    return "".join(pieces), bound


def _regexp(pattern: str | None, subject: Any) -> int | None:
    if pattern is None or subject is None:
        return None
    return 1 if re.search(pattern, str(subject)) else 0


def _unescape(value: Any) -> Any:
    """Recover a raw string from JSON-quoted text."""
    if isinstance(value, str) and len(value) >= 2 and value[0] == value[-1] == '"':
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def _driver_error(error: SQLAlchemyError) -> BaseException:
    return getattr(error, "orig", None) or error


def _register_functions(dbapi_connection: Any, connection_record: Any) -> None:
    dbapi_connection.create_function("REGEXP", 2, _regexp, deterministic=True)
    dbapi_connection.create_function("UNESCAPE", 1, _unescape, deterministic=True)


class Connection:
    """Exclusively owned SQLite connection.

    Not safe for concurrent use from several threads; open one Database
    per thread instead.
    """

    def __init__(self, settings: Settings) -> None:
        """Open the database described by ``settings``.

        Raises:
            DatabaseConnectionError: If the file cannot be opened, or JSON1
                (or FTS5 when full text search is enabled) is missing.
        """
        self.settings = settings
        self.read_only = settings.read_only
        self._statements: dict[str, TextClause] = {}
        self._in_transaction = False

        engine_options: dict[str, Any] = {
            "echo": settings.db_echo,
            "connect_args": {
                "check_same_thread": False,
                "timeout": settings.busy_timeout_seconds,
            },
        }
        if settings.is_memory:
            engine_options["poolclass"] = StaticPool

        try:
            self._engine: Engine = create_engine(settings.database_url, **engine_options)
            event.listen(self._engine, "connect", _register_functions)
            self._connection = self._engine.connect().execution_options(
                isolation_level="AUTOCOMMIT"
            )
        except SQLAlchemyError as e:
            logger.error("Failed to open database", path=settings.database_path, error=str(e))
            raise DatabaseConnectionError(
                f"Unable to open database {settings.database_path}: {e}"
            ) from e

        try:
            self._probe_json()
            self.fts_supported = self._probe_fts()
            if settings.fts_enabled and not self.fts_supported:
                raise DatabaseConnectionError(
                    "Full text search requested but SQLite was built without FTS5"
                )
        except DatabaseConnectionError:
            self.close()
            raise

        logger.debug(
            "Connection opened",
            path=settings.database_path,
            read_only=self.read_only,
            fts_supported=self.fts_supported,
        )

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @property
    def closed(self) -> bool:
        return self._connection.closed

    def _probe_json(self) -> None:
        try:
            valid = self._connection.exec_driver_sql("SELECT json_valid('{}')").scalar()
        except SQLAlchemyError as e:
            raise DatabaseConnectionError("SQLite JSON1 functions are not available") from e
        if valid != 1:
            raise DatabaseConnectionError("SQLite JSON1 functions are not available")

    def _probe_fts(self) -> bool:
        try:
            self._connection.exec_driver_sql(
                "CREATE VIRTUAL TABLE IF NOT EXISTS temp._docstash_fts_probe USING fts5(x)"
            )
            self._connection.exec_driver_sql("DROP TABLE IF EXISTS temp._docstash_fts_probe")
        except SQLAlchemyError:
            return False
        return True

    def _prepare(self, sql: str, params: Sequence[Any]) -> tuple[TextClause, dict[str, Any]]:
        """Rewrite and prepare a statement, reusing cached statements."""
        rewritten, bound = bind_parameters(sql, params)
        key = hashlib.sha256(rewritten.encode("utf-8")).hexdigest()
        statement = self._statements.get(key)
        if statement is None:
            if len(self._statements) >= STATEMENT_CACHE_SIZE:
                self._statements.pop(next(iter(self._statements)))
            statement = text(rewritten)
            self._statements[key] = statement
        return statement, bound

    def _run(self, sql: str, params: Sequence[Any]) -> Result:
        statement, bound = self._prepare(sql, params)
        try:
            return self._connection.execute(statement, bound)
        except SQLAlchemyError as e:
            logger.error("Query failed", sql=sql, error=str(_driver_error(e)))
            raise QueryError(f"Query failed: {_driver_error(e)}", sql, params) from e

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute a statement and return the number of affected rows."""
        result = self._run(sql, params)
        try:
            return result.rowcount
        finally:
            result.close()

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> Any:
        """Return the first column of the first row, or None."""
        return self._run(sql, params).scalar()

    def query_all(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Return every row as a dict."""
        result = self._run(sql, params)
        return [dict(row) for row in result.mappings()]

    def query_stream(self, sql: str, params: Sequence[Any] = ()) -> Iterator[dict[str, Any]]:
        """Return rows lazily.

        The statement executes immediately; rows are fetched as the
        iterator advances. The iterator is forward-only and closing it
        early releases the underlying cursor.
        """
        return self._stream(self._run(sql, params))

    @staticmethod
    def _stream(result: Result) -> Iterator[dict[str, Any]]:
        try:
            for row in result.mappings():
                yield dict(row)
        finally:
            result.close()

    def execute_script(self, *statements: str) -> None:
        """Run parameterless DDL or pragma statements in order."""
        for sql in statements:
            try:
                self._connection.exec_driver_sql(sql).close()
            except SQLAlchemyError as e:
                logger.error("Statement failed", sql=sql, error=str(_driver_error(e)))
                raise QueryError(f"Query failed: {_driver_error(e)}", sql) from e

    def begin_transaction(self) -> bool:
        """Begin a transaction; returns False if one is already active."""
        if self._in_transaction:
            return False
        self.execute_script("BEGIN")
        self._in_transaction = True
        return True

    def commit(self) -> bool:
        """Commit the active transaction; returns False if none is active."""
        if not self._in_transaction:
            return False
        self.execute_script("COMMIT")
        self._in_transaction = False
        return True

    def rollback(self) -> bool:
        """Roll back the active transaction; returns False if none is active."""
        if not self._in_transaction:
            return False
        try:
            self.execute_script("ROLLBACK")
        finally:
            self._in_transaction = False
        return True

    @property
    def statement_cache_size(self) -> int:
        return len(self._statements)

    def clear_statement_cache(self) -> None:
        """Drop all prepared statements."""
        self._statements.clear()
        self._engine.clear_compiled_cache()
        logger.debug("Statement cache cleared")

    def close(self) -> None:
        """Roll back any open transaction and release the engine."""
        if not self._connection.closed:
            if self._in_transaction:
                try:
                    self.rollback()
                except QueryError:
                    logger.warning("Rollback on close failed")
            self._connection.close()
        self.clear_statement_cache()
        self._engine.dispose()
