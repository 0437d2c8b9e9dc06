"""SQL compiler for document queries.

Compiles a Query model into parameterized SQLite statements over a
single-JSON-column collection table. Values are always bound through
positional ``?`` placeholders; field paths are validated before they are
rendered into JSON path literals.
"""

import json
from dataclasses import dataclass
from typing import Any

from docstash.core.exceptions import ValidationError
from docstash.core.query.model import Condition, ConditionGroup, GroupKind, Query
from docstash.core.query.operators import OPERATOR_SQL, SQLOperator

# Always-true predicate for queries without conditions
MATCH_ALL = "1"


@dataclass(frozen=True)
class WhereClause:
    """Compiled WHERE predicate.

    Attributes:
        sql: The predicate text.
        sources: Extra FROM items (json_tree joins) the predicate depends on.
        params: Values bound by the predicate, in placeholder order.
    """

    sql: str
    sources: str
    params: list[Any]


def quote_identifier(name: str) -> str:
    """Quote an SQL identifier."""
    return '"' + name.replace('"', '""') + '"'


def fts_table_name(table: str, hash_id: str) -> str:
    """Name of the full text table for a collection and field-set hash."""
    return f"fts_{table.lower()}_{hash_id}"


def fts_column_name(table: str, field: str) -> str:
    """Name of the full text column holding a document field."""
    return f"{table.lower()}_{field.lower()}"


class QueryCompiler:
    """Compiles Query models to SQL for one collection table."""

    def __init__(self, table: str):
        self.table = table
        self.params: list[Any] = []

    @property
    def table_ref(self) -> str:
        return quote_identifier(self.table)

    def json_path(self, field: str) -> str:
        return f"'$.{field}'"

    def extract(self, field: str, source: str | None = None) -> str:
        return f"json_extract({source or self.table_ref}.json, {self.json_path(field)})"

    def compile_where(self, query: Query) -> WhereClause:
        """Compile only the WHERE predicate of a query."""
        self.params = []
        where, sources = self._compile_groups(query.groups)
        return WhereClause(where, sources, list(self.params))

    def compile_select(self, query: Query) -> tuple[str, list[Any]]:
        """Compile a SELECT returning rowid and document JSON per match."""
        self.params = []
        where, sources = self._compile_groups(query.groups)
        table = self.table_ref

        columns = [f"{table}.ROWID", self._select_column(query)]
        if query.joins:
            where = f"({where}){self._join_predicates(query)}"

        order_parts = []
        for index, order in enumerate(query.order):
            expression = self.extract(order.field)
            columns.append(f"{expression} AS _order_{index}")
            order_parts.append(f"{expression} {order.direction.value}")
        order_sql = ", ".join(order_parts) or f"{table}.ROWID"

        sql = (
            f"SELECT DISTINCT {', '.join(columns)} FROM {table}{sources} "
            f"WHERE {where} ORDER BY {order_sql} "
            f"LIMIT {query.limit} OFFSET {query.offset}"
        )
        return sql, list(self.params)

    def compile_delete(self, query: Query) -> tuple[str, list[Any]]:
        """Compile a DELETE of every document the query's filters match."""
        self.params = []
        where, sources = self._compile_groups(query.groups)
        table = self.table_ref
        sql = (
            f"DELETE FROM {table} WHERE ROWID IN ("
            f"SELECT DISTINCT {table}.ROWID FROM {table}{sources} "
            f"WHERE {where} LIMIT {query.limit})"
        )
        return sql, list(self.params)

    def compile_count(self, query: Query) -> tuple[str, list[Any]]:
        """Compile a COUNT of distinct matching documents."""
        self.params = []
        where, sources = self._compile_groups(query.groups)
        if query.joins:
            where = f"({where}){self._join_predicates(query)}"
        table = self.table_ref
        sql = f"SELECT COUNT(DISTINCT {table}.ROWID) AS c FROM {table}{sources} WHERE {where}"
        return sql, list(self.params)

    def compile_search(self, query: Query, hash_id: str) -> tuple[str, list[Any]]:
        """Compile a ranked full text search against an index table.

        Raises:
            ValidationError: If the query carries no search spec or an empty phrase.
        """
        if query.search is None:
            raise ValidationError("Query has no full text search phrase")
        if not query.search.phrase.strip():
            raise ValidationError("Search phrase must not be empty")

        self.params = []
        fts_table = fts_table_name(self.table, hash_id)
        term = '"' + query.search.phrase.replace('"', '""') + '"'
        match = " OR ".join(
            f"{fts_column_name(self.table, field)}:{term}" for field in query.search.fields
        )
        self.params.append(match)

        where, sources = self._compile_groups(query.groups)
        table = self.table_ref
        sql = (
            f"SELECT DISTINCT s.rowid AS rowid, s.rank AS rank, {table}.json AS json "
            f"FROM {fts_table} AS s INNER JOIN {table} ON {table}.ROWID = s.rowid{sources} "
            f"WHERE {fts_table} MATCH ? AND ({where}) "
            f"ORDER BY s.rank LIMIT {query.limit} OFFSET {query.offset}"
        )
        return sql, list(self.params)

    def _select_column(self, query: Query) -> str:
        """Document column, with joined collections merged in as arrays."""
        column = f"{self.table_ref}.json"
        if not query.joins:
            return f"{column} AS json"

        parts = []
        for index, join in enumerate(query.joins, start=1):
            alias = f"j{index}"
            embedded = f"json({alias}.json)"
            if join.exclude_foreign_field:
                embedded = f"json_remove({embedded}, {self.json_path(join.foreign_field)})"
            parts.append(
                f"{self.json_path(join.foreign_collection)}, "
                f"json((SELECT json_group_array({embedded}) "
                f"FROM {quote_identifier(join.foreign_collection)} AS {alias} "
                f"WHERE {self._join_condition(index, join.foreign_field, join.local_field)}))"
            )
        return f"json_set({column}, {', '.join(parts)}) AS json"

    def _join_predicates(self, query: Query) -> str:
        """Require at least one foreign match per join."""
        predicates = []
        for index, join in enumerate(query.joins, start=1):
            predicates.append(
                f" AND EXISTS (SELECT 1 FROM {quote_identifier(join.foreign_collection)} AS j{index} "
                f"WHERE {self._join_condition(index, join.foreign_field, join.local_field)})"
            )
        return "".join(predicates)

    def _join_condition(self, index: int, foreign_field: str, local_field: str) -> str:
        return f"{self.extract(foreign_field, f'j{index}')} = {self.extract(local_field)}"

    def _compile_groups(self, groups: list[ConditionGroup]) -> tuple[str, str]:
        """Compile condition groups into one predicate.

        Groups combine left to right; a change of connective wraps
        everything compiled so far so no group binds tighter than written.
        """
        tree_aliases: dict[str, str] = {}
        sources: list[str] = []
        clause = ""
        previous_word = None

        for group in groups:
            if not group.conditions:
                continue
            body = " ".join(
                self._compile_condition(condition, tree_aliases, sources)
                for condition in group.conditions
            )
            if not clause:
                clause = f"({body})"
                continue
            word = "OR" if group.kind is GroupKind.UNION else "AND"
            if previous_word is not None and word != previous_word:
                clause = f"({clause})"
            clause = f"{clause} {word} ({body})"
            previous_word = word

        return clause or MATCH_ALL, "".join(sources)

    def _compile_condition(
        self,
        condition: Condition,
        tree_aliases: dict[str, str],
        sources: list[str],
    ) -> str:
        sql_operator = OPERATOR_SQL[condition.operator]
        placeholder = ""
        if sql_operator.binds_value:
            self.params.append(self._bound_value(condition, sql_operator))
            placeholder = " ?"

        if condition.is_path_search:
            alias = tree_aliases.get(condition.field)
            if alias is None:
                alias = f"t{len(tree_aliases) + 1}"
                tree_aliases[condition.field] = alias
                sources.append(
                    f", json_tree({self.table_ref}.json, {self.json_path(condition.field)}) AS {alias}"
                )
            operand = f"{alias}.value"
        else:
            operand = self.extract(condition.field)

        predicate = f"({operand} {sql_operator.sql}{placeholder})"
        if condition.connective is None:
            return predicate
        return f"{condition.connective.value} {predicate}"

    def _bound_value(self, condition: Condition, sql_operator: SQLOperator) -> Any:
        value = condition.value
        if isinstance(value, (list, dict)):
            value = json.dumps(value, separators=(",", ":"))
        if sql_operator.template is None:
            return value
        if isinstance(value, bool):
            value = int(value)
        return sql_operator.template.format("" if value is None else value)
