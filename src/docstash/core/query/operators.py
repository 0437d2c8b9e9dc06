"""Operator vocabulary and field name rules for document queries."""

import re
from dataclasses import dataclass
from enum import Enum

from docstash.core.exceptions import ValidationError

# Characters allowed in a queried field path
FIELD_NAME_PATTERN = re.compile(r'^["/A-Za-z0-9._\[\]]+$')

# Suffix marking a field as "search inside this array's elements"
PATH_SEARCH_MARKER = "[]"


class Operator(str, Enum):
    """Condition operators accepted by the query API."""

    EQ = "="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    STARTS = "STARTS"
    NOT_STARTS = "NOT STARTS"
    ENDS = "ENDS"
    NOT_ENDS = "NOT ENDS"
    CONTAINS = "CONTAINS"
    NOT_CONTAINS = "NOT CONTAINS"
    MATCHES = "MATCHES"
    NOT_MATCHES = "NOT MATCHES"
    EMPTY = "EMPTY"
    NOT_EMPTY = "NOT EMPTY"


class SortDirection(str, Enum):
    """Sort direction for order-by specs."""

    ASC = "ASC"
    DESC = "DESC"


@dataclass(frozen=True)
class SQLOperator:
    """SQL rendering of a query operator.

    Attributes:
        sql: The SQL comparison operator.
        template: Format template applied to the bound value, or None to
            bind the value unchanged.
        binds_value: False for operators that take no parameter.
    """

    sql: str
    template: str | None = None
    binds_value: bool = True


OPERATOR_SQL: dict[Operator, SQLOperator] = {
    Operator.EQ: SQLOperator("="),
    Operator.NE: SQLOperator("!="),
    Operator.LT: SQLOperator("<"),
    Operator.LE: SQLOperator("<="),
    Operator.GT: SQLOperator(">"),
    Operator.GE: SQLOperator(">="),
    Operator.STARTS: SQLOperator("LIKE", "{}%"),
    Operator.NOT_STARTS: SQLOperator("NOT LIKE", "{}%"),
    Operator.ENDS: SQLOperator("LIKE", "%{}"),
    Operator.NOT_ENDS: SQLOperator("NOT LIKE", "%{}"),
    Operator.CONTAINS: SQLOperator("LIKE", "%{}%"),
    Operator.NOT_CONTAINS: SQLOperator("NOT LIKE", "%{}%"),
    Operator.MATCHES: SQLOperator("REGEXP"),
    Operator.NOT_MATCHES: SQLOperator("NOT REGEXP"),
    Operator.EMPTY: SQLOperator("IS NULL", binds_value=False),
    Operator.NOT_EMPTY: SQLOperator("IS NOT NULL", binds_value=False),
}


def parse_operator(operator: str | Operator) -> Operator:
    """Resolve an operator string (case-insensitive) to an Operator.

    Raises:
        ValidationError: If the operator is not part of the vocabulary.
    """
    if isinstance(operator, Operator):
        return operator
    normalized = " ".join(str(operator).upper().split())
    try:
        return Operator(normalized)
    except ValueError:
        raise ValidationError(f'Condition "{operator}" is not valid') from None


def parse_direction(direction: str | SortDirection) -> SortDirection:
    """Resolve a sort direction (case-insensitive).

    Raises:
        ValidationError: If the direction is neither ASC nor DESC.
    """
    if isinstance(direction, SortDirection):
        return direction
    try:
        return SortDirection(str(direction).upper())
    except ValueError:
        raise ValidationError("Sort order must be ASC or DESC") from None


def validate_field_name(name: str) -> str:
    """Validate a queried field path.

    Raises:
        ValidationError: If the name contains characters outside the
            allowed set.
    """
    if not isinstance(name, str) or not FIELD_NAME_PATTERN.match(name):
        raise ValidationError(
            f'Invalid field name "{name}"; may contain only alphanumeric, '
            "dot, slash, quote, underscore and square bracket characters"
        )
    return name


def split_path_search(field: str) -> tuple[str, bool]:
    """Strip a trailing path search marker from a field.

    Returns:
        Tuple of (field without marker, whether the marker was present).
    """
    if field.endswith(PATH_SEARCH_MARKER):
        return field[: -len(PATH_SEARCH_MARKER)], True
    return field, False
