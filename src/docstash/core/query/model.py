"""Condition model for document queries.

A Query is pure data: ordered condition groups plus ordering, paging,
join and full text search directives. It knows nothing about SQL.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from docstash.core.exceptions import ValidationError
from docstash.core.query.operators import (
    Operator,
    SortDirection,
    parse_direction,
    parse_operator,
    split_path_search,
    validate_field_name,
)

UNBOUNDED = -1


def validate_plain_field(field_name: str) -> str:
    """Validate a field that cannot be searched as a path.

    Raises:
        ValidationError: If the name is invalid or carries the path search marker.
    """
    validate_field_name(field_name)
    if split_path_search(field_name)[1]:
        raise ValidationError(f'Path search is only supported in conditions, not "{field_name}"')
    return field_name


class Connective(str, Enum):
    """Boolean connective between conditions in one group."""

    AND = "AND"
    OR = "OR"


class GroupKind(str, Enum):
    """How a condition group attaches to the groups before it."""

    WHERE = "where"
    UNION = "union"
    INTERSECT = "intersect"


@dataclass(frozen=True)
class Condition:
    """A single predicate on a document field.

    The first condition of a group has no connective.
    """

    field: str
    operator: Operator
    value: Any = None
    is_path_search: bool = False
    connective: Connective | None = None

    def describe(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "operator": self.operator.value,
            "value": self.value,
            "path": self.is_path_search,
            "connective": self.connective.value if self.connective else None,
        }


@dataclass
class ConditionGroup:
    """Conditions evaluated together inside one pair of parentheses."""

    kind: GroupKind
    conditions: list[Condition] = field(default_factory=list)


@dataclass(frozen=True)
class OrderSpec:
    field: str
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True)
class JoinSpec:
    """Embed documents of another collection whose field matches a local field."""

    foreign_collection: str
    foreign_field: str
    local_field: str
    exclude_foreign_field: bool = False


@dataclass(frozen=True)
class SearchSpec:
    phrase: str
    fields: tuple[str, ...]


@dataclass
class Query:
    """Filters, ordering, paging and joins for one collection query."""

    groups: list[ConditionGroup] = field(
        default_factory=lambda: [ConditionGroup(GroupKind.WHERE)]
    )
    order: list[OrderSpec] = field(default_factory=list)
    limit: int = UNBOUNDED
    offset: int = 0
    joins: list[JoinSpec] = field(default_factory=list)
    search: SearchSpec | None = None

    @property
    def current_group(self) -> ConditionGroup:
        return self.groups[-1]

    def add_condition(
        self,
        connective: Connective,
        field_name: str,
        operator: str | Operator,
        value: Any = None,
    ) -> Condition:
        """Append a condition to the current group.

        Raises:
            ValidationError: If the field name or operator is invalid.
        """
        validate_field_name(field_name)
        resolved = parse_operator(operator)
        bare_field, is_path = split_path_search(field_name)
        if not bare_field:
            raise ValidationError(f'Invalid field name "{field_name}"')

        group = self.current_group
        condition = Condition(
            field=bare_field,
            operator=resolved,
            value=value,
            is_path_search=is_path,
            connective=connective if group.conditions else None,
        )
        group.conditions.append(condition)
        return condition

    def open_group(self, kind: GroupKind) -> None:
        """Start a new condition group.

        Does nothing while the current group is still empty, so a query
        never contains an empty group.
        """
        if kind is GroupKind.WHERE:
            raise ValidationError("A where group can only open a query")
        if not self.current_group.conditions:
            return
        self.groups.append(ConditionGroup(kind))

    def add_order(self, field_name: str, direction: str | SortDirection = SortDirection.ASC) -> None:
        validate_plain_field(field_name)
        self.order.append(OrderSpec(field_name, parse_direction(direction)))

    def set_limit(self, limit: int | None) -> None:
        self.limit = UNBOUNDED if limit is None or limit < 0 else int(limit)

    def set_offset(self, offset: int | None) -> None:
        if offset is not None and offset < 0:
            raise ValidationError("Offset must not be negative")
        self.offset = int(offset or 0)

    def add_join(
        self,
        foreign_collection: str,
        foreign_field: str,
        local_field: str,
        exclude_foreign_field: bool = False,
    ) -> None:
        validate_plain_field(foreign_field)
        validate_plain_field(local_field)
        self.joins.append(
            JoinSpec(foreign_collection, foreign_field, local_field, exclude_foreign_field)
        )

    def set_search(self, phrase: str, fields: list[str] | tuple[str, ...]) -> None:
        if not fields:
            raise ValidationError("Full text search requires at least one field")
        self.search = SearchSpec(phrase, tuple(fields))

    def copy(self) -> "Query":
        return copy.deepcopy(self)

    def describe(self) -> dict[str, Any]:
        """Serializable description used as the cache signature source."""
        return {
            "groups": [
                {"kind": group.kind.value, "conditions": [c.describe() for c in group.conditions]}
                for group in self.groups
                if group.conditions
            ],
            "order": [[o.field, o.direction.value] for o in self.order],
            "limit": self.limit,
            "offset": self.offset,
            "joins": [
                [j.foreign_collection, j.foreign_field, j.local_field, j.exclude_foreign_field]
                for j in self.joins
            ],
            "search": (
                {"phrase": self.search.phrase, "fields": list(self.search.fields)}
                if self.search
                else None
            ),
        }
