"""Document query model and SQL compiler."""

from .compiler import QueryCompiler, WhereClause
from .model import Condition, ConditionGroup, Connective, GroupKind, JoinSpec, OrderSpec, Query, SearchSpec
from .operators import Operator, SortDirection, parse_operator, validate_field_name

__all__ = [
    "Condition",
    "ConditionGroup",
    "Connective",
    "GroupKind",
    "JoinSpec",
    "Operator",
    "OrderSpec",
    "Query",
    "QueryCompiler",
    "SearchSpec",
    "SortDirection",
    "WhereClause",
    "parse_operator",
    "validate_field_name",
]
