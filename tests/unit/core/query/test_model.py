"""Tests for the query model and operator vocabulary."""

import pytest

from docstash.core.exceptions import ValidationError
from docstash.core.query.model import UNBOUNDED, Connective, GroupKind, Query
from docstash.core.query.operators import (
    Operator,
    SortDirection,
    parse_direction,
    parse_operator,
    split_path_search,
    validate_field_name,
)


class TestOperators:
    """Tests for operator and field name parsing."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("=", Operator.EQ),
            ("starts", Operator.STARTS),
            ("not  contains", Operator.NOT_CONTAINS),
            ("Not Empty", Operator.NOT_EMPTY),
            (Operator.GE, Operator.GE),
        ],
    )
    def test_parse_operator(self, raw, expected):
        """Operators are case and whitespace insensitive."""
        assert parse_operator(raw) is expected

    def test_parse_operator_rejects_unknown(self):
        with pytest.raises(ValidationError, match="is not valid"):
            parse_operator("LIKE")

    def test_parse_direction(self):
        assert parse_direction("desc") is SortDirection.DESC
        with pytest.raises(ValidationError):
            parse_direction("sideways")

    @pytest.mark.parametrize("name", ["name", "address.city", "items[0].sku", "roles[]", 'a."b"'])
    def test_valid_field_names(self, name):
        assert validate_field_name(name) == name

    @pytest.mark.parametrize("name", ["", "name; DROP", "a b", "a'b", "a-b"])
    def test_invalid_field_names(self, name):
        """Names outside the allowed character set are rejected."""
        with pytest.raises(ValidationError):
            validate_field_name(name)

    def test_split_path_search(self):
        assert split_path_search("roles[]") == ("roles", True)
        assert split_path_search("roles[0]") == ("roles[0]", False)


class TestQuery:
    """Tests for building Query models."""

    def test_first_condition_has_no_connective(self):
        query = Query()
        first = query.add_condition(Connective.OR, "a", "=", 1)
        second = query.add_condition(Connective.OR, "b", "=", 2)

        assert first.connective is None
        assert second.connective is Connective.OR

    def test_path_search_marker_is_stripped(self):
        query = Query()
        condition = query.add_condition(Connective.AND, "roles[]", "=", "A")

        assert condition.field == "roles"
        assert condition.is_path_search is True

    def test_marker_alone_is_invalid(self):
        with pytest.raises(ValidationError):
            Query().add_condition(Connective.AND, "[]", "=", 1)

    def test_open_group_skips_empty_groups(self):
        """Opening a group while the current one is empty does nothing."""
        query = Query()
        query.open_group(GroupKind.UNION)
        assert len(query.groups) == 1

        query.add_condition(Connective.AND, "a", "=", 1)
        query.open_group(GroupKind.UNION)
        query.open_group(GroupKind.INTERSECT)
        assert [group.kind for group in query.groups] == [GroupKind.WHERE, GroupKind.UNION]

    def test_where_group_cannot_be_reopened(self):
        with pytest.raises(ValidationError):
            Query().open_group(GroupKind.WHERE)

    def test_limit_and_offset(self):
        query = Query()
        query.set_limit(None)
        assert query.limit == UNBOUNDED
        query.set_limit(-5)
        assert query.limit == UNBOUNDED
        query.set_limit(3)
        query.set_offset(None)
        assert (query.limit, query.offset) == (3, 0)

        with pytest.raises(ValidationError):
            query.set_offset(-1)

    def test_order_and_join_fields_cannot_be_paths(self):
        """Only conditions accept the path search marker."""
        query = Query()
        with pytest.raises(ValidationError):
            query.add_order("roles[]")
        with pytest.raises(ValidationError):
            query.add_join("posts", "author[]", "__id")
        with pytest.raises(ValidationError):
            query.add_join("posts", "author", "ids[]")
        assert query.order == []
        assert query.joins == []

    def test_search_requires_fields(self):
        with pytest.raises(ValidationError):
            Query().set_search("hello", ())

    def test_copy_is_independent(self):
        query = Query()
        query.add_condition(Connective.AND, "a", "=", 1)
        clone = query.copy()
        clone.add_condition(Connective.AND, "b", "=", 2)

        assert len(query.current_group.conditions) == 1
        assert len(clone.current_group.conditions) == 2

    def test_describe_is_stable(self):
        """Equal queries describe identically; empty groups are omitted."""
        first, second = Query(), Query()
        for query in (first, second):
            query.add_condition(Connective.AND, "a", ">", 1)
            query.add_order("a", "desc")
            query.add_join("posts", "author", "__id")

        assert first.describe() == second.describe()
        description = first.describe()
        assert description["groups"][0]["conditions"][0]["operator"] == ">"
        assert description["order"] == [["a", "DESC"]]
        assert description["search"] is None
        assert Query().describe()["groups"] == []
