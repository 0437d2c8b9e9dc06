"""Tests for collection and index field name validation."""

import pytest

from docstash.core.exceptions import ValidationError
from docstash.domain.services.document_codec import DocumentCodec
from docstash.domain.services.name_validator import NameValidator


class TestCollectionNames:
    """Tests for collection name rules."""

    @pytest.mark.parametrize("name", ["users", "Users", "blog_posts", "a1"])
    def test_valid_names(self, name):
        assert NameValidator.validate_name(name) == []

    @pytest.mark.parametrize(
        "name",
        ["", "1users", "user-list", "user list", "sqlite_master", "fts_users", "users_cache", "a" * 65],
    )
    def test_invalid_names(self, name):
        assert NameValidator.validate_name(name) != []

    def test_cache_suffix_allowed_for_tables(self):
        assert NameValidator.is_valid_table_name("users_cache") is True
        assert NameValidator.is_valid_table_name("fts_users_abc") is False

    def test_normalize_lowercases(self):
        assert NameValidator.normalize_collection_name("Users") == "users"

    def test_normalize_raises(self):
        with pytest.raises(ValidationError, match="start with a letter"):
            NameValidator.normalize_collection_name("9lives")


class TestIndexFields:
    """Tests for indexed field rules."""

    def test_valid_fields(self):
        NameValidator.validate_index_fields(["title", "body_2"])

    @pytest.mark.parametrize("fields", [[], ["title", "a.b"], ["x" * 65]])
    def test_invalid_fields(self, fields):
        with pytest.raises(ValidationError):
            NameValidator.validate_index_fields(fields)


class TestDocumentCodec:
    """Tests for document JSON encoding."""

    def test_encode_is_compact_and_keeps_unicode(self):
        assert DocumentCodec.encode({"__id": "1", "name": "Zoë"}) == '{"__id":"1","name":"Zoë"}'

    def test_encode_rejects_non_json_values(self):
        with pytest.raises(ValidationError):
            DocumentCodec.encode({"__id": "1", "value": float("nan")})
        with pytest.raises(ValidationError):
            DocumentCodec.encode({"__id": "1", "value": object()})

    def test_decode_requires_object(self):
        assert DocumentCodec.decode('{"a":1}') == {"a": 1}
        with pytest.raises(ValidationError):
            DocumentCodec.decode("[1, 2]")
        with pytest.raises(ValidationError):
            DocumentCodec.decode("{broken")

    def test_new_ids_are_unique(self):
        assert DocumentCodec.new_id() != DocumentCodec.new_id()
