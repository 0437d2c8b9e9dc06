"""Tests for full text index management."""

import pytest

from docstash import Database
from docstash.core.exceptions import CapabilityError, ValidationError
from docstash.infrastructure.persistence.fts_index_manager import FtsIndex, field_set_hash

pytestmark = pytest.mark.fts


def schema_objects(db: Database, hash_id: str) -> list[str]:
    rows = db.connection.query_all(
        "SELECT name FROM sqlite_master WHERE name LIKE ? ORDER BY name", [f"%{hash_id}%"]
    )
    return [row["name"] for row in rows]


@pytest.fixture
def fts(db, users):
    return db.fts


def test_field_set_hash_ignores_order_and_case():
    assert field_set_hash(["Title", "body"]) == field_set_hash(["body", "title"])
    assert field_set_hash(["title"]) != field_set_hash(["title", "body"])


def test_index_covers():
    index = FtsIndex("abc", ("title", "body"))
    assert index.covers({"title"}) is True
    assert index.covers({"title", "tags"}) is False


class TestFtsIndexManager:
    """Tests for creating, reusing and dropping indexes."""

    def test_ensure_creates_index(self, db, fts):
        hash_id = fts.ensure_index("users", ["title", "body"])

        assert hash_id == field_set_hash(["title", "body"])
        indexes = fts.list_indexes("users")
        assert len(indexes) == 1
        assert set(indexes[0].fields) == {"title", "body"}
        assert {"fts_users_" + hash_id, "v_users_" + hash_id} <= set(schema_objects(db, hash_id))

    def test_ensure_reuses_covering_index(self, fts):
        full = fts.ensure_index("users", ["title", "body"])

        assert fts.ensure_index("users", ["BODY", "title"]) == full
        assert fts.ensure_index("users", ["title"]) == full
        assert len(fts.list_indexes("users")) == 1

    def test_superset_replaces_subset_indexes(self, db, fts):
        small = fts.ensure_index("users", ["a", "b"])
        large = fts.ensure_index("users", ["a", "b", "c"])

        assert small != large
        assert [index.hash_id for index in fts.list_indexes("users")] == [large]
        assert schema_objects(db, small) == []

    def test_disjoint_indexes_coexist(self, fts):
        fts.ensure_index("users", ["title"])
        fts.ensure_index("users", ["body"])
        assert len(fts.list_indexes("users")) == 2

    def test_duplicate_fields_are_indexed_once(self, fts):
        fts.ensure_index("users", ["title", "Title"])
        assert fts.list_indexes("users")[0].fields == ("title",)

    def test_invalid_fields_rejected(self, fts):
        with pytest.raises(ValidationError):
            fts.ensure_index("users", ["title", "a.b"])
        with pytest.raises(ValidationError):
            fts.ensure_index("users", [])

    def test_drop_index(self, db, fts):
        hash_id = fts.ensure_index("users", ["title"])

        assert fts.drop_index("users", hash_id) is True
        assert fts.drop_index("users", hash_id) is False
        assert fts.drop_index("users", "not-a-hash!") is False
        assert schema_objects(db, hash_id) == []

    def test_existing_documents_are_indexed(self, db, users):
        users.save({"__id": "1", "title": "Hello world"})
        hash_id = db.fts.ensure_index("users", ["title"])

        found = db.connection.query_one(
            f"SELECT COUNT(*) FROM fts_users_{hash_id} WHERE fts_users_{hash_id} MATCH ?",
            ['users_title:"hello"'],
        )
        assert found == 1


def test_disabled_full_text_search_raises():
    with Database.memory(environment="testing") as db:
        db.collection("users")
        with pytest.raises(CapabilityError):
            db.fts.ensure_index("users", ["title"])
        with pytest.raises(CapabilityError):
            db.fts.list_indexes("users")
