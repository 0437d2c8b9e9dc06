"""Tests for the Database handle and its transaction coordinator."""

import pytest

from docstash import Database, __version__
from docstash.core.exceptions import (
    ConflictError,
    DatabaseConnectionError,
    ReadOnlyError,
    ValidationError,
)


class TestOpening:
    """Tests for opening databases."""

    def test_memory_database(self, db):
        assert db.settings.is_memory is True
        assert db.read_only is False
        assert db.version == __version__
        assert db.get_journal_mode() == "MEMORY"

    def test_file_database_creates_parent_directories(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "store.db"
        with Database.file(path, environment="testing") as db:
            db.collection("users")
            assert db.get_journal_mode() == "WAL"
        assert path.is_file()

    def test_directory_path_opens_default_file(self, tmp_path):
        with Database.file(tmp_path, environment="testing"):
            pass
        assert (tmp_path / "data.db").is_file()

    def test_read_only_missing_file(self, tmp_path):
        with pytest.raises(DatabaseConnectionError):
            Database.file(tmp_path / "missing.db", read_only=True, environment="testing")

    def test_context_manager_closes(self, settings):
        with Database(settings) as db:
            pass
        assert db.connection.closed is True
        db.close()


class TestCollections:
    """Tests for collection lookup."""

    def test_collection_is_cached_by_normalized_name(self, db):
        assert db.collection("Users") is db.collection("users")

    def test_invalid_collection_name(self, db):
        with pytest.raises(ValidationError):
            db.collection("users_cache")
        with pytest.raises(ValidationError):
            db.collection("1st")

    def test_collection_names_exclude_internal_tables(self, db):
        db.collection("users")
        db.collection("posts")
        assert db.collection_names() == ["posts", "users"]


class TestTransactions:
    """Tests for name-scoped transactions."""

    def test_begin_commit(self, db):
        assert db.begin_transaction("users") is True
        assert db.transaction_owner == "users"
        assert db.begin_transaction("users") is False
        assert db.commit("users") is True
        assert db.in_transaction is False
        assert db.commit("users") is False
        assert db.rollback("users") is False

    def test_other_owner_conflicts(self, db):
        db.begin_transaction("users")

        with pytest.raises(ConflictError) as exc_info:
            db.begin_transaction("posts")
        assert exc_info.value.details == {"owner": "users", "requested": "posts"}

        with pytest.raises(ConflictError):
            db.commit("posts")
        with pytest.raises(ConflictError):
            db.rollback("posts")
        assert db.transaction_owner == "users"
        assert db.rollback("users") is True

    def test_context_manager_commits(self, db):
        users = db.collection("users")
        with db.transaction("users"):
            users.save({"__id": "1"})
        assert db.in_transaction is False
        assert users.count() == 1

    def test_context_manager_rolls_back_on_error(self, db):
        users = db.collection("users")
        with pytest.raises(RuntimeError):
            with db.transaction("users"):
                users.save({"__id": "1"})
                raise RuntimeError("boom")
        assert db.in_transaction is False
        assert users.count() == 0

    def test_nested_context_joins_outer_transaction(self, db):
        users = db.collection("users")
        with pytest.raises(RuntimeError):
            with db.transaction("users"):
                with db.transaction("users"):
                    users.save({"__id": "1"})
                assert db.in_transaction is True
                raise RuntimeError("boom")
        assert users.count() == 0

    def test_close_releases_open_transaction(self, settings):
        db = Database(settings)
        db.begin_transaction("users")
        db.close()
        assert db.in_transaction is False


class TestPragmas:
    """Tests for journal and sync modes."""

    def test_journal_mode(self, file_db):
        assert file_db.set_journal_mode("delete") is True
        assert file_db.get_journal_mode() == "DELETE"
        assert file_db.set_journal_mode("bogus") is False

    def test_memory_database_refuses_wal(self, db):
        assert db.set_journal_mode("WAL") is False

    def test_sync_mode(self, db):
        assert db.set_sync_mode("full") is True
        assert db.get_sync_mode() == 2
        assert db.set_sync_mode(0) is True
        assert db.get_sync_mode() == 0
        assert db.set_sync_mode(7) is False
        assert db.set_sync_mode("sometimes") is False

    def test_optimize(self, file_db):
        users = file_db.collection("users")
        users.save({"__id": "1"})
        users.delete_all()
        file_db.optimize()
        assert file_db.connection.statement_cache_size == 0

    def test_optimize_refused_in_transaction(self, file_db):
        file_db.begin_transaction("users")
        with pytest.raises(ConflictError):
            file_db.optimize()
        file_db.rollback("users")


class TestReadOnly:
    """Tests for databases opened read-only."""

    @pytest.fixture
    def read_only_db(self, tmp_path):
        path = tmp_path / "store.db"
        with Database.file(path, environment="testing", journal_mode="DELETE") as writer:
            users = writer.collection("users")
            users.save({"__id": "1", "name": "Ada"})
        database = Database.file(path, environment="testing", read_only=True)
        yield database
        database.close()

    def test_existing_documents_are_readable(self, read_only_db):
        users = read_only_db.collection("users")
        assert users.get("1").get("name") == "Ada"
        assert users.find_one_by({"name": "Ada"}).id == "1"
        assert users.count() == 1

    def test_mutations_raise(self, read_only_db):
        users = read_only_db.collection("users")

        with pytest.raises(ReadOnlyError):
            users.save({"__id": "2"})
        with pytest.raises(ReadOnlyError):
            users.get("2")
        with pytest.raises(ReadOnlyError):
            users.delete_document("1")
        with pytest.raises(ReadOnlyError):
            users.where("name", "=", "Ada").delete()
        with pytest.raises(ReadOnlyError):
            users.add_index("name")
        with pytest.raises(ReadOnlyError):
            users.enable_cache()

    def test_database_operations_raise(self, read_only_db):
        with pytest.raises(ReadOnlyError):
            read_only_db.collection("posts")
        with pytest.raises(ReadOnlyError):
            read_only_db.begin_transaction("users")
        with pytest.raises(ReadOnlyError):
            read_only_db.optimize()
        with pytest.raises(ReadOnlyError):
            read_only_db.set_journal_mode("WAL")
        assert read_only_db.commit("users") is False
