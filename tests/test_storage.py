"""
Tests for the storage client and SchemaManager.

Tests cover:
- Idempotent schema creation
- Readiness check
- Foreign keys enforced on SQLite connections
- Error translation into the storage taxonomy
"""

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.exc import IntegrityError, OperationalError

from voicemail_log.errors import ConstraintViolation, StorageError, StorageUnavailable
from voicemail_log.storage import Database, SchemaManager, translate_errors

from tests.conftest import make_input


class TestSchemaManager:
    """Test schema creation."""

    def test_creates_both_tables(self, database_url):
        database = Database(database_url)
        SchemaManager(database).ensure_schema()

        tables = set(inspect(database.engine).get_table_names())
        assert {"accounts", "voicemails"} <= tables
        database.dispose()

    def test_ensure_schema_is_idempotent(self, db, store, account):
        """Re-running on an existing schema neither fails nor drops data."""
        store.create(account, make_input())

        SchemaManager(db).ensure_schema()
        SchemaManager(db).ensure_schema()

        assert len(store.list_active(account)) == 1

    def test_voicemail_columns(self, db):
        columns = {c["name"]: c for c in inspect(db.engine).get_columns("voicemails")}

        assert set(columns) == {
            "id", "owner_id", "from_name", "to_name", "phone_number",
            "message_content", "date_time", "taken_by", "returned",
            "returned_at", "created_at",
        }
        assert columns["owner_id"]["nullable"] is True
        assert columns["returned_at"]["nullable"] is True
        assert columns["from_name"]["nullable"] is False

    def test_owner_foreign_key_cascades(self, db):
        fks = inspect(db.engine).get_foreign_keys("voicemails")

        assert len(fks) == 1
        assert fks[0]["referred_table"] == "accounts"
        assert fks[0]["options"].get("ondelete") == "CASCADE"

    def test_unreachable_storage_propagates(self, tmp_path):
        """No retry: an unopenable database fails ensure_schema outright."""
        database = Database(f"sqlite:///{tmp_path / 'missing' / 'dir' / 'db.sqlite'}")

        with pytest.raises(StorageUnavailable):
            SchemaManager(database).ensure_schema()


class TestDatabase:
    """Test the storage client."""

    def test_health_ready_after_schema(self, db):
        assert db.check_health() is True

    def test_health_not_ready_without_schema(self, database_url):
        database = Database(database_url)
        assert database.check_health() is False
        database.dispose()

    def test_foreign_keys_enabled(self, db):
        with db.engine.connect() as conn:
            assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1

    def test_session_rolls_back_on_error(self, db):
        with pytest.raises(RuntimeError):
            with db.session() as session:
                session.execute(text("INSERT INTO accounts (id) VALUES ('rolled-back')"))
                raise RuntimeError("boom")

        with db.session() as session:
            count = session.execute(
                text("SELECT COUNT(*) FROM accounts WHERE id = 'rolled-back'")
            ).scalar()
        assert count == 0


class TestTranslateErrors:
    """Test mapping of SQLAlchemy exceptions."""

    def test_integrity_error_becomes_constraint_violation(self):
        with pytest.raises(ConstraintViolation) as exc_info:
            with translate_errors("insert"):
                raise IntegrityError("INSERT", {}, Exception("FOREIGN KEY constraint failed"))

        assert isinstance(exc_info.value.__cause__, IntegrityError)

    def test_operational_error_becomes_storage_unavailable(self):
        with pytest.raises(StorageUnavailable):
            with translate_errors("select"):
                raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    def test_other_exceptions_pass_through(self):
        with pytest.raises(ValueError):
            with translate_errors("select"):
                raise ValueError("not a storage error")

    def test_taxonomy_shares_base(self):
        assert issubclass(ConstraintViolation, StorageError)
        assert issubclass(StorageUnavailable, StorageError)
