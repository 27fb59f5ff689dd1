"""
Pytest configuration and shared fixtures.

Every test gets its own SQLite database file under tmp_path, so tests never
share state and need no environment setup.
"""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from voicemail_log.config import Settings
from voicemail_log.main import create_app
from voicemail_log.models import Voicemail
from voicemail_log.repositories import IdentityResolver, VoicemailStore
from voicemail_log.schemas import VoicemailInput, VoicemailRecord
from voicemail_log.storage import Database, SchemaManager


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'voicemail_test.db'}"


@pytest.fixture
def db(database_url):
    """Storage client with the schema applied."""
    database = Database(database_url)
    SchemaManager(database).ensure_schema()
    yield database
    database.dispose()


@pytest.fixture
def resolver(db) -> IdentityResolver:
    return IdentityResolver(db)


@pytest.fixture
def store(db) -> VoicemailStore:
    return VoicemailStore(db)


@pytest.fixture
def account(resolver) -> str:
    return resolver.create_account()


@pytest.fixture
def settings(database_url) -> Settings:
    return Settings(DATABASE_URL=database_url, LOG_LEVEL="WARNING")


@pytest.fixture
def client(settings):
    """Test client around a freshly built app; the lifespan applies the schema."""
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


def make_input(**overrides) -> VoicemailInput:
    fields = {
        "from_name": "Alice",
        "to_name": "Bob",
        "phone_number": "5551234567",
        "message_content": "Call back",
        "date_time": datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc),
        "taken_by": "Carol",
    }
    fields.update(overrides)
    return VoicemailInput(**fields)


def fetch_voicemail(db: Database, voicemail_id: str):
    """Read a row back regardless of owner or returned state."""
    with db.session() as session:
        row = session.get(Voicemail, voicemail_id)
        return VoicemailRecord.model_validate(row) if row is not None else None


def fetch_all_voicemails(db: Database) -> list:
    with db.session() as session:
        return [VoicemailRecord.model_validate(row) for row in session.query(Voicemail).all()]
