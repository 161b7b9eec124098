# tests/conftest.py
from datetime import datetime

import pytest

from chesscal.config import Settings
from chesscal.db.session import EventStore
from chesscal.services.backups import BackupManager
from chesscal.services.mutations import EventService
from chesscal.services.queries import EventQuery

# Matches the bearer check on the admin routes
TEST_TOKEN = "test-token"
AUTH = {"Authorization": f"Bearer {TEST_TOKEN}"}


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'calendar.db'}"


@pytest.fixture
def store(db_url):
    s = EventStore(db_url).open()
    s.create_all()
    yield s
    s.close()


@pytest.fixture
def backups(store, tmp_path):
    return BackupManager(store, tmp_path / "backups")


@pytest.fixture
def changes():
    # operation names the service reports after each write
    return []


@pytest.fixture
def service(store, backups, changes):
    return EventService(store, backups=backups, on_change=changes.append)


@pytest.fixture
def queries(store):
    return EventQuery(store)


@pytest.fixture
def make_event():
    """Field dict for EventService.create; override any key."""
    def _make(title="Tata Steel Masters", **overrides):
        fields = {
            "title": title,
            "location": "Wijk aan Zee, Netherlands",
            "start_datetime": datetime(2025, 1, 17),
            "end_datetime": datetime(2025, 2, 2),
            "url": "https://tatasteelchess.com",
            "format": "Classical",
            "event_type": "Round Robin",
            "continent": "Europe",
            "rounds": 13,
        }
        fields.update(overrides)
        return fields
    return _make


@pytest.fixture
def settings(tmp_path, db_url):
    return Settings(
        database_url=db_url,
        backup_dir=tmp_path / "backups",
        export_dir=tmp_path / "exports",
        admin_token=TEST_TOKEN,
        exports_enabled=False,
    )


@pytest.fixture
def client(settings):
    from fastapi.testclient import TestClient
    from chesscal.main import create_app

    with TestClient(create_app(settings)) as tc:
        yield tc
