"""Common test fixtures for the notesync core."""

import pytest

from notesync.config import config
from notesync.identity import LocalIdentityProvider, User
from notesync.models.db_models import init_db
from notesync.observability import metrics
from notesync.services.migration_service import MigrationService
from notesync.services.sync_service import NotesSyncService
from notesync.storage.legacy_snapshot import LegacySnapshotStore
from notesync.storage.remote_store import RemoteStore
from tests.fakes import OTHER_USER_ID, USER_ID


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point config paths at a temp dir and restore defaults (auto-restored)."""
    monkeypatch.setattr(config, "base_dir", tmp_path)
    monkeypatch.setattr(config, "legacy_snapshot_path", tmp_path / "legacy" / "notes_snapshot.json")
    monkeypatch.setattr(config, "default_category", "Personal")
    monkeypatch.setattr(config, "default_note_title", "Nouvelle note")
    monkeypatch.setattr(config, "auto_persist_imports", False)
    monkeypatch.setattr(config, "auto_migrate", True)
    monkeypatch.setattr(config, "max_category_depth", 8)
    monkeypatch.setattr(config, "default_sort_by", "updated_at")
    monkeypatch.setattr(config, "default_sort_order", "desc")
    metrics.reset()
    yield config


@pytest.fixture
def engine():
    """A fresh in-memory store per test."""
    engine = init_db("sqlite:///:memory:")
    yield engine
    engine.dispose()


@pytest.fixture
def identity():
    """Local identity provider with a signed-in user."""
    return LocalIdentityProvider(User(id=USER_ID, email="user1@example.com"))


@pytest.fixture
def store(engine, identity):
    return RemoteStore(engine, identity)


@pytest.fixture
def other_store(engine):
    """Second user on the same store."""
    return RemoteStore(engine, LocalIdentityProvider(User(id=OTHER_USER_ID)))


@pytest.fixture
def anonymous_store(engine):
    """Store whose identity provider has nobody signed in."""
    return RemoteStore(engine, LocalIdentityProvider())


@pytest.fixture
def snapshot_store(tmp_path):
    return LegacySnapshotStore(tmp_path / "legacy" / "notes_snapshot.json")


@pytest.fixture
def migration_service(store, snapshot_store):
    return MigrationService(store, snapshot_store)


@pytest.fixture
def service(store):
    """A sync service that has not loaded yet."""
    return NotesSyncService(store)


@pytest.fixture
def loaded_service(service):
    """A sync service with default categories seeded and loaded."""
    assert service.load()
    return service
