# tests/test_migration_service.py
"""Tests for the legacy snapshot migration."""
import json

import pytest

from notesync.exceptions import ErrorCode, MigrationError
from notesync.models.schema import Category
from notesync.services.migration_service import NO_DATA_MESSAGE, MigrationService
from notesync.storage.legacy_snapshot import (
    LegacySnapshotStore,
    parse_legacy_category,
    parse_legacy_note,
)
from tests.fakes import break_store

LEGACY = {
    "categories": [
        {"id": "1", "name": "Personal", "color": "#3B82F6"},
        {"id": "2", "name": "Travail", "color": "#10B981"},
        {"id": "3", "name": "Clients", "color": "#F59E0B", "parentId": "2"},
    ],
    "notes": [
        {
            "id": "note-1",
            "title": "Groceries",
            "content": "milk",
            "tags": ["home"],
            "category": "Personal",
            "isFavorite": True,
            "createdAt": "2024-01-02T10:00:00Z",
            "updatedAt": "2024-01-03T10:00:00Z",
        },
        {
            "id": "note-2",
            "title": "Pitch",
            "content": "deck",
            "category": "Clients",
            "isArchived": True,
            "isProtected": True,
            "password": "s3cret",
        },
    ],
}


def write_snapshot(store: LegacySnapshotStore, document) -> None:
    store.path.parent.mkdir(parents=True, exist_ok=True)
    text = document if isinstance(document, str) else json.dumps(document)
    store.path.write_text(text, encoding="utf-8")


class TestLegacyParsing:
    def test_parse_camel_case_note(self):
        note = parse_legacy_note(LEGACY["notes"][0])
        assert note.id == "note-1"
        assert note.is_favorite
        assert note.created_at.year == 2024

    def test_plaintext_password_is_hashed(self):
        note = parse_legacy_note(LEGACY["notes"][1])
        assert note.is_protected
        assert note.password_hash != "s3cret"
        assert note.check_password("s3cret")

    def test_unknown_keys_are_ignored(self):
        category = parse_legacy_category({"id": "9", "name": "X", "icon": "star"})
        assert category.name == "X"

    def test_load_rejects_non_object(self, snapshot_store):
        write_snapshot(snapshot_store, "[1, 2]")
        with pytest.raises(MigrationError):
            snapshot_store.load()

    def test_load_rejects_non_list_section(self, snapshot_store):
        write_snapshot(snapshot_store, {"notes": {"id": "x"}})
        with pytest.raises(MigrationError):
            snapshot_store.load()

    def test_sections_are_optional(self, snapshot_store):
        write_snapshot(snapshot_store, {"categories": [{"name": "Solo"}]})
        snapshot = snapshot_store.load()
        assert snapshot.notes == []
        assert len(snapshot.categories) == 1


class TestMigration:
    def test_no_snapshot(self, migration_service, snapshot_store):
        assert not migration_service.needs_migration()
        assert migration_service.run_once() is None
        summary = migration_service.migrate()
        assert summary.success
        assert summary.categories_migrated == 0
        assert summary.notes_migrated == 0
        assert summary.message == NO_DATA_MESSAGE

    def test_migrates_categories_and_notes(self, store, migration_service, snapshot_store):
        store.categories.create_category(Category(name="Personal"))
        write_snapshot(snapshot_store, LEGACY)

        summary = migration_service.run_once()

        assert summary.success, summary.message
        assert summary.categories_migrated == 2  # Personal already existed
        assert summary.notes_migrated == 2
        assert summary.failures == []
        assert "2 categories and 2 notes" in summary.message

        categories = {c.name: c for c in store.categories.list_categories()}
        assert set(categories) == {"Personal", "Travail", "Clients"}
        assert categories["Clients"].parent_id == categories["Travail"].id

        groceries = store.notes.get_note("note-1")
        assert groceries.title == "Groceries"
        assert groceries.is_favorite
        assert groceries.tags == ["home"]
        pitch = store.notes.get_note("note-2")
        assert pitch.category == "Clients"
        assert pitch.is_archived
        assert pitch.check_password("s3cret")

    def test_snapshot_cleared_and_marked(self, migration_service, snapshot_store):
        write_snapshot(snapshot_store, LEGACY)
        migration_service.run_once()
        assert not snapshot_store.exists()
        assert snapshot_store.is_migrated()
        marker = json.loads(snapshot_store.marker_path.read_text(encoding="utf-8"))
        assert marker["notes_migrated"] == 2
        assert not migration_service.needs_migration()
        assert migration_service.run_once() is None

    def test_migration_is_idempotent(self, store, migration_service, snapshot_store):
        write_snapshot(snapshot_store, LEGACY)
        migration_service.migrate()
        notes_before = store.notes.list_notes()
        categories_before = store.categories.list_categories()

        write_snapshot(snapshot_store, LEGACY)
        summary = migration_service.migrate()

        assert summary.success
        assert summary.categories_migrated == 0
        assert summary.notes_migrated == 0
        assert store.notes.list_notes() == notes_before
        assert store.categories.list_categories() == categories_before

    def test_item_failures_are_skipped(self, store, migration_service, snapshot_store):
        document = {
            "categories": [{"id": "1", "name": "  "}, {"id": "2", "name": "Ok"}],
            "notes": [
                {"id": "bad", "title": "Bad", "tags": 5},
                "not a record",
                {"id": "good", "title": "Good", "category": "Ok"},
            ],
        }
        write_snapshot(snapshot_store, document)

        summary = migration_service.migrate()

        assert summary.success
        assert summary.categories_migrated == 1
        assert summary.notes_migrated == 1
        assert {(f["kind"], f["key"]) for f in summary.failures} == {
            ("category", "  "),
            ("note", "bad"),
            ("note", "?"),
        }
        assert "3 skipped" in summary.message
        assert store.notes.get_note("good").category == "Ok"

    def test_invalid_json_keeps_snapshot(self, migration_service, snapshot_store):
        write_snapshot(snapshot_store, "{not json")
        summary = migration_service.run_once()
        assert not summary.success
        assert snapshot_store.exists()
        assert not snapshot_store.is_migrated()

    def test_unauthenticated_keeps_snapshot(self, anonymous_store, snapshot_store):
        write_snapshot(snapshot_store, LEGACY)
        summary = MigrationService(anonymous_store, snapshot_store).migrate()
        assert not summary.success
        assert "not authenticated" in summary.message
        assert snapshot_store.exists()

    def test_store_unavailable_keeps_snapshot(self, store, snapshot_store):
        write_snapshot(snapshot_store, LEGACY)
        break_store(store, categories=["list_categories"])
        summary = MigrationService(store, snapshot_store).migrate()
        assert not summary.success
        assert snapshot_store.exists()

    def test_empty_snapshot_file(self, migration_service, snapshot_store):
        write_snapshot(snapshot_store, "")
        summary = migration_service.migrate()
        assert summary.success
        assert summary.message == NO_DATA_MESSAGE

    def test_snapshot_path_from_config(self, store, tmp_path):
        service = MigrationService(store)
        assert service.snapshot.path == tmp_path / "legacy" / "notes_snapshot.json"

    def test_unreadable_snapshot_error_code(self, snapshot_store, monkeypatch):
        write_snapshot(snapshot_store, LEGACY)

        def refuse(*args, **kwargs):
            raise PermissionError("denied")

        monkeypatch.setattr(type(snapshot_store.path), "read_text", refuse)
        with pytest.raises(MigrationError) as exc_info:
            snapshot_store.load()
        assert exc_info.value.code == ErrorCode.MIGRATION_SNAPSHOT_UNREADABLE
