# tests/test_models.py
"""Tests for the data models of the notesync core."""
import datetime
from datetime import timezone

import pytest
from pydantic import ValidationError

from notesync.models.schema import (
    Attachment,
    Category,
    CategoryUpdate,
    ExportPayload,
    MigrationSummary,
    Note,
    NoteFilters,
    NoteUpdate,
    bootstrap_categories,
    hash_password,
    verify_password,
)
from tests.fakes import at


class TestNoteModel:
    """Tests for the Note model."""

    def test_note_defaults(self):
        """A bare note gets the placeholder title and the default category."""
        note = Note()
        assert note.id
        assert note.title == "Nouvelle note"
        assert note.content == ""
        assert note.tags == []
        assert note.category == "Personal"
        assert not note.is_favorite
        assert not note.is_archived
        assert not note.is_protected
        assert note.attachments == []
        assert note.created_at.tzinfo is not None

    def test_blank_title_and_category_are_coerced(self):
        note = Note(title="   ", category="")
        assert note.title == "Nouvelle note"
        assert note.category == "Personal"

    def test_ids_are_unique(self):
        assert Note().id != Note().id

    def test_tags_keep_order_and_drop_duplicates(self):
        note = Note(tags=["work", " urgent ", "work", "", "urgent"])
        assert note.tags == ["work", "urgent"]

    def test_updated_before_created_is_rejected(self):
        with pytest.raises(ValidationError):
            Note(created_at=at(10), updated_at=at(0))

    def test_naive_timestamps_are_utc(self):
        naive = datetime.datetime(2024, 1, 1, 12, 0)
        note = Note(created_at=naive, updated_at=naive)
        assert note.created_at.tzinfo == timezone.utc

    def test_unknown_fields_are_rejected(self):
        with pytest.raises(ValidationError):
            Note(title="x", colour="red")

    def test_password_protection(self):
        note = Note(title="Secret")
        note.set_password("hunter2")
        assert note.is_protected
        assert note.password_hash.startswith("pbkdf2_sha256$")
        assert "hunter2" not in note.password_hash
        assert note.check_password("hunter2")
        assert not note.check_password("wrong")
        note.clear_password()
        assert not note.is_protected
        assert note.password_hash is None
        assert not note.check_password("hunter2")

    def test_empty_password_is_rejected(self):
        with pytest.raises(ValueError):
            Note().set_password("")


class TestPasswords:
    def test_hash_is_salted(self):
        assert hash_password("same") != hash_password("same")

    def test_legacy_value_compared_verbatim(self):
        """Values written by the legacy client carry no scheme prefix."""
        assert verify_password("plain", "plain")
        assert not verify_password("other", "plain")

    def test_missing_hash_never_verifies(self):
        assert not verify_password("anything", None)

    def test_corrupt_hash_does_not_verify(self):
        assert not verify_password("x", "pbkdf2_sha256$abc$zz$00")


class TestPartialUpdates:
    def test_note_update_only_reports_provided_fields(self):
        update = NoteUpdate(title="New", is_favorite=False)
        assert update.changes() == {"title": "New", "is_favorite": False}

    def test_note_update_explicit_none_clears_password_only(self):
        update = NoteUpdate(password_hash=None, content=None)
        assert update.changes() == {"password_hash": None}

    def test_note_update_blank_title_becomes_placeholder(self):
        assert NoteUpdate(title=" ").changes() == {"title": "Nouvelle note"}

    def test_category_update_detach_parent(self):
        assert CategoryUpdate(parent_id=None).changes() == {"parent_id": None}
        assert CategoryUpdate(parent_id="").changes() == {"parent_id": None}
        assert CategoryUpdate(color="#000000").changes() == {"color": "#000000"}

    def test_category_update_rejects_blank_name(self):
        with pytest.raises(ValidationError):
            CategoryUpdate(name="  ")


class TestCategoryModel:
    def test_category_name_is_stripped(self):
        category = Category(name="  Work ")
        assert category.name == "Work"
        assert category.color == "#3B82F6"
        assert category.parent_id is None

    def test_empty_name_is_rejected(self):
        with pytest.raises(ValidationError):
            Category(name=" ")

    def test_bootstrap_categories(self):
        defaults = bootstrap_categories()
        assert [(c.name, c.color) for c in defaults] == [
            ("Personal", "#3B82F6"),
            ("Work", "#10B981"),
            ("Projects", "#F59E0B"),
            ("Ideas", "#8B5CF6"),
        ]
        assert len({c.id for c in defaults}) == 4


class TestAttachmentModel:
    def test_negative_size_is_rejected(self):
        with pytest.raises(ValidationError):
            Attachment(name="a.png", type="image/png", size=-1, url="https://x/a.png")

    def test_attachment_is_frozen(self):
        attachment = Attachment(name="a.png", type="image/png", size=1, url="u")
        with pytest.raises(ValidationError):
            attachment.size = 2


class TestNoteFilters:
    def test_matches(self):
        note = Note(category="Work", tags=["a", "b"], is_favorite=True)
        assert NoteFilters().matches(note)
        assert NoteFilters(category="Work", tags=["b"]).matches(note)
        assert not NoteFilters(category="Ideas").matches(note)
        assert not NoteFilters(tags=["a", "c"]).matches(note)
        assert NoteFilters(is_favorite=True, is_archived=False).matches(note)
        assert not NoteFilters(is_archived=True).matches(note)


class TestPayloads:
    def test_export_payload_write_to_sanitizes_name(self, tmp_path):
        payload = ExportPayload("a/b: plan.md", "text/markdown", "# plan")
        target = payload.write_to(tmp_path / "out")
        assert target.parent == tmp_path / "out"
        assert target.name == "a-b- plan.md"
        assert target.read_text(encoding="utf-8") == "# plan"

    def test_migration_summary_to_dict(self):
        summary = MigrationSummary(success=True, notes_migrated=2, message="done")
        assert summary.to_dict() == {
            "success": True,
            "categories_migrated": 0,
            "notes_migrated": 2,
            "message": "done",
            "failures": [],
        }
