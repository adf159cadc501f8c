"""Tests for the exception hierarchy."""
from notesync.exceptions import (
    CategoryNotFoundError,
    ErrorCode,
    MigrationError,
    NotesyncError,
    NoteNotFoundError,
    RemoteUnavailableError,
    SyncStateError,
    UnauthenticatedError,
    ValidationError,
    summarize_failures,
)


def test_to_dict():
    error = NoteNotFoundError("n1")
    assert error.to_dict() == {
        "error": "NoteNotFoundError",
        "code": ErrorCode.NOTE_NOT_FOUND.value,
        "code_name": "NOTE_NOT_FOUND",
        "message": "Note with ID 'n1' not found",
        "details": {"note_id": "n1"},
    }


def test_str_includes_code_and_details():
    assert str(CategoryNotFoundError("c1")) == (
        "[CATEGORY_NOT_FOUND] Category with ID 'c1' not found (category_id=c1)"
    )
    assert str(NotesyncError("plain")) == "[VALIDATION_FAILED] plain"


def test_everything_is_a_notesync_error():
    errors = [
        UnauthenticatedError("notes.list"),
        ValidationError("bad", field="title"),
        RemoteUnavailableError("down", operation="notes.list"),
        MigrationError("broken"),
        SyncStateError("notes", "ready", "failed"),
    ]
    assert all(isinstance(e, NotesyncError) for e in errors)


def test_validation_value_is_truncated():
    error = ValidationError("too long", value="x" * 500)
    assert len(error.details["value"]) == 100


def test_migration_error_keeps_only_file_name():
    error = MigrationError("unreadable", path="/home/me/legacy/notes.json")
    assert error.details["path_hint"] == "notes.json"


def test_remote_unavailable_keeps_original_error():
    original = OSError("connection refused")
    error = RemoteUnavailableError("down", operation="notes.get", original_error=original)
    assert error.original_error is original
    assert error.details == {"operation": "notes.get", "original_error": "connection refused"}


def test_summarize_failures():
    failures = [{"kind": "note", "key": str(i)} for i in range(7)]
    assert summarize_failures(failures[:2]) == "note:0, note:1"
    assert summarize_failures(failures).endswith("(+2 more)")
