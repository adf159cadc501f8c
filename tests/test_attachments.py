# tests/test_attachments.py
"""Tests for attachment metadata storage."""
import pytest

from notesync.exceptions import ErrorCode, NoteNotFoundError, NotFoundError
from notesync.models.schema import Attachment
from tests.fakes import make_note


def _attachment(name="photo.png", size=1024):
    return Attachment(name=name, type="image/png", size=size, url=f"https://files/{name}")


def test_add_and_list(store):
    note = store.notes.create_note(make_note(title="Trip"))
    first = store.attachments.add_attachment(note.id, _attachment("a.png"))
    store.attachments.add_attachment(note.id, _attachment("b.png"))

    assert first.name == "a.png"
    assert first.url == "https://files/a.png"
    assert {a.name for a in store.attachments.list_for_note(note.id)} == {"a.png", "b.png"}

    reread = store.notes.get_note(note.id)
    assert {a.name for a in reread.attachments} == {"a.png", "b.png"}
    assert reread.updated_at > note.updated_at


def test_add_to_unknown_note_raises(store):
    with pytest.raises(NoteNotFoundError):
        store.attachments.add_attachment("missing", _attachment())


def test_add_to_other_users_note_raises(store, other_store):
    note = store.notes.create_note(make_note())
    with pytest.raises(NoteNotFoundError):
        other_store.attachments.add_attachment(note.id, _attachment())
    assert other_store.attachments.list_for_note(note.id) == []


def test_delete_attachment(store):
    note = store.notes.create_note(make_note())
    attachment = store.attachments.add_attachment(note.id, _attachment())
    store.attachments.delete_attachment(attachment.id)
    assert store.attachments.list_for_note(note.id) == []
    assert store.notes.get_note(note.id).attachments == []


def test_delete_missing_attachment_raises(store):
    with pytest.raises(NotFoundError) as exc_info:
        store.attachments.delete_attachment("missing")
    assert exc_info.value.code == ErrorCode.ATTACHMENT_NOT_FOUND
    assert exc_info.value.entity == "attachment"


def test_attachments_go_with_their_note(store):
    note = store.notes.create_note(make_note())
    store.attachments.add_attachment(note.id, _attachment())
    store.notes.delete_note(note.id)
    assert store.attachments.list_for_note(note.id) == []
