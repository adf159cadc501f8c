"""Remote store adapter and legacy snapshot access."""
from notesync.storage.attachment_repository import AttachmentRepository
from notesync.storage.category_repository import CategoryRepository
from notesync.storage.legacy_snapshot import LegacySnapshot, LegacySnapshotStore
from notesync.storage.note_repository import NoteRepository
from notesync.storage.remote_store import RemoteStore

__all__ = [
    "AttachmentRepository",
    "CategoryRepository",
    "LegacySnapshot",
    "LegacySnapshotStore",
    "NoteRepository",
    "RemoteStore",
]
