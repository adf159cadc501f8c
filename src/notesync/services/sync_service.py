"""Session-scoped synchronization core for notes and categories.

``NotesSyncService`` owns the canonical note and category collections of a
signed-in session. Every write follows confirm-then-apply: the store is
called first and the collection only changes once the store has returned
the canonical row. A failed write leaves the collection exactly as it was
and sets ``error`` to a single user-facing message; typed store errors are
never raised out of the write intents.
"""
import logging
import threading
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from notesync.config import config
from notesync.exceptions import NotesyncError, SyncStateError
from notesync.identity import IdentityProvider, User
from notesync.models.schema import (
    DEFAULT_CATEGORY_COLOR,
    Attachment,
    Category,
    CategoryUpdate,
    CollectionState,
    ExportFormat,
    ExportPayload,
    MigrationSummary,
    Note,
    NoteFilters,
    NoteUpdate,
    SortField,
    SortOrder,
    bootstrap_categories,
    utc_now,
)
from notesync.observability import get_logger
from notesync.services import projection
from notesync.services.export_service import read_import_file, render_export
from notesync.services.migration_service import MigrationService
from notesync.storage.remote_store import RemoteStore

logger = logging.getLogger(__name__)
session_log = get_logger("session")

LOAD_ERROR_MESSAGE = "Unable to load data from the remote store"

NOTES = "notes"
CATEGORIES = "categories"
_COLLECTIONS = (NOTES, CATEGORIES)

# Allowed moves; any state may also go back to UNINITIALIZED on sign-out
_TRANSITIONS = {
    CollectionState.UNINITIALIZED: {CollectionState.LOADING},
    CollectionState.LOADING: {CollectionState.READY, CollectionState.FAILED},
    CollectionState.READY: {CollectionState.LOADING},
    CollectionState.FAILED: {CollectionState.LOADING},
}


class NotesSyncService:
    """Keeps the client view of notes and categories in step with the store.

    Attributes:
        categories: Canonical categories (bootstrap set until loaded).
        sort_by: Current sort field of ``notes``.
        sort_order: Current sort direction of ``notes``.
        error: Last user-facing error message, or None.
        last_migration: Summary of the migration run at sign-in, if any.
    """

    def __init__(
        self,
        store: RemoteStore,
        migration: Optional[MigrationService] = None,
    ):
        self.store = store
        self.migration = migration
        self.categories: List[Category] = bootstrap_categories()
        self.sort_by = SortField(config.default_sort_by)
        self.sort_order = SortOrder(config.default_sort_order)
        self.error: Optional[str] = None
        self.last_migration: Optional[MigrationSummary] = None

        self._notes: List[Note] = []
        self._selected_id: Optional[str] = None
        self._local_only: set = set()
        self._states: Dict[str, CollectionState] = {
            name: CollectionState.UNINITIALIZED for name in _COLLECTIONS
        }
        self._unsubscribe = None

        # Guards the canonical collections and states
        self._lock = threading.RLock()
        # Per-note locks serialize writes to the same note
        self._note_locks: weakref.WeakValueDictionary[str, threading.RLock] = (
            weakref.WeakValueDictionary()
        )
        self._note_locks_lock = threading.Lock()

    # =========================================================================
    # Read-only view
    # =========================================================================

    @property
    def notes(self) -> List[Note]:
        """The canonical notes in the current sort order."""
        with self._lock:
            snapshot = list(self._notes)
        return projection.project(snapshot, self.sort_by, self.sort_order).to_list()

    @property
    def selected_note(self) -> Optional[Note]:
        if self._selected_id is None:
            return None
        return self._find_note(self._selected_id)

    @property
    def is_loading(self) -> bool:
        return any(s is CollectionState.LOADING for s in self._states.values())

    @property
    def states(self) -> Dict[str, CollectionState]:
        return dict(self._states)

    def state(self, collection: str) -> CollectionState:
        return self._states[collection]

    @property
    def local_only_note_ids(self) -> FrozenSet[str]:
        """Ids of imported notes that have no remote row yet."""
        return frozenset(self._local_only)

    # =========================================================================
    # State machine
    # =========================================================================

    def _transition(self, collection: str, target: CollectionState) -> None:
        current = self._states[collection]
        if target is not CollectionState.UNINITIALIZED and target not in _TRANSITIONS[current]:
            raise SyncStateError(collection, current.value, target.value)
        logger.debug(f"{collection}: {current.value} -> {target.value}")
        self._states[collection] = target

    @contextmanager
    def _pending_write(self, collection: str) -> Iterator[None]:
        """Mark ``collection`` as loading while a write is in flight.

        A READY collection returns to READY afterwards whether or not the
        write succeeded; other states are left alone.
        """
        with self._lock:
            previous = self._states[collection]
            if previous is CollectionState.READY:
                self._transition(collection, CollectionState.LOADING)
            self.error = None
        try:
            yield
        finally:
            with self._lock:
                if (
                    previous is CollectionState.READY
                    and self._states[collection] is CollectionState.LOADING
                ):
                    self._transition(collection, CollectionState.READY)

    def _get_note_lock(self, note_id: str) -> threading.RLock:
        """Get or create the write lock of a note."""
        with self._note_locks_lock:
            lock = self._note_locks.get(note_id)
            if lock is None:
                lock = threading.RLock()
                self._note_locks[note_id] = lock
            return lock

    def _fail(self, message: str, error: Exception) -> None:
        logger.error(f"{message}: {error}")
        self.error = message

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    def bind_identity(self, identity: IdentityProvider) -> None:
        """Follow sign-in and sign-out events of ``identity``.

        A user already signed in is handled immediately.
        """
        self.unbind_identity()
        self._unsubscribe = identity.on_auth_change(self._on_auth_change)
        user = identity.current_user()
        if user is not None:
            self._on_auth_change(user)

    def unbind_identity(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_auth_change(self, user: Optional[User]) -> None:
        if user is None:
            session_log.info("Signed out")
            session_log.clear_context()
            self.clear()
            return
        session_log.set_context(user=user.id)
        session_log.info("Signed in")
        if self.migration is not None and config.auto_migrate:
            self.last_migration = self.migration.run_once()
            if self.last_migration is not None:
                session_log.info(
                    self.last_migration.message, success=self.last_migration.success
                )
        self.load()

    def clear(self) -> None:
        """Forget the session: empty notes, bootstrap categories, no error."""
        with self._lock:
            self._notes = []
            self.categories = bootstrap_categories()
            self._selected_id = None
            self._local_only.clear()
            self.error = None
            for name in _COLLECTIONS:
                self._transition(name, CollectionState.UNINITIALIZED)
        logger.info("Session cleared")

    def load(self) -> bool:
        """Fetch categories (seeding the defaults for a new user) and notes.

        Returns:
            True when both collections are READY, False when they FAILED.
        """
        with self._lock:
            for name in _COLLECTIONS:
                current = self._states[name]
                if CollectionState.LOADING not in _TRANSITIONS[current]:
                    raise SyncStateError(name, current.value, CollectionState.LOADING.value)
            for name in _COLLECTIONS:
                self._transition(name, CollectionState.LOADING)
            self.error = None

        try:
            categories = self.store.categories.list_categories()
            if not categories:
                categories = self._seed_default_categories()
            notes = self.store.notes.list_notes()
        except NotesyncError as e:
            with self._lock:
                self._fail(LOAD_ERROR_MESSAGE, e)
                self._notes = []
                self.categories = bootstrap_categories()
                self._selected_id = None
                self._local_only.clear()
                for name in _COLLECTIONS:
                    self._transition(name, CollectionState.FAILED)
            return False

        with self._lock:
            self.categories = categories or bootstrap_categories()
            self._notes = notes
            self._local_only.clear()
            if self._selected_id is not None and self._index_of(self._selected_id) is None:
                self._selected_id = None
            for name in _COLLECTIONS:
                self._transition(name, CollectionState.READY)
        logger.info(f"Loaded {len(notes)} notes and {len(self.categories)} categories")
        return True

    def retry(self) -> bool:
        """Reload after a failure."""
        logger.info("Retrying load")
        return self.load()

    def _seed_default_categories(self) -> List[Category]:
        logger.info("No categories found; creating the default categories")
        for default in bootstrap_categories():
            try:
                self.store.categories.create_category(
                    Category(name=default.name, color=default.color)
                )
            except NotesyncError as e:
                logger.warning(f"Could not create default category '{default.name}': {e}")
        return self.store.categories.list_categories()

    # =========================================================================
    # Note intents
    # =========================================================================

    def _find_note(self, note_id: str) -> Optional[Note]:
        with self._lock:
            index = self._index_of(note_id)
            return self._notes[index] if index is not None else None

    def _index_of(self, note_id: str) -> Optional[int]:
        for i, note in enumerate(self._notes):
            if note.id == note_id:
                return i
        return None

    def _replace_note(self, note: Note) -> None:
        with self._lock:
            index = self._index_of(note.id)
            if index is None:
                self._notes.insert(0, note)
            else:
                self._notes[index] = note

    def _remove_note(self, note_id: str) -> None:
        with self._lock:
            self._notes = [n for n in self._notes if n.id != note_id]
            self._local_only.discard(note_id)
            if self._selected_id == note_id:
                self._selected_id = None

    def select_note(self, note_id: Optional[str]) -> Optional[Note]:
        """Select a note by id; None (or an unknown id) clears the selection."""
        note = self._find_note(note_id) if note_id is not None else None
        self._selected_id = note.id if note is not None else None
        return note

    def create_note(self) -> Optional[Note]:
        """Create a default note, prepend it and select it.

        Returns:
            The stored note, or None if the store refused it.
        """
        note = Note()
        with self._get_note_lock(note.id), self._pending_write(NOTES):
            try:
                created = self.store.notes.create_note(note)
            except NotesyncError as e:
                self._fail("Unable to create the note", e)
                return None
            with self._lock:
                self._notes.insert(0, created)
                self._selected_id = created.id
            return created

    def update_note(
        self, note_id: str, update: Union[NoteUpdate, dict]
    ) -> Optional[Note]:
        """Apply a partial update once the store has confirmed it.

        Notes that only exist locally (imports not yet saved) are updated
        in place without a store call.
        """
        try:
            if isinstance(update, dict):
                update = NoteUpdate(**update)
        except PydanticValidationError as e:
            self._fail("Unable to update the note", e)
            return None

        with self._get_note_lock(note_id), self._pending_write(NOTES):
            if note_id in self._local_only:
                return self._update_local_note(note_id, update)
            try:
                updated = self.store.notes.update_note(note_id, update)
            except NotesyncError as e:
                self._fail("Unable to update the note", e)
                return None
            self._replace_note(updated)
            return updated

    def _update_local_note(self, note_id: str, update: NoteUpdate) -> Optional[Note]:
        note = self._find_note(note_id)
        if note is None:
            return None
        data = note.model_dump()
        data.update(update.changes())
        data["updated_at"] = utc_now()
        updated = Note(**data)
        self._replace_note(updated)
        return updated

    def delete_note(self, note_id: str) -> bool:
        """Delete a note; clears the selection if it pointed at it."""
        with self._get_note_lock(note_id), self._pending_write(NOTES):
            if note_id not in self._local_only:
                try:
                    self.store.notes.delete_note(note_id)
                except NotesyncError as e:
                    self._fail("Unable to delete the note", e)
                    return False
            self._remove_note(note_id)
            return True

    def toggle_favorite(self, note_id: str) -> Optional[Note]:
        note = self._find_note(note_id)
        if note is None:
            return None
        return self.update_note(note_id, NoteUpdate(is_favorite=not note.is_favorite))

    def toggle_archive(self, note_id: str) -> Optional[Note]:
        note = self._find_note(note_id)
        if note is None:
            return None
        return self.update_note(note_id, NoteUpdate(is_archived=not note.is_archived))

    def persist_note(self, note_id: str) -> Optional[Note]:
        """Save a local-only note to the store and swap in the stored row."""
        note = self._find_note(note_id)
        if note is None or note_id not in self._local_only:
            return note
        with self._get_note_lock(note_id), self._pending_write(NOTES):
            try:
                created = self.store.notes.create_note(note)
            except NotesyncError as e:
                self._fail("Unable to save the imported note", e)
                return None
            with self._lock:
                self._local_only.discard(note_id)
                self._replace_note(created)
            return created

    # =========================================================================
    # Protection and attachments
    # =========================================================================

    def protect_note(self, note_id: str, password: str) -> Optional[Note]:
        note = self._find_note(note_id)
        if note is None:
            self.error = "Note not found"
            return None
        draft = note.model_copy()
        try:
            draft.set_password(password)
        except ValueError:
            self.error = "A password is required to protect the note"
            return None
        return self.update_note(
            note_id,
            NoteUpdate(is_protected=draft.is_protected, password_hash=draft.password_hash),
        )

    def unprotect_note(self, note_id: str) -> Optional[Note]:
        note = self._find_note(note_id)
        if note is None:
            self.error = "Note not found"
            return None
        draft = note.model_copy()
        draft.clear_password()
        return self.update_note(
            note_id,
            NoteUpdate(is_protected=draft.is_protected, password_hash=draft.password_hash),
        )

    def unlock_note(self, note_id: str, password: str) -> bool:
        """Check a password locally; unprotected notes are always unlocked."""
        note = self._find_note(note_id)
        if note is None:
            return False
        if not note.is_protected:
            return True
        return note.check_password(password)

    def add_attachment(
        self, note_id: str, name: str, type: str, size: int, url: str
    ) -> Optional[Note]:
        """Attach file metadata to a stored note; returns the refreshed note."""
        if note_id in self._local_only:
            self.error = "Save the note before adding attachments"
            return None
        try:
            attachment = Attachment(name=name, type=type, size=size, url=url)
        except PydanticValidationError as e:
            self._fail("Invalid attachment", e)
            return None
        with self._get_note_lock(note_id), self._pending_write(NOTES):
            try:
                self.store.attachments.add_attachment(note_id, attachment)
                refreshed = self.store.notes.get_note(note_id)
            except NotesyncError as e:
                self._fail("Unable to add the attachment", e)
                return None
            if refreshed is not None:
                self._replace_note(refreshed)
            return refreshed

    def remove_attachment(self, note_id: str, attachment_id: str) -> Optional[Note]:
        with self._get_note_lock(note_id), self._pending_write(NOTES):
            try:
                self.store.attachments.delete_attachment(attachment_id)
                refreshed = self.store.notes.get_note(note_id)
            except NotesyncError as e:
                self._fail("Unable to remove the attachment", e)
                return None
            if refreshed is not None:
                self._replace_note(refreshed)
            return refreshed

    # =========================================================================
    # Category intents
    # =========================================================================

    def _find_category(self, category_id: str) -> Optional[Category]:
        with self._lock:
            return next((c for c in self.categories if c.id == category_id), None)

    def _rename_local_category(self, old_name: str, new_name: str) -> None:
        with self._lock:
            self._notes = [
                n.model_copy(update={"category": new_name}) if n.category == old_name else n
                for n in self._notes
            ]

    def _restore_category(self, note_ids: List[str], name: str) -> None:
        """Move notes back into ``name`` after an aborted category delete."""
        for note_id in note_ids:
            if self.update_note(note_id, NoteUpdate(category=name)) is None:
                logger.error(f"Note {note_id} left in {config.default_category}")

    def add_category(
        self,
        name: str,
        color: str = DEFAULT_CATEGORY_COLOR,
        parent_id: Optional[str] = None,
    ) -> Optional[Category]:
        """Create a category; names already in use are refused."""
        name = (name or "").strip()
        if any(c.name == name for c in self.categories):
            self.error = f"Category '{name}' already exists"
            return None
        try:
            category = Category(name=name, color=color, parent_id=parent_id)
        except PydanticValidationError as e:
            self._fail("Invalid category", e)
            return None
        with self._pending_write(CATEGORIES):
            try:
                created = self.store.categories.create_category(category)
            except NotesyncError as e:
                self._fail("Unable to create the category", e)
                return None
            with self._lock:
                self.categories.append(created)
            return created

    def update_category(
        self, category_id: str, update: Union[CategoryUpdate, dict]
    ) -> Optional[Category]:
        """Apply a partial category update; a rename carries over to local notes."""
        try:
            if isinstance(update, dict):
                update = CategoryUpdate(**update)
        except PydanticValidationError as e:
            self._fail("Invalid category", e)
            return None
        new_name = update.changes().get("name")
        if new_name and any(
            c.name == new_name and c.id != category_id for c in self.categories
        ):
            self.error = f"Category '{new_name}' already exists"
            return None

        old = self._find_category(category_id)
        with self._pending_write(CATEGORIES):
            try:
                updated = self.store.categories.update_category(category_id, update)
            except NotesyncError as e:
                self._fail("Unable to update the category", e)
                return None
            with self._lock:
                self.categories = [
                    updated if c.id == category_id else c for c in self.categories
                ]
                if old is not None and old.name != updated.name:
                    self._rename_local_category(old.name, updated.name)
            return updated

    def delete_category(self, category_id: str) -> bool:
        """Move the category's notes to the default category, then delete it.

        The category is kept if any of its notes could not be moved; notes
        already moved are put back in it. Child categories lose their parent,
        as they do in the store.
        """
        category = self._find_category(category_id)
        if category is None:
            self.error = "Category not found"
            return False
        if category.name == config.default_category:
            self.error = "The default category cannot be deleted"
            return False

        with self._lock:
            affected = [n.id for n in self._notes if n.category == category.name]
        moved: List[str] = []
        for note_id in affected:
            if self.update_note(note_id, NoteUpdate(category=config.default_category)) is None:
                logger.error(
                    f"Category {category_id} kept: note {note_id} could not be reassigned"
                )
                self._restore_category(moved, category.name)
                self.error = "Unable to delete the category"
                return False
            moved.append(note_id)

        with self._pending_write(CATEGORIES):
            try:
                self.store.categories.delete_category(category_id)
            except NotesyncError as e:
                self._fail("Unable to delete the category", e)
                self._restore_category(moved, category.name)
                self.error = "Unable to delete the category"
                return False
            with self._lock:
                self.categories = [
                    c.model_copy(update={"parent_id": None}) if c.parent_id == category_id else c
                    for c in self.categories
                    if c.id != category_id
                ]
                # Rows whose category could not be resolved still carry the old name
                self._rename_local_category(category.name, config.default_category)
            return True

    # =========================================================================
    # Views, search, export and import
    # =========================================================================

    def set_sorting(
        self, sort_by: Union[SortField, str], sort_order: Union[SortOrder, str]
    ) -> None:
        self.sort_by = SortField(sort_by)
        self.sort_order = SortOrder(sort_order)

    def get_filtered_notes(
        self, filters: Optional[Union[NoteFilters, dict]] = None
    ) -> List[Note]:
        """Sorted notes matching ``filters`` (all notes when None)."""
        if isinstance(filters, dict):
            filters = NoteFilters(**filters)
        if filters is None:
            return self.notes
        return projection.filter_notes(self.notes, filters)

    def category_counts(self) -> Dict[str, int]:
        return projection.category_counts(self.notes)

    def tag_counts(self) -> Dict[str, int]:
        return projection.tag_counts(self.notes)

    def filter_counts(self) -> Dict[str, int]:
        return projection.filter_counts(self.notes)

    def search_notes(self, query: str) -> List[Note]:
        """Search the store, falling back to a local search if it fails."""
        if not query or not query.strip():
            return self.notes
        local_only = [n for n in self.notes if n.id in self._local_only]
        try:
            results = self.store.notes.search_notes(query)
        except NotesyncError as e:
            logger.warning(f"Remote search failed, searching locally: {e}")
            return projection.local_search(self.notes, query)
        return results + projection.local_search(local_only, query)

    def export_note(
        self, note_id: str, fmt: Union[ExportFormat, str]
    ) -> Optional[ExportPayload]:
        """Render a note for download.

        Returns None for an unknown id, and also for a format without a
        renderer (``pdf``), in which case ``error`` is set.
        """
        note = self._find_note(note_id)
        if note is None:
            return None
        try:
            return render_export(note, fmt)
        except NotesyncError as e:
            self._fail("Unable to export the note in this format", e)
            return None

    def import_notes(self, files: Iterable[Union[str, Path]]) -> List[Note]:
        """Add one local-only note per readable text file.

        With ``config.auto_persist_imports`` each note is also saved to the
        store; a failed save keeps the local-only note.
        """
        imported: List[Note] = []
        last_error: Optional[str] = None
        for path in files:
            try:
                note = read_import_file(path)
            except NotesyncError as e:
                self._fail(f"Unable to import {Path(path).name}", e)
                last_error = self.error
                continue
            with self._lock:
                self._notes.insert(0, note)
                self._local_only.add(note.id)
            if config.auto_persist_imports:
                persisted = self.persist_note(note.id)
                if persisted is None:
                    last_error = self.error
                else:
                    note = persisted
            imported.append(note)
        # Each persist resets the error; keep the last failure visible
        if last_error is not None:
            self.error = last_error
        logger.info(f"Imported {len(imported)} notes")
        return imported
