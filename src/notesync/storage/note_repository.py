"""Repository for note storage and retrieval."""
import logging
from typing import List, Optional, Union

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, joinedload, selectinload

from notesync.config import config
from notesync.exceptions import NoteNotFoundError
from notesync.models.db_models import DBAttachment, DBNote
from notesync.models.schema import (
    Attachment,
    Note,
    NoteUpdate,
    ensure_timezone_aware,
    utc_now,
)
from notesync.observability import traced
from notesync.storage.base import UserScopedRepository
from notesync.storage.category_repository import resolve_category
from notesync.utils import escape_like_pattern

logger = logging.getLogger(__name__)


def db_attachment_to_model(db_attachment: DBAttachment) -> Attachment:
    """Convert a DBAttachment row to a domain Attachment."""
    return Attachment(
        id=db_attachment.id,
        name=db_attachment.name,
        type=db_attachment.type,
        size=db_attachment.size,
        url=db_attachment.url,
    )


def db_note_to_model(db_note: DBNote) -> Note:
    """Convert a DBNote row (with its category joined) to a domain Note.

    A note whose category link is missing reads back as the default
    category.
    """
    created_at = ensure_timezone_aware(db_note.created_at)
    updated_at = ensure_timezone_aware(db_note.updated_at)
    return Note(
        id=db_note.id,
        title=db_note.title,
        content=db_note.content or "",
        tags=list(db_note.tags or []),
        category=db_note.category.name if db_note.category else config.default_category,
        is_favorite=bool(db_note.is_favorite),
        is_archived=bool(db_note.is_archived),
        is_protected=bool(db_note.is_protected),
        password_hash=db_note.password_hash,
        created_at=created_at,
        updated_at=max(updated_at, created_at),
        attachments=[db_attachment_to_model(a) for a in db_note.attachments],
    )


def _note_query(user_id: str):
    return (
        select(DBNote)
        .options(joinedload(DBNote.category), selectinload(DBNote.attachments))
        .where(DBNote.user_id == user_id)
    )


class NoteRepository(UserScopedRepository):
    """User-scoped CRUD and search for notes.

    The client model names its category; the store keeps a foreign key.
    Every write resolves the name against the user's categories by exact
    match. An unresolvable name is not an error: on create the link is
    omitted (the note reads back as the default category), on update the
    category is left as it was.
    """

    @traced("notes.list")
    def list_notes(self) -> List[Note]:
        """Get all notes of the current user, most recently updated first."""
        user_id = self._require_user("notes.list")
        with self._session("notes.list") as session:
            rows = (
                session.execute(
                    _note_query(user_id).order_by(
                        DBNote.updated_at.desc(), DBNote.id
                    )
                )
                .unique()
                .scalars()
                .all()
            )
            return [db_note_to_model(row) for row in rows]

    @traced("notes.get")
    def get_note(self, note_id: str) -> Optional[Note]:
        """Get a note by id, or None if the user has no such note."""
        user_id = self._require_user("notes.get")
        with self._session("notes.get") as session:
            row = self._load(session, user_id, note_id)
            return db_note_to_model(row) if row else None

    @traced("notes.create")
    def create_note(self, note: Note) -> Note:
        """Insert a note and return the stored row.

        The note's own id and timestamps are kept, so a note created on the
        client (or carried over from a legacy snapshot) keeps its identity.
        """
        user_id = self._require_user("notes.create")
        with self._session("notes.create") as session:
            db_category = resolve_category(session, user_id, note.category)
            if db_category is None:
                logger.warning(
                    f"Category '{note.category}' not found; note {note.id} "
                    f"stored without category"
                )
            db_note = DBNote(
                id=note.id,
                title=note.title,
                content=note.content,
                tags=list(note.tags),
                category=db_category,
                is_favorite=note.is_favorite,
                is_archived=note.is_archived,
                is_protected=note.is_protected,
                password_hash=note.password_hash,
                user_id=user_id,
                created_at=note.created_at,
                updated_at=note.updated_at,
            )
            for attachment in note.attachments:
                db_note.attachments.append(
                    DBAttachment(
                        id=attachment.id,
                        name=attachment.name,
                        type=attachment.type,
                        size=attachment.size,
                        url=attachment.url,
                        user_id=user_id,
                    )
                )
            session.add(db_note)
            session.commit()
            logger.info(f"Created note {note.id}")
            return db_note_to_model(self._load(session, user_id, note.id))

    @traced("notes.update")
    def update_note(self, note_id: str, update: Union[NoteUpdate, dict]) -> Note:
        """Apply a partial update and return the stored row.

        Only the provided fields are written; ``updated_at`` is always
        bumped.

        Raises:
            NoteNotFoundError: If the user has no note with this id.
        """
        if isinstance(update, dict):
            update = NoteUpdate(**update)
        changes = update.changes()
        user_id = self._require_user("notes.update")
        with self._session("notes.update") as session:
            db_note = self._load(session, user_id, note_id)
            if db_note is None:
                raise NoteNotFoundError(note_id)

            if "category" in changes:
                name = changes.pop("category")
                db_category = resolve_category(session, user_id, name)
                if db_category is None:
                    logger.warning(
                        f"Category '{name}' not found; category of note "
                        f"{note_id} left unchanged"
                    )
                else:
                    db_note.category = db_category

            for field_name, value in changes.items():
                setattr(db_note, field_name, value)
            db_note.updated_at = utc_now()
            session.commit()
            return db_note_to_model(self._load(session, user_id, note_id))

    @traced("notes.delete")
    def delete_note(self, note_id: str) -> None:
        """Delete a note; its attachments go with it.

        Raises:
            NoteNotFoundError: If the user has no note with this id.
        """
        user_id = self._require_user("notes.delete")
        with self._session("notes.delete") as session:
            db_note = self._load(session, user_id, note_id)
            if db_note is None:
                raise NoteNotFoundError(note_id)
            session.delete(db_note)
            session.commit()
            logger.info(f"Deleted note {note_id}")

    @traced("notes.search")
    def search_notes(self, query: str) -> List[Note]:
        """Case-insensitive substring search over title and content."""
        user_id = self._require_user("notes.search")
        pattern = f"%{escape_like_pattern(query)}%"
        with self._session("notes.search") as session:
            rows = (
                session.execute(
                    _note_query(user_id)
                    .where(
                        or_(
                            DBNote.title.ilike(pattern, escape="\\"),
                            DBNote.content.ilike(pattern, escape="\\"),
                        )
                    )
                    .order_by(DBNote.updated_at.desc(), DBNote.id)
                )
                .unique()
                .scalars()
                .all()
            )
            return [db_note_to_model(row) for row in rows]

    @staticmethod
    def _load(session: Session, user_id: str, note_id: str) -> Optional[DBNote]:
        return (
            session.execute(
                _note_query(user_id)
                .where(DBNote.id == note_id)
                .execution_options(populate_existing=True)
            )
            .unique()
            .scalar_one_or_none()
        )
