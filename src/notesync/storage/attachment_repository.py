"""Repository for attachment metadata."""
import logging
from typing import List

from sqlalchemy import select

from notesync.exceptions import ErrorCode, NoteNotFoundError, NotFoundError
from notesync.models.db_models import DBAttachment, DBNote
from notesync.models.schema import Attachment, utc_now
from notesync.observability import traced
from notesync.storage.base import UserScopedRepository
from notesync.storage.note_repository import db_attachment_to_model

logger = logging.getLogger(__name__)


class AttachmentRepository(UserScopedRepository):
    """User-scoped access to attachment metadata; binary content lives elsewhere."""

    @traced("attachments.list")
    def list_for_note(self, note_id: str) -> List[Attachment]:
        user_id = self._require_user("attachments.list")
        with self._session("attachments.list") as session:
            rows = session.execute(
                select(DBAttachment)
                .where(DBAttachment.note_id == note_id, DBAttachment.user_id == user_id)
                .order_by(DBAttachment.created_at, DBAttachment.id)
            ).scalars()
            return [db_attachment_to_model(row) for row in rows]

    @traced("attachments.add")
    def add_attachment(self, note_id: str, attachment: Attachment) -> Attachment:
        """Attach metadata to one of the user's notes; bumps the note's ``updated_at``.

        Raises:
            NoteNotFoundError: If the note is not the user's.
        """
        user_id = self._require_user("attachments.add")
        with self._session("attachments.add") as session:
            db_note = session.execute(
                select(DBNote).where(DBNote.id == note_id, DBNote.user_id == user_id)
            ).scalar_one_or_none()
            if db_note is None:
                raise NoteNotFoundError(note_id)
            row = DBAttachment(
                id=attachment.id,
                note_id=note_id,
                name=attachment.name,
                type=attachment.type,
                size=attachment.size,
                url=attachment.url,
                user_id=user_id,
            )
            session.add(row)
            db_note.updated_at = utc_now()
            session.commit()
            logger.info(f"Added attachment {attachment.id} to note {note_id}")
            return db_attachment_to_model(row)

    @traced("attachments.delete")
    def delete_attachment(self, attachment_id: str) -> None:
        """Remove attachment metadata.

        Raises:
            NotFoundError: If the user has no such attachment.
        """
        user_id = self._require_user("attachments.delete")
        with self._session("attachments.delete") as session:
            row = session.execute(
                select(DBAttachment).where(
                    DBAttachment.id == attachment_id, DBAttachment.user_id == user_id
                )
            ).scalar_one_or_none()
            if row is None:
                raise NotFoundError(
                    "attachment", attachment_id, code=ErrorCode.ATTACHMENT_NOT_FOUND
                )
            db_note = session.get(DBNote, row.note_id)
            if db_note is not None:
                db_note.updated_at = utc_now()
            session.delete(row)
            session.commit()
            logger.info(f"Deleted attachment {attachment_id}")
