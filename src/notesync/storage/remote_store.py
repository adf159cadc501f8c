"""The remote store adapter facade."""
import logging
from typing import Optional

from sqlalchemy.engine import Engine

from notesync.identity import IdentityProvider, LocalIdentityProvider
from notesync.models.db_models import get_session_factory, init_db
from notesync.storage.attachment_repository import AttachmentRepository
from notesync.storage.category_repository import CategoryRepository
from notesync.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)


class RemoteStore:
    """Bundle of the user-scoped repositories sharing one engine.

    Usage::

        store = RemoteStore(init_db(url), identity)
        store.categories.list_categories()
        store.notes.create_note(Note(title="Groceries"))
    """

    def __init__(
        self,
        engine: Optional[Engine] = None,
        identity: Optional[IdentityProvider] = None,
    ):
        self.engine = engine if engine is not None else init_db()
        self.identity = identity if identity is not None else LocalIdentityProvider()
        self.session_factory = get_session_factory(self.engine)
        self.notes = NoteRepository(self.session_factory, self.identity)
        self.categories = CategoryRepository(self.session_factory, self.identity)
        self.attachments = AttachmentRepository(self.session_factory, self.identity)
        logger.debug(f"Remote store bound to {self.engine.url.render_as_string()}")

    def dispose(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()
