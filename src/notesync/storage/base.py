"""Shared plumbing for user-scoped repositories."""
import logging
from contextlib import contextmanager
from typing import Iterator

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from notesync.exceptions import (
    ErrorCode,
    RemoteUnavailableError,
    UnauthenticatedError,
    ValidationError,
)
from notesync.identity import IdentityProvider

logger = logging.getLogger(__name__)


class UserScopedRepository:
    """Base class for repositories whose rows all belong to one user.

    Every public operation resolves the current user first and filters on
    ``user_id``. Store failures are translated at this boundary, so callers
    only ever see ``notesync.exceptions`` types:

    - no signed-in user -> UnauthenticatedError
    - IntegrityError or DataError (constraint or value rejection) -> ValidationError
    - any other SQLAlchemyError (transport, pool timeout) -> RemoteUnavailableError
    """

    def __init__(self, session_factory, identity: IdentityProvider):
        """Initialize the repository.

        Args:
            session_factory: SQLAlchemy session factory bound to the store.
            identity: Provider of the current user.
        """
        self.session_factory = session_factory
        self.identity = identity

    def _require_user(self, operation: str) -> str:
        """Return the current user id or fail fast."""
        user = self.identity.current_user()
        if user is None:
            raise UnauthenticatedError(operation)
        return user.id

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        """Open a session and translate store errors for ``operation``."""
        session = self.session_factory()
        try:
            yield session
        except (IntegrityError, DataError) as e:
            session.rollback()
            logger.warning(f"{operation} rejected by store constraint: {e.orig}")
            raise ValidationError(
                f"Store rejected {operation}",
                value=str(e.orig),
                code=ErrorCode.CONSTRAINT_VIOLATION,
            ) from e
        except PydanticValidationError as e:
            session.rollback()
            raise ValidationError(
                f"Invalid data in {operation}: {e.error_count()} error(s)",
                value=str(e),
            ) from e
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Remote store unavailable during {operation}: {e}")
            raise RemoteUnavailableError(
                f"Remote store unavailable during {operation}",
                operation=operation,
                original_error=e,
            ) from e
        finally:
            session.close()
