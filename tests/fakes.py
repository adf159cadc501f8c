"""Failure-injecting stand-ins for store collaborators.

Design principles:
- Never mock the database itself; the real in-memory SQLite store is used
  and only selected repository methods are made to fail.
- Failures are the typed errors the adapter really raises.
- Inspectable: each wrapper records which methods it was asked to run.
"""
import datetime
from datetime import timezone
from typing import Callable, Dict, Iterable, List, Optional
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from notesync.exceptions import NotesyncError, RemoteUnavailableError
from notesync.models.schema import Note

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


def unavailable(operation: str = "test") -> RemoteUnavailableError:
    return RemoteUnavailableError(
        "Remote store unavailable during test", operation=operation
    )


class FailingRepository:
    """Delegates to a real repository, except for the methods in ``fail_on``.

    Args:
        wrapped: The real repository.
        fail_on: Method names that raise instead of running.
        error_factory: Builds the error to raise (default: store unavailable).
        fail_times: Fail only the first N calls of each method, then delegate.
    """

    def __init__(
        self,
        wrapped,
        fail_on: Iterable[str] = (),
        error_factory: Optional[Callable[[str], NotesyncError]] = None,
        fail_times: Optional[int] = None,
    ) -> None:
        self._wrapped = wrapped
        self._fail_on = set(fail_on)
        self._error_factory = error_factory or unavailable
        self._fail_times = fail_times
        self.failures: Dict[str, int] = {}
        self.calls: List[str] = []

    def __getattr__(self, name: str):
        attr = getattr(self._wrapped, name)
        if name not in self._fail_on or not callable(attr):
            return attr

        def maybe_fail(*args, **kwargs):
            self.calls.append(name)
            failed = self.failures.get(name, 0)
            if self._fail_times is None or failed < self._fail_times:
                self.failures[name] = failed + 1
                raise self._error_factory(name)
            return attr(*args, **kwargs)

        return maybe_fail


def break_store(store, notes: Iterable[str] = (), categories: Iterable[str] = (),
                attachments: Iterable[str] = (), **kwargs):
    """Swap the store's repositories for failing wrappers; returns them."""
    wrappers = {}
    for name, methods in (("notes", notes), ("categories", categories),
                          ("attachments", attachments)):
        methods = tuple(methods)
        if methods:
            wrapper = FailingRepository(getattr(store, name), methods, **kwargs)
            setattr(store, name, wrapper)
            wrappers[name] = wrapper
    return wrappers


def broken_session_factory(message: str = "connection refused") -> MagicMock:
    """Session factory whose sessions fail every statement like a dead server."""
    session = MagicMock()
    session.execute.side_effect = OperationalError("SELECT 1", {}, Exception(message))
    session.commit.side_effect = OperationalError("COMMIT", {}, Exception(message))
    return MagicMock(return_value=session)


def at(minutes: int) -> datetime.datetime:
    """A fixed UTC timestamp ``minutes`` after 2024-03-05 14:00."""
    return datetime.datetime(2024, 3, 5, 14, 0, tzinfo=timezone.utc) + datetime.timedelta(
        minutes=minutes
    )


def make_note(minutes: int = 0, **fields) -> Note:
    """Build a note with deterministic timestamps."""
    fields.setdefault("created_at", at(minutes))
    fields.setdefault("updated_at", at(minutes))
    return Note(**fields)
