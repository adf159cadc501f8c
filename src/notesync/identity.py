"""Identity provider contract consumed by the store and the sync core.

The hosted identity service is an external collaborator. The store only
needs "who is the current user" and the sync core only needs to hear about
sign-in and sign-out; ``LocalIdentityProvider`` implements both in process
for tests, the CLI, and embedding applications that manage sessions
themselves.
"""
import logging
from dataclasses import dataclass
from threading import Lock
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

AuthCallback = Callable[[Optional["User"]], None]


@dataclass(frozen=True)
class User:
    """The authenticated user; only the id matters to the core."""

    id: str
    email: Optional[str] = None


class IdentityProvider:
    """Base class for identity providers."""

    def current_user(self) -> Optional[User]:
        """Return the signed-in user, or None when not authenticated."""
        raise NotImplementedError

    def on_auth_change(self, callback: AuthCallback) -> Callable[[], None]:
        """Register a callback for sign-in/sign-out; returns an unsubscriber."""
        raise NotImplementedError


class LocalIdentityProvider(IdentityProvider):
    """In-process identity provider with explicit sign in and sign out."""

    def __init__(self, user: Optional[User] = None):
        self._user = user
        self._callbacks: List[AuthCallback] = []
        self._lock = Lock()

    def current_user(self) -> Optional[User]:
        return self._user

    def on_auth_change(self, callback: AuthCallback) -> Callable[[], None]:
        with self._lock:
            self._callbacks.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return unsubscribe

    def sign_in(self, user_id: str, email: Optional[str] = None) -> User:
        """Sign a user in and notify subscribers."""
        if not user_id:
            raise ValueError("user_id cannot be empty")
        self._user = User(id=user_id, email=email)
        logger.info(f"User signed in: {user_id}")
        self._notify()
        return self._user

    def sign_out(self) -> None:
        """Sign the current user out and notify subscribers."""
        if self._user is None:
            return
        logger.info(f"User signed out: {self._user.id}")
        self._user = None
        self._notify()

    def _notify(self) -> None:
        with self._lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            callback(self._user)
