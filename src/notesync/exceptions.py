"""Custom exceptions for the notesync core.

Provides a structured exception hierarchy with error codes and
machine-readable error information. The remote store adapter raises only
these types; the synchronization core converts them into user-facing
messages.
"""
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Authentication errors (1xxx)
    UNAUTHENTICATED = 1001

    # Lookup errors (2xxx)
    NOTE_NOT_FOUND = 2001
    CATEGORY_NOT_FOUND = 2002
    ATTACHMENT_NOT_FOUND = 2003

    # Validation errors (3xxx)
    VALIDATION_FAILED = 3001
    CONSTRAINT_VIOLATION = 3002
    CATEGORY_CYCLE = 3003
    CATEGORY_TOO_DEEP = 3004
    EXPORT_FORMAT_UNSUPPORTED = 3005

    # Remote store errors (4xxx)
    REMOTE_UNAVAILABLE = 4001

    # Migration errors (5xxx)
    MIGRATION_SNAPSHOT_INVALID = 5001
    MIGRATION_SNAPSHOT_UNREADABLE = 5002

    # Core state errors (6xxx)
    INVALID_STATE_TRANSITION = 6001


class NotesyncError(Exception):
    """Base exception for all notesync errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class UnauthenticatedError(NotesyncError):
    """Raised when a store operation runs without a signed-in user."""

    def __init__(self, operation: Optional[str] = None):
        details = {"operation": operation} if operation else {}
        super().__init__(
            "User not authenticated", code=ErrorCode.UNAUTHENTICATED, details=details
        )
        self.operation = operation


class NotFoundError(NotesyncError):
    """Raised when an id/user pair matches no row."""

    def __init__(
        self,
        entity: str,
        entity_id: str,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOTE_NOT_FOUND,
    ):
        super().__init__(
            message or f"{entity.capitalize()} with ID '{entity_id}' not found",
            code=code,
            details={f"{entity}_id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class NoteNotFoundError(NotFoundError):
    """Raised when a note cannot be found."""

    def __init__(self, note_id: str, message: Optional[str] = None):
        super().__init__("note", note_id, message, code=ErrorCode.NOTE_NOT_FOUND)
        self.note_id = note_id


class CategoryNotFoundError(NotFoundError):
    """Raised when a category cannot be found."""

    def __init__(self, category_id: str, message: Optional[str] = None):
        super().__init__(
            "category", category_id, message, code=ErrorCode.CATEGORY_NOT_FOUND
        )
        self.category_id = category_id


class ValidationError(NotesyncError):
    """Raised for validation errors, including store-side constraint rejections."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class RemoteUnavailableError(NotesyncError):
    """Raised for transport or network failures talking to the remote store."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.REMOTE_UNAVAILABLE,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.original_error = original_error


class MigrationError(NotesyncError):
    """Raised when the legacy snapshot cannot be used at all.

    Per-item failures never raise; they are collected in the summary.
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.MIGRATION_SNAPSHOT_INVALID,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if path:
            # Only the file name, never the full path
            details["path_hint"] = path.replace("\\", "/").split("/")[-1]
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.path = path
        self.original_error = original_error


class SyncStateError(NotesyncError):
    """Raised on an illegal collection state transition."""

    def __init__(self, collection: str, current: str, target: str):
        super().__init__(
            f"Cannot move {collection} from {current} to {target}",
            code=ErrorCode.INVALID_STATE_TRANSITION,
            details={"collection": collection, "current": current, "target": target},
        )
        self.collection = collection
        self.current = current
        self.target = target


def summarize_failures(failures: List[Dict[str, str]], limit: int = 5) -> str:
    """Render a short, log-friendly description of per-item failures."""
    shown = ", ".join(f"{f['kind']}:{f['key']}" for f in failures[:limit])
    if len(failures) > limit:
        shown += f" (+{len(failures) - limit} more)"
    return shown
