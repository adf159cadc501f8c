"""Data models for the notesync core."""

import datetime
import hashlib
import hmac
import os
import uuid
from dataclasses import dataclass, field
from datetime import timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from notesync.config import config
from notesync.utils import dedupe_preserving_order, safe_filename

# Bootstrap categories for a user with none; the first one is replaced by
# the configured default category name.
_BOOTSTRAP_CATEGORIES = (
    ("Personal", "#3B82F6"),
    ("Work", "#10B981"),
    ("Projects", "#F59E0B"),
    ("Ideas", "#8B5CF6"),
)

DEFAULT_CATEGORY_COLOR = "#3B82F6"

_PASSWORD_SCHEME = "pbkdf2_sha256"
_PASSWORD_ITERATIONS = 120_000


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite hands back naive datetimes; the store always writes UTC.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


def generate_id() -> str:
    """Generate a client-side identifier (UUID4 string).

    Notes get their id before the first remote round-trip so the
    presentation layer can select them immediately.
    """
    return str(uuid.uuid4())


def hash_password(
    password: str, salt: Optional[bytes] = None, iterations: int = _PASSWORD_ITERATIONS
) -> str:
    """Hash a note password as ``pbkdf2_sha256$iterations$salt$digest``."""
    salt = salt if salt is not None else os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return f"{_PASSWORD_SCHEME}${iterations}${salt.hex()}${digest.hex()}"


def verify_password(password: str, stored: Optional[str]) -> bool:
    """Check a password against a stored hash.

    Values written by the legacy client carry no scheme prefix and are
    compared verbatim.
    """
    if not stored:
        return False
    parts = stored.split("$")
    if len(parts) != 4 or parts[0] != _PASSWORD_SCHEME:
        return hmac.compare_digest(password.encode("utf-8"), stored.encode("utf-8"))
    _, iterations, salt_hex, digest_hex = parts
    try:
        salt = bytes.fromhex(salt_hex)
        rounds = int(iterations)
    except ValueError:
        return False
    candidate = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
    return hmac.compare_digest(candidate.hex(), digest_hex)


def _normalize_tags(tags: List[str]) -> List[str]:
    return dedupe_preserving_order(t.strip() for t in tags if t and t.strip())


class SortField(str, Enum):
    """Fields the note list can be sorted by."""

    TITLE = "title"
    CATEGORY = "category"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"


class SortOrder(str, Enum):
    """Sort direction."""

    ASC = "asc"
    DESC = "desc"


class ExportFormat(str, Enum):
    """Formats accepted by note export."""

    TXT = "txt"
    MD = "md"
    PDF = "pdf"  # accepted by the interface, no transformation defined


class CollectionState(str, Enum):
    """Lifecycle of a canonical collection in the sync core."""

    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class Attachment(BaseModel):
    """Metadata of a file attached to a note (no binary content)."""

    id: str = Field(default_factory=generate_id, description="Attachment ID")
    name: str = Field(..., description="Original file name")
    type: str = Field(..., description="Content type, e.g. image/png")
    size: int = Field(..., ge=0, description="Size in bytes")
    url: str = Field(..., description="Retrieval URL")

    model_config = {"frozen": True, "extra": "forbid"}


class Note(BaseModel):
    """A note as seen by the client.

    ``category`` is a category *name*; the store keeps a foreign key and the
    repository resolves between the two on every read and write.
    """

    id: str = Field(default_factory=generate_id, description="Unique ID of the note")
    title: str = Field(
        default_factory=lambda: config.default_note_title, description="Title"
    )
    content: str = Field(default="", description="Free text content")
    tags: List[str] = Field(default_factory=list, description="Ordered tag names")
    category: str = Field(
        default_factory=lambda: config.default_category, description="Category name"
    )
    is_favorite: bool = False
    is_archived: bool = False
    is_protected: bool = False
    password_hash: Optional[str] = None
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was created (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was last updated (UTC)"
    )
    attachments: List[Attachment] = Field(default_factory=list)

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("title", mode="before")
    @classmethod
    def normalize_title(cls, v: Any) -> Any:
        """Coerce a missing or blank title to the placeholder title."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return config.default_note_title
        return v

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, v: Any) -> Any:
        """A note always carries exactly one category name."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return config.default_category
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def none_tags_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: List[str]) -> List[str]:
        """Strip tags and suppress duplicates, keeping user order."""
        return _normalize_tags(v)

    @field_validator("created_at", "updated_at")
    @classmethod
    def make_aware(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)

    @model_validator(mode="after")
    def check_timestamps(self) -> "Note":
        """Validate that updated_at never precedes created_at."""
        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot be earlier than created_at")
        return self

    def set_password(self, password: str) -> None:
        """Protect the note with a password."""
        if not password:
            raise ValueError("Password cannot be empty")
        self.password_hash = hash_password(password)
        self.is_protected = True

    def clear_password(self) -> None:
        self.password_hash = None
        self.is_protected = False

    def check_password(self, password: str) -> bool:
        """Return True if the password unlocks this note."""
        return verify_password(password, self.password_hash)


class NoteUpdate(BaseModel):
    """Partial note update: only explicitly provided fields are written."""

    title: Optional[str] = None
    content: Optional[str] = None
    tags: Optional[List[str]] = None
    category: Optional[str] = None
    is_favorite: Optional[bool] = None
    is_archived: Optional[bool] = None
    is_protected: Optional[bool] = None
    password_hash: Optional[str] = None

    model_config = {"extra": "forbid"}

    @field_validator("title")
    @classmethod
    def normalize_title(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return config.default_note_title
        return v

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return None if v is None else _normalize_tags(v)

    def changes(self) -> Dict[str, Any]:
        """Return the provided fields.

        An explicit ``None`` only counts for ``password_hash`` (it clears
        the password); for every other field it means "not provided".
        """
        provided = self.model_dump(exclude_unset=True)
        return {
            k: v for k, v in provided.items() if v is not None or k == "password_hash"
        }


class Category(BaseModel):
    """A user category; notes reference it by name on the client side."""

    id: str = Field(default_factory=generate_id, description="Unique category ID")
    name: str = Field(..., description="Category name, expected unique per user")
    color: str = Field(default=DEFAULT_CATEGORY_COLOR, description="Color token")
    parent_id: Optional[str] = Field(default=None, description="Parent category ID")

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate that the name is not empty."""
        if not v.strip():
            raise ValueError("Category name cannot be empty")
        return v.strip()

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Category color cannot be empty")
        return v.strip()

    @field_validator("parent_id")
    @classmethod
    def blank_parent_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class CategoryUpdate(BaseModel):
    """Partial category update. ``parent_id=None`` given explicitly detaches."""

    name: Optional[str] = None
    color: Optional[str] = None
    parent_id: Optional[str] = None

    model_config = {"extra": "forbid"}

    @field_validator("name", "color")
    @classmethod
    def not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("Value cannot be empty")
        return v.strip() if v is not None else None

    def changes(self) -> Dict[str, Any]:
        provided = self.model_dump(exclude_unset=True)
        if provided.get("parent_id") == "":
            provided["parent_id"] = None
        return {k: v for k, v in provided.items() if v is not None or k == "parent_id"}


def bootstrap_categories() -> List[Category]:
    """The four categories a user with none starts with (local copies)."""
    names = [config.default_category] + [n for n, _ in _BOOTSTRAP_CATEGORIES[1:]]
    colors = [c for _, c in _BOOTSTRAP_CATEGORIES]
    return [
        Category(id=f"default-{i + 1}", name=name, color=color)
        for i, (name, color) in enumerate(zip(names, colors))
    ]


class NoteFilters(BaseModel):
    """Filters for note projections; ``None`` means "do not filter"."""

    category: Optional[str] = None
    tags: Optional[List[str]] = None
    is_favorite: Optional[bool] = None
    is_archived: Optional[bool] = None

    model_config = {"frozen": True, "extra": "forbid"}

    def matches(self, note: Note) -> bool:
        if self.category and note.category != self.category:
            return False
        if self.tags and not all(tag in note.tags for tag in self.tags):
            return False
        if self.is_favorite is not None and note.is_favorite != self.is_favorite:
            return False
        if self.is_archived is not None and note.is_archived != self.is_archived:
            return False
        return True


@dataclass(frozen=True)
class ExportPayload:
    """A downloadable rendering of a note.

    Attributes:
        filename: Suggested file name, e.g. ``"Groceries.md"``.
        mime_type: ``text/plain`` or ``text/markdown``.
        content: The rendered text.
    """

    filename: str
    mime_type: str
    content: str

    def write_to(self, directory: Path) -> Path:
        """Write the payload into ``directory`` and return the file path."""
        directory.mkdir(parents=True, exist_ok=True)
        stem, _, ext = self.filename.rpartition(".")
        target = directory / f"{safe_filename(stem)}.{ext}"
        target.write_text(self.content, encoding="utf-8")
        return target


@dataclass
class MigrationSummary:
    """Outcome of a legacy snapshot migration.

    Attributes:
        success: False only for batch-level (structural) failures.
        categories_migrated: Categories created in the remote store.
        notes_migrated: Notes created in the remote store.
        message: Human-readable outcome.
        failures: Per-item failures that were logged and skipped.
    """

    success: bool
    categories_migrated: int = 0
    notes_migrated: int = 0
    message: str = ""
    failures: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "categories_migrated": self.categories_migrated,
            "notes_migrated": self.notes_migrated,
            "message": self.message,
            "failures": list(self.failures),
        }
