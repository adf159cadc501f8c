"""Reader for the locally persisted state of the legacy client.

The legacy client kept its notes and categories in local storage. The
snapshot is a JSON document with two independently optional lists::

    {"notes": [{"id": "...", "title": "...", "isFavorite": true, ...}],
     "categories": [{"id": "...", "name": "Work", "color": "#10B981"}]}

Completion of a migration is recorded by a ``<snapshot>.migrated`` marker
file next to the snapshot.
"""
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from notesync.exceptions import ErrorCode, MigrationError
from notesync.models.schema import Category, Note, hash_password, utc_now

logger = logging.getLogger(__name__)

MARKER_SUFFIX = ".migrated"

# camelCase keys written by the legacy client
_NOTE_KEYS = {
    "isFavorite": "is_favorite",
    "isArchived": "is_archived",
    "isProtected": "is_protected",
    "passwordHash": "password_hash",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}
_CATEGORY_KEYS = {"parentId": "parent_id"}
_ATTACHMENT_KEYS = ("id", "name", "type", "size", "url")


@dataclass
class LegacySnapshot:
    """Raw legacy records, parsed one by one during migration."""

    notes: List[Dict[str, Any]] = field(default_factory=list)
    categories: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.notes and not self.categories


def _rename_keys(record: Dict[str, Any], mapping: Dict[str, str]) -> Dict[str, Any]:
    renamed = {}
    for key, value in record.items():
        renamed[mapping.get(key, key)] = value
    return renamed


def parse_legacy_category(record: Dict[str, Any]) -> Category:
    """Build a Category from a legacy record.

    Raises:
        pydantic.ValidationError: If the record is not a usable category.
    """
    data = _rename_keys(record, _CATEGORY_KEYS)
    allowed = {k: v for k, v in data.items() if k in Category.model_fields}
    return Category(**allowed)


def parse_legacy_note(record: Dict[str, Any]) -> Note:
    """Build a Note from a legacy record.

    A plaintext ``password`` from the legacy client is hashed on the way in;
    unknown keys are ignored.

    Raises:
        pydantic.ValidationError: If the record is not a usable note.
    """
    data = _rename_keys(record, _NOTE_KEYS)
    password = data.pop("password", None)
    allowed = {k: v for k, v in data.items() if k in Note.model_fields}
    if password and not allowed.get("password_hash"):
        allowed["password_hash"] = hash_password(str(password))
        allowed["is_protected"] = True
    if "attachments" in allowed:
        allowed["attachments"] = [
            {k: v for k, v in a.items() if k in _ATTACHMENT_KEYS}
            for a in allowed["attachments"] or []
            if isinstance(a, dict)
        ]
    return Note(**allowed)


class LegacySnapshotStore:
    """File-backed access to the legacy snapshot and its completion marker."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.marker_path = self.path.with_name(self.path.name + MARKER_SUFFIX)

    def exists(self) -> bool:
        return self.path.is_file()

    def is_migrated(self) -> bool:
        return self.marker_path.is_file()

    def load(self) -> Optional[LegacySnapshot]:
        """Read the snapshot, or return None when there is none.

        Raises:
            MigrationError: If the file cannot be read or has the wrong shape.
        """
        if not self.exists():
            return None
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise MigrationError(
                "Legacy snapshot could not be read",
                path=str(self.path),
                code=ErrorCode.MIGRATION_SNAPSHOT_UNREADABLE,
                original_error=e,
            ) from e
        if not raw.strip():
            return LegacySnapshot()
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MigrationError(
                "Legacy snapshot is not valid JSON",
                path=str(self.path),
                original_error=e,
            ) from e
        if not isinstance(document, dict):
            raise MigrationError(
                "Legacy snapshot must be a JSON object", path=str(self.path)
            )

        snapshot = LegacySnapshot()
        for key in ("notes", "categories"):
            records = document.get(key)
            if records is None:
                continue
            if not isinstance(records, list):
                raise MigrationError(
                    f"Legacy snapshot '{key}' must be a list", path=str(self.path)
                )
            setattr(snapshot, key, records)
        logger.info(
            f"Loaded legacy snapshot: {len(snapshot.notes)} notes, "
            f"{len(snapshot.categories)} categories"
        )
        return snapshot

    def clear(self) -> None:
        """Remove the snapshot file."""
        self.path.unlink(missing_ok=True)
        logger.info(f"Cleared legacy snapshot {self.path.name}")

    def mark_migrated(self, summary: Optional[Dict[str, Any]] = None) -> None:
        """Write the completion marker."""
        self.marker_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"migrated_at": utc_now().isoformat()}
        if summary:
            payload.update(summary)
        self.marker_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
