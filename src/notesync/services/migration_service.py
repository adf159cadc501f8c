"""One-shot migration of the legacy local snapshot into the remote store."""
import logging
from pathlib import Path
from typing import Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from notesync.config import config
from notesync.exceptions import MigrationError, NotesyncError, summarize_failures
from notesync.models.schema import Category, MigrationSummary
from notesync.observability import timed_operation
from notesync.storage.legacy_snapshot import (
    LegacySnapshot,
    LegacySnapshotStore,
    parse_legacy_category,
    parse_legacy_note,
)
from notesync.storage.remote_store import RemoteStore

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = "No data to migrate"


def _record_key(record, *fields: str) -> str:
    """Label a legacy record for failure reports."""
    if isinstance(record, dict):
        for name in fields:
            if record.get(name):
                return str(record[name])
    return "?"


class MigrationService:
    """Copies legacy notes and categories into the remote store.

    Safe to run repeatedly: categories are matched by name and notes by id,
    and only missing records are created. Individual records that fail are
    logged and skipped; only a structural failure (unreadable snapshot,
    no signed-in user, store unreachable on the initial read) makes the
    migration unsuccessful and leaves the snapshot in place.
    """

    def __init__(
        self,
        store: RemoteStore,
        snapshot: Optional[Union[LegacySnapshotStore, str, Path]] = None,
    ):
        self.store = store
        if snapshot is None:
            snapshot = LegacySnapshotStore(config.get_legacy_snapshot_path())
        elif not isinstance(snapshot, LegacySnapshotStore):
            snapshot = LegacySnapshotStore(snapshot)
        self.snapshot = snapshot

    def needs_migration(self) -> bool:
        """True when a snapshot exists and no completion marker was written."""
        return self.snapshot.exists() and not self.snapshot.is_migrated()

    def run_once(self) -> Optional[MigrationSummary]:
        """Migrate if needed; returns None when there was nothing to do."""
        if not self.needs_migration():
            logger.debug("Legacy migration not needed")
            return None
        return self.migrate()

    def migrate(self) -> MigrationSummary:
        """Migrate the snapshot now, regardless of the completion marker."""
        with timed_operation("migration.migrate") as op:
            try:
                legacy = self.snapshot.load()
            except MigrationError as e:
                logger.error(f"Legacy snapshot unusable: {e}")
                return MigrationSummary(success=False, message=f"Migration failed: {e.message}")

            if legacy is None or legacy.is_empty:
                logger.info(NO_DATA_MESSAGE)
                summary = MigrationSummary(success=True, message=NO_DATA_MESSAGE)
                if legacy is not None:
                    self.snapshot.clear()
                    self.snapshot.mark_migrated(summary.to_dict())
                return summary

            try:
                # Batch-level read: checks the user and the store before any write
                self.store.categories.list_categories()
            except NotesyncError as e:
                logger.error(f"Migration aborted: {e}")
                return MigrationSummary(success=False, message=f"Migration failed: {e.message}")

            summary = MigrationSummary(success=True)
            id_map = self._migrate_categories(legacy, summary)
            self._link_parents(legacy, id_map, summary)
            self._migrate_notes(legacy, summary)

            summary.message = (
                f"Migration succeeded: {summary.categories_migrated} categories "
                f"and {summary.notes_migrated} notes migrated"
            )
            if summary.failures:
                summary.message += f" ({len(summary.failures)} skipped)"
                logger.warning(
                    f"Skipped legacy records: {summarize_failures(summary.failures)}"
                )

            self.snapshot.clear()
            self.snapshot.mark_migrated(summary.to_dict())
            op["result_count"] = summary.categories_migrated + summary.notes_migrated
            logger.info(summary.message)
            return summary

    def _migrate_categories(
        self, legacy: LegacySnapshot, summary: MigrationSummary
    ) -> Dict[str, str]:
        """Create missing categories; returns legacy id -> remote id."""
        id_map: Dict[str, str] = {}
        for record in legacy.categories:
            key = _record_key(record, "name", "id")
            try:
                if not isinstance(record, dict):
                    raise ValueError("record is not an object")
                legacy_category = parse_legacy_category(record)
                existing = self.store.categories.find_by_name(legacy_category.name)
                if existing is None:
                    existing = self.store.categories.create_category(
                        Category(name=legacy_category.name, color=legacy_category.color)
                    )
                    summary.categories_migrated += 1
                id_map[legacy_category.id] = existing.id
            except (NotesyncError, PydanticValidationError, ValueError) as e:
                logger.warning(f"Failed to migrate category {key}: {e}")
                summary.failures.append({"kind": "category", "key": key, "error": str(e)})
        return id_map

    def _link_parents(
        self, legacy: LegacySnapshot, id_map: Dict[str, str], summary: MigrationSummary
    ) -> None:
        """Re-create legacy parent links using the remote ids."""
        for record in legacy.categories:
            if not isinstance(record, dict):
                continue
            legacy_parent = record.get("parentId") or record.get("parent_id")
            child_id = id_map.get(record.get("id"))
            if not legacy_parent or child_id is None:
                continue
            parent_id = id_map.get(legacy_parent)
            if parent_id is None:
                logger.warning(
                    f"Parent {legacy_parent} of legacy category {record.get('name')} "
                    f"was not migrated; left at top level"
                )
                continue
            try:
                current = self.store.categories.get_category(child_id)
                if current is not None and current.parent_id is None:
                    self.store.categories.update_category(child_id, {"parent_id": parent_id})
            except NotesyncError as e:
                key = str(record.get("name") or child_id)
                logger.warning(f"Failed to link parent of category {key}: {e}")
                summary.failures.append({"kind": "category_parent", "key": key, "error": str(e)})

    def _migrate_notes(self, legacy: LegacySnapshot, summary: MigrationSummary) -> None:
        for record in legacy.notes:
            key = _record_key(record, "id", "title")
            try:
                if not isinstance(record, dict):
                    raise ValueError("record is not an object")
                note = parse_legacy_note(record)
                if self.store.notes.get_note(note.id) is not None:
                    continue
                self.store.notes.create_note(note)
                summary.notes_migrated += 1
            except (NotesyncError, PydanticValidationError, ValueError) as e:
                logger.warning(f"Failed to migrate note {key}: {e}")
                summary.failures.append({"kind": "note", "key": key, "error": str(e)})
