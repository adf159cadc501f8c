"""Configuration module for the notesync core."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from notesync import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config, lives alongside the legacy snapshot and logs
_USER_ENV = Path.home() / ".notesync" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

_TRUTHY = ("true", "1", "yes")

_SORT_FIELDS = ("title", "category", "created_at", "updated_at")
_SORT_ORDERS = ("asc", "desc")


class NotesyncConfig(BaseModel):
    """Configuration for the notesync core."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTESYNC_BASE_DIR", "."))
    )
    # Remote store: any SQLAlchemy URL (postgresql+psycopg://... in production)
    database_url: str = Field(
        default_factory=lambda: os.getenv(
            "NOTESYNC_DATABASE_URL", "sqlite:///data/db/notesync.db"
        )
    )
    # Seconds to wait for a pooled connection before the store is reported
    # unavailable
    pool_timeout: int = Field(
        default_factory=lambda: int(os.getenv("NOTESYNC_POOL_TIMEOUT", "30"))
    )
    # Legacy snapshot written by the pre-remote client (see MigrationService)
    legacy_snapshot_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("NOTESYNC_LEGACY_SNAPSHOT", "data/legacy/notes_snapshot.json")
        )
    )
    # Run the legacy migration automatically when a user signs in
    auto_migrate: bool = Field(
        default_factory=lambda: os.getenv("NOTESYNC_AUTO_MIGRATE", "true").lower()
        in _TRUTHY
    )
    # Imported files are local-only unless this is set
    auto_persist_imports: bool = Field(
        default_factory=lambda: os.getenv(
            "NOTESYNC_AUTO_PERSIST_IMPORTS", "false"
        ).lower()
        in _TRUTHY
    )
    default_category: str = Field(
        default=os.getenv("NOTESYNC_DEFAULT_CATEGORY", "Personal")
    )
    default_note_title: str = Field(
        default=os.getenv("NOTESYNC_DEFAULT_NOTE_TITLE", "Nouvelle note")
    )
    # Longest parent chain accepted for category hierarchies
    max_category_depth: int = Field(
        default_factory=lambda: int(os.getenv("NOTESYNC_MAX_CATEGORY_DEPTH", "8"))
    )
    export_date_format: str = Field(default="%d/%m/%Y %H:%M")
    default_sort_by: str = Field(
        default_factory=lambda: os.getenv("NOTESYNC_SORT_BY", "updated_at")
    )
    default_sort_order: str = Field(
        default_factory=lambda: os.getenv("NOTESYNC_SORT_ORDER", "desc")
    )
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTESYNC_LOG_DIR"))
            if os.getenv("NOTESYNC_LOG_DIR")
            else None
        )
    )
    client_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_bounds(self) -> "NotesyncConfig":
        """Reject settings the core cannot operate with."""
        if self.max_category_depth < 1:
            raise ValueError("max_category_depth must be >= 1")
        if self.pool_timeout < 1:
            raise ValueError("pool_timeout must be >= 1")
        if self.default_sort_by not in _SORT_FIELDS:
            raise ValueError(
                f"default_sort_by must be one of {', '.join(_SORT_FIELDS)}"
            )
        if self.default_sort_order not in _SORT_ORDERS:
            raise ValueError("default_sort_order must be 'asc' or 'desc'")
        if not self.default_category.strip():
            raise ValueError("default_category cannot be empty")
        if self.auto_persist_imports:
            logger.info("Imported notes will be persisted to the remote store")
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the store URL, anchoring relative SQLite files under base_dir."""
        prefix = "sqlite:///"
        if self.database_url.startswith(prefix) and self.database_url != prefix:
            db_path = Path(self.database_url[len(prefix):])
            if str(db_path) != ":memory:":
                db_path = self.get_absolute_path(db_path)
                db_path.parent.mkdir(parents=True, exist_ok=True)
                return f"{prefix}{db_path}"
        return self.database_url

    def get_legacy_snapshot_path(self) -> Path:
        """Get the absolute path of the legacy snapshot file."""
        return self.get_absolute_path(self.legacy_snapshot_path)


# Create a global config instance
config = NotesyncConfig()
