#!/usr/bin/env python
"""Command line entry point for the notesync core."""
import argparse
import atexit
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from notesync import __version__
from notesync.config import config
from notesync.exceptions import NotesyncError
from notesync.identity import LocalIdentityProvider
from notesync.models.db_models import init_db
from notesync.models.schema import NoteFilters, SortField, SortOrder
from notesync.observability import configure_logging, metrics
from notesync.services.migration_service import MigrationService
from notesync.services.sync_service import NotesSyncService
from notesync.storage.remote_store import RemoteStore

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="notesync", description="Synchronize notes with the remote store"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy URL of the remote store",
        type=str,
        default=os.environ.get("NOTESYNC_DATABASE_URL"),
    )
    parser.add_argument(
        "--user-id",
        help="Id of the user to act as",
        type=str,
        default=os.environ.get("NOTESYNC_USER_ID"),
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("NOTESYNC_LOG_LEVEL", "WARNING"),
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    migrate = subparsers.add_parser("migrate", help="Import the legacy snapshot")
    migrate.add_argument("--snapshot", type=str, help="Path of the legacy snapshot")
    migrate.add_argument(
        "--force", action="store_true", help="Migrate even if already marked done"
    )

    list_cmd = subparsers.add_parser("list", help="List notes")
    list_cmd.add_argument(
        "--sort", choices=[f.value for f in SortField], default=config.default_sort_by
    )
    list_cmd.add_argument(
        "--order", choices=[o.value for o in SortOrder], default=config.default_sort_order
    )
    list_cmd.add_argument("--category", type=str, help="Only notes of this category")
    list_cmd.add_argument("--tag", action="append", dest="tags", help="Required tag")
    list_cmd.add_argument("--favorites", action="store_true", help="Only favorites")
    list_cmd.add_argument(
        "--archived", action="store_true", help="Archived notes instead of active ones"
    )

    search = subparsers.add_parser("search", help="Search notes")
    search.add_argument("query", type=str)

    export = subparsers.add_parser("export", help="Export a note")
    export.add_argument("note_id", type=str)
    export.add_argument("--format", choices=["txt", "md"], default="md", dest="fmt")
    export.add_argument("--output", type=str, help="Directory to write the file to")

    import_cmd = subparsers.add_parser("import", help="Import text files as notes")
    import_cmd.add_argument("files", nargs="+", type=str)

    args = parser.parse_args(argv)
    if not args.user_id:
        parser.error("--user-id (or NOTESYNC_USER_ID) is required")
    return args


def update_config(args: argparse.Namespace) -> None:
    """Update the global config with command line arguments."""
    if args.database_url:
        config.database_url = args.database_url


def _save_metrics_on_exit():
    """Save metrics to disk on exit."""
    try:
        if metrics.save_metrics():
            logger.info("Metrics saved to disk on exit")
    except OSError as e:
        logger.warning(f"Failed to save metrics on exit: {e}")


def _print_notes(notes) -> None:
    for note in notes:
        flags = ("*" if note.is_favorite else "") + ("A" if note.is_archived else "")
        print(f"{note.id}\t{note.title}\t{note.category}\t{flags}")


def _open_session(store: RemoteStore) -> NotesSyncService:
    service = NotesSyncService(store)
    if not service.load():
        raise SystemExit(f"error: {service.error}")
    return service


def run_command(args: argparse.Namespace, store: RemoteStore) -> int:
    """Run the selected subcommand; returns the process exit code."""
    if args.command == "migrate":
        migration = MigrationService(store, args.snapshot)
        summary = migration.migrate() if args.force else migration.run_once()
        if summary is None:
            print("Nothing to migrate")
            return 0
        print(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))
        return 0 if summary.success else 1

    service = _open_session(store)

    if args.command == "list":
        service.set_sorting(args.sort, args.order)
        filters = NoteFilters(
            category=args.category,
            tags=args.tags,
            is_favorite=True if args.favorites else None,
            is_archived=args.archived,
        )
        _print_notes(service.get_filtered_notes(filters))
        return 0

    if args.command == "search":
        _print_notes(service.search_notes(args.query))
        return 0

    if args.command == "export":
        payload = service.export_note(args.note_id, args.fmt)
        if payload is None:
            print(f"error: note {args.note_id} not found", file=sys.stderr)
            return 1
        if args.output:
            print(payload.write_to(Path(args.output)))
        else:
            print(payload.content)
        return 0

    if args.command == "import":
        imported = service.import_notes(args.files)
        status = 0
        if len(imported) < len(args.files):
            print(f"error: {service.error}", file=sys.stderr)
            status = 1
        for note in imported:
            saved = service.persist_note(note.id)
            if saved is None:
                print(f"error: {note.title}: {service.error}", file=sys.stderr)
                status = 1
            else:
                print(f"{saved.id}\t{saved.title}")
        return status

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    """Run the notesync command line."""
    args = parse_args(argv)
    update_config(args)

    log_level = getattr(logging, args.log_level.upper(), logging.WARNING)
    try:
        log_dir = configure_logging(log_dir=config.log_dir, level=log_level, console=True)
        logger.info(f"Persistent logging enabled: {log_dir}")
    except OSError as e:
        # Fall back to console logging if the log directory is not writable
        logging.basicConfig(level=log_level)
        logger.warning(f"Failed to configure file logging: {e}")

    atexit.register(_save_metrics_on_exit)

    try:
        engine = init_db(config.get_db_url())
    except Exception as e:
        logger.error(f"Failed to initialize the store: {e}")
        print(f"error: cannot open store: {e}", file=sys.stderr)
        return 1

    identity = LocalIdentityProvider()
    identity.sign_in(args.user_id)
    store = RemoteStore(engine, identity)
    try:
        return run_command(args, store)
    except NotesyncError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"error: {e.message}", file=sys.stderr)
        return 1
    finally:
        store.dispose()


if __name__ == "__main__":
    sys.exit(main())
