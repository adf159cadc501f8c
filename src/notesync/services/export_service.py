"""Export rendering and import file reading; no store interaction."""
import logging
from pathlib import Path
from typing import Union

from notesync.config import config
from notesync.exceptions import ErrorCode, ValidationError
from notesync.models.schema import ExportFormat, ExportPayload, Note
from notesync.utils import title_from_filename

logger = logging.getLogger(__name__)


def render_export(note: Note, fmt: Union[ExportFormat, str]) -> ExportPayload:
    """Render a note as a downloadable payload.

    Args:
        note: The note to export.
        fmt: ``txt`` or ``md``. ``pdf`` is a known format with no renderer.

    Raises:
        ValidationError: For ``pdf`` or an unknown format.
    """
    try:
        fmt = ExportFormat(fmt)
    except ValueError as e:
        raise ValidationError(
            f"Unsupported export format: {fmt}",
            field="format",
            value=fmt,
            code=ErrorCode.EXPORT_FORMAT_UNSUPPORTED,
        ) from e

    if fmt is ExportFormat.TXT:
        return ExportPayload(
            filename=f"{note.title}.txt",
            mime_type="text/plain",
            content=f"{note.title}\n\n{note.content}",
        )
    if fmt is ExportFormat.MD:
        created = note.created_at.strftime(config.export_date_format)
        content = (
            f"# {note.title}\n\n{note.content}\n\n---\n\n"
            f"Tags: {', '.join(note.tags)}\n"
            f"Catégorie: {note.category}\n"
            f"Créé le: {created}"
        )
        return ExportPayload(
            filename=f"{note.title}.md", mime_type="text/markdown", content=content
        )

    raise ValidationError(
        f"Export format '{fmt.value}' is not supported",
        field="format",
        value=fmt.value,
        code=ErrorCode.EXPORT_FORMAT_UNSUPPORTED,
    )


def read_import_file(path: Union[str, Path]) -> Note:
    """Read a text file into a new, unsaved note.

    The title is the file name without its last extension; the note gets
    the default category and a fresh id.

    Raises:
        ValidationError: If the file cannot be read as UTF-8 text.
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ValidationError(
            f"Cannot import '{path.name}': {e}", field="path", value=path.name
        ) from e
    logger.debug(f"Read {len(content)} characters from {path.name}")
    return Note(title=title_from_filename(path.name), content=content)
