"""Utility functions for the notesync core."""
from pathlib import PurePath
from typing import Iterable, List


def escape_like_pattern(value: str) -> str:
    """Escape SQL LIKE wildcards to treat them as literals.

    Prevents LIKE pattern injection where a search query containing
    '%' or '_' would match unintended rows.

    Args:
        value: User input string that may contain LIKE wildcards

    Returns:
        String with '%', '_', and '\\' escaped for use with ``escape="\\"``

    Example:
        >>> escape_like_pattern("100% done")
        '100\\% done'
    """
    escape_table = str.maketrans(
        {
            "\\": "\\\\",  # Escape backslash first
            "%": "\\%",
            "_": "\\_",
        }
    )
    return value.translate(escape_table)


def title_from_filename(filename: str) -> str:
    """Derive a note title from a file name by dropping its last extension.

    Examples:
        "meeting.txt" -> "meeting"
        "notes.2024.md" -> "notes.2024"
        "README" -> "README"
    """
    name = PurePath(filename).name
    stem, dot, ext = name.rpartition(".")
    if not dot or not ext:
        return name
    return stem


def safe_filename(title: str, fallback: str = "note") -> str:
    """Make a note title usable as a single file name component.

    Path separators and control characters are replaced, surrounding
    dots and spaces are stripped. Accents and inner spaces are kept.
    """
    cleaned = "".join(
        "-" if c in '/\\:*?"<>|' or ord(c) < 32 else c for c in title
    )
    cleaned = cleaned.strip(" .")
    return cleaned or fallback


def dedupe_preserving_order(items: Iterable[str]) -> List[str]:
    """Drop repeated strings, keeping the first occurrence's position."""
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result
