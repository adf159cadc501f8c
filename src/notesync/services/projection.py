"""Pure views over a note collection.

Nothing here touches the store or mutates its inputs. A ``NoteProjection``
keeps a snapshot of the notes it was built from and recomputes the sorted,
filtered sequence on every iteration, so it can be iterated any number of
times with the same result.
"""
from collections import Counter
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Union

from notesync.config import config
from notesync.exceptions import ErrorCode, ValidationError
from notesync.models.schema import Category, Note, NoteFilters, SortField, SortOrder

_SORT_KEYS: Dict[SortField, Callable[[Note], object]] = {
    SortField.TITLE: lambda note: note.title,
    SortField.CATEGORY: lambda note: note.category,
    SortField.CREATED_AT: lambda note: note.created_at,
    SortField.UPDATED_AT: lambda note: note.updated_at,
}


class NoteProjection:
    """Lazy, restartable sorted/filtered view of a note snapshot."""

    def __init__(
        self,
        notes: Iterable[Note],
        sort_by: Union[SortField, str] = SortField.UPDATED_AT,
        sort_order: Union[SortOrder, str] = SortOrder.DESC,
        filters: Optional[NoteFilters] = None,
    ):
        self._notes = tuple(notes)
        self.sort_by = SortField(sort_by)
        self.sort_order = SortOrder(sort_order)
        self.filters = filters

    def __iter__(self) -> Iterator[Note]:
        selected = (
            [n for n in self._notes if self.filters.matches(n)]
            if self.filters
            else list(self._notes)
        )
        # sorted() is stable, also with reverse=True: ties keep input order
        yield from sorted(
            selected,
            key=_SORT_KEYS[self.sort_by],
            reverse=self.sort_order is SortOrder.DESC,
        )

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __repr__(self) -> str:
        return (
            f"<NoteProjection(notes={len(self._notes)}, sort_by={self.sort_by.value}, "
            f"sort_order={self.sort_order.value})>"
        )

    def to_list(self) -> List[Note]:
        return list(self)


def project(
    notes: Iterable[Note],
    sort_by: Union[SortField, str] = SortField.UPDATED_AT,
    sort_order: Union[SortOrder, str] = SortOrder.DESC,
    filters: Optional[NoteFilters] = None,
) -> NoteProjection:
    """Build a sorted, optionally filtered view of ``notes``."""
    return NoteProjection(notes, sort_by, sort_order, filters)


def filter_notes(notes: Iterable[Note], filters: NoteFilters) -> List[Note]:
    """Notes matching ``filters``, in input order."""
    return [note for note in notes if filters.matches(note)]


def local_search(notes: Iterable[Note], query: str) -> List[Note]:
    """Case-insensitive substring match over title, content, tags and category."""
    needle = query.lower()
    return [
        note
        for note in notes
        if needle in note.title.lower()
        or needle in note.content.lower()
        or any(needle in tag.lower() for tag in note.tags)
        or needle in note.category.lower()
    ]


def category_counts(
    notes: Iterable[Note], include_archived: bool = False
) -> Dict[str, int]:
    """Number of notes per category name."""
    return dict(
        Counter(n.category for n in notes if include_archived or not n.is_archived)
    )


def tag_counts(notes: Iterable[Note], include_archived: bool = False) -> Dict[str, int]:
    """Number of notes carrying each tag."""
    counter: Counter = Counter()
    for note in notes:
        if include_archived or not note.is_archived:
            counter.update(note.tags)
    return dict(counter)


def filter_counts(notes: Sequence[Note]) -> Dict[str, int]:
    """Sidebar totals: active notes, active favorites, archived notes."""
    return {
        "all": sum(1 for n in notes if not n.is_archived),
        "favorites": sum(1 for n in notes if n.is_favorite and not n.is_archived),
        "archived": sum(1 for n in notes if n.is_archived),
    }


def category_chain(
    categories: Iterable[Category],
    category_id: str,
    max_depth: Optional[int] = None,
) -> List[Category]:
    """Path from the root category down to ``category_id``.

    A parent id that names no known category ends the chain there.

    Raises:
        ValidationError: On an unknown ``category_id``, a cycle, or a chain
            longer than ``max_depth`` (default ``config.max_category_depth``).
    """
    max_depth = max_depth if max_depth is not None else config.max_category_depth
    by_id = {c.id: c for c in categories}
    if category_id not in by_id:
        raise ValidationError(
            f"Unknown category '{category_id}'",
            field="category_id",
            value=category_id,
        )

    chain: List[Category] = []
    seen = set()
    current: Optional[Category] = by_id[category_id]
    while current is not None:
        if current.id in seen:
            raise ValidationError(
                f"Category hierarchy of '{category_id}' contains a cycle",
                field="parent_id",
                value=current.id,
                code=ErrorCode.CATEGORY_CYCLE,
            )
        seen.add(current.id)
        chain.append(current)
        if len(chain) > max_depth:
            raise ValidationError(
                f"Category hierarchy deeper than {max_depth} levels",
                field="parent_id",
                value=category_id,
                code=ErrorCode.CATEGORY_TOO_DEEP,
            )
        current = by_id.get(current.parent_id) if current.parent_id else None
    chain.reverse()
    return chain
