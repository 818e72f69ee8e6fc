"""Read-only projections over the note store for presentation layers."""

from collections.abc import Iterable

from .core import tags as tag_rules
from .core.model import LineRange, Note, NoteId, sort_key
from .core.ports import NoteStore
from .core.search import SearchQuery, SearchResult, search_notes
from .core.utils import normalize_path


class QueryFacade:
    """
    Grouping, counting and lookup of notes. Never triggers resolution; it
    reflects whatever the store last persisted.
    """

    def __init__(self, store: NoteStore):
        self.store = store

    def notes_by_file(self) -> dict[str, list[Note]]:
        """Every annotated file (sorted by path) with its notes in line order."""
        grouped = self.store.all()
        return {path: sorted(grouped[path], key=sort_key) for path in sorted(grouped)}

    def notes_for_file(self, file_path: str) -> list[Note]:
        return sorted(self.store.load(normalize_path(file_path)), key=sort_key)

    def note(self, note_id: NoteId) -> Note:
        return self.store.get(note_id)

    def note_count(self) -> int:
        return sum(len(notes) for notes in self.store.all().values())

    def file_count(self) -> int:
        return len(self.store.all())

    def notes_at_line(self, file_path: str, line: int) -> list[Note]:
        return [n for n in self.notes_for_file(file_path) if n.line_range.contains(line)]

    def notes_in_range(self, file_path: str, line_range: LineRange) -> list[Note]:
        return [n for n in self.notes_for_file(file_path) if n.line_range.overlaps(line_range)]

    def orphaned_notes(self) -> list[Note]:
        return [n for notes in self.notes_by_file().values() for n in notes if n.is_orphaned]

    def filter_by_tags(
        self,
        include: Iterable[str] = (),
        exclude: Iterable[str] = (),
        require_all: bool = False,
    ) -> list[Note]:
        notes = [n for group in self.notes_by_file().values() for n in group]
        return tag_rules.filter_notes_by_tags(notes, include, exclude, require_all)

    def tag_statistics(self) -> list[tuple[str, int]]:
        return tag_rules.tag_counts(n for group in self.store.all().values() for n in group)

    def search(self, query: SearchQuery) -> list[SearchResult]:
        """Ranked notes matching every filter in ``query``."""
        notes = [n for group in self.notes_by_file().values() for n in group]
        return search_notes(notes, query)

    def authors(self) -> list[str]:
        return sorted({n.author for group in self.store.all().values() for n in group})
