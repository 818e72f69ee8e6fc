from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum

from ..errors import InvalidRange

NoteId = str


class AnchorStatus(str, Enum):
    STABLE = "stable"
    SHIFTED = "shifted"
    ORPHANED = "orphaned"


class NoteCategory(str, Enum):
    TODO = "TODO"
    FIXME = "FIXME"
    QUESTION = "QUESTION"
    NOTE = "NOTE"
    BUG = "BUG"
    IMPROVEMENT = "IMPROVEMENT"
    REVIEW = "REVIEW"


@dataclass(frozen=True)
class LineRange:
    start: int  # 0-based
    end: int  # 0-based, inclusive

    @classmethod
    def checked(cls, start: int, end: int) -> LineRange:
        """Build a range, raising InvalidRange for negative or inverted bounds."""
        if start < 0 or end < 0:
            raise InvalidRange(start, end, "Line range cannot contain negative numbers")
        if start > end:
            raise InvalidRange(start, end, "Line range start must be less than or equal to end")
        return cls(start, end)

    def __len__(self) -> int:
        return self.end - self.start + 1

    def contains(self, line: int) -> bool:
        return self.start <= line <= self.end

    def overlaps(self, other: LineRange) -> bool:
        return not (self.end < other.start or self.start > other.end)

    def display(self) -> str:
        """1-based rendering for humans, e.g. ``11-13``."""
        if self.start == self.end:
            return str(self.start + 1)
        return f"{self.start + 1}-{self.end + 1}"


@dataclass
class HistoryEntry:
    action: str  # "created" | "edited"
    content: str
    author: str
    timestamp: str


@dataclass
class Note:
    id: NoteId
    file_path: str  # workspace-relative, POSIX separators
    line_range: LineRange
    content: str
    author: str
    created_at: str  # ISO 8601, UTC
    updated_at: str
    tags: set[str] = field(default_factory=set)
    category: NoteCategory | None = None
    status: AnchorStatus = AnchorStatus.STABLE
    anchored_text: list[str] = field(default_factory=list)
    content_hash: str = ""
    history: list[HistoryEntry] = field(default_factory=list)

    @property
    def is_orphaned(self) -> bool:
        return self.status is AnchorStatus.ORPHANED

    def copy(self) -> Note:
        return copy.deepcopy(self)


@dataclass(frozen=True)
class AnchorResolution:
    note_id: NoteId
    status: AnchorStatus
    new_range: LineRange | None = None  # None when orphaned
    similarity: float | None = None
    anchored_text: tuple[str, ...] | None = None


def sort_key(note: Note) -> tuple[int, str]:
    """File Note Set ordering: start line, then creation time."""
    return (note.line_range.start, note.created_at)
