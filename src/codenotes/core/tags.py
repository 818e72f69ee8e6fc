"""Tag validation, normalization and filtering."""

from collections import Counter
from collections.abc import Iterable

from ..errors import InvalidTag
from .model import Note, NoteCategory

MAX_TAG_LENGTH = 50


def is_category(tag: str) -> bool:
    return tag.strip().upper() in NoteCategory.__members__


def normalize_tag(tag: str) -> str:
    """
    Validate and normalize one tag.

    Tags naming a category are upper-cased (``todo`` -> ``TODO``); custom
    tags keep their casing.

    Raises:
        InvalidTag: empty, too long, or containing a comma or newline.
    """
    trimmed = tag.strip() if tag else ""
    if not trimmed:
        raise InvalidTag(tag, "Tag cannot be empty")
    if "," in trimmed:
        raise InvalidTag(tag, "Tag cannot contain commas")
    if "\n" in trimmed or "\r" in trimmed:
        raise InvalidTag(tag, "Tag cannot contain newlines")
    if len(trimmed) > MAX_TAG_LENGTH:
        raise InvalidTag(tag, f"Tag cannot exceed {MAX_TAG_LENGTH} characters")
    if is_category(trimmed):
        return trimmed.upper()
    return trimmed


def normalize_tags(tags: Iterable[str] | None) -> set[str]:
    return {normalize_tag(tag) for tag in tags or ()}


def parse_tags(text: str | None) -> set[str]:
    """Parse a comma-separated tag list, ignoring empty items."""
    if not text or not text.strip():
        return set()
    return normalize_tags(part for part in text.split(",") if part.strip())


def parse_category(value: str | NoteCategory | None) -> NoteCategory | None:
    if value is None or isinstance(value, NoteCategory):
        return value
    value = value.strip()
    if not value:
        return None
    if not is_category(value):
        raise InvalidTag(value, f"Unknown category; expected one of {', '.join(NoteCategory.__members__)}")
    return NoteCategory[value.upper()]


def filter_notes_by_tags(
    notes: Iterable[Note],
    include: Iterable[str] = (),
    exclude: Iterable[str] = (),
    require_all: bool = False,
) -> list[Note]:
    """
    Keep notes carrying the wanted tags.

    A note's category counts as one of its tags. Any excluded tag drops the
    note; with ``require_all`` every included tag must be present, otherwise
    one is enough. No include tags means every non-excluded note is kept.
    """
    include = normalize_tags(include)
    exclude = normalize_tags(exclude)
    out = []
    for note in notes:
        tags = set(note.tags)
        if note.category is not None:
            tags.add(note.category.value)
        if tags & exclude:
            continue
        if include:
            if require_all and not include <= tags:
                continue
            if not require_all and not include & tags:
                continue
        out.append(note)
    return out


def tag_counts(notes: Iterable[Note]) -> list[tuple[str, int]]:
    """Tag usage, most used first, ties alphabetical."""
    counts: Counter[str] = Counter()
    for note in notes:
        counts.update(note.tags)
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))
