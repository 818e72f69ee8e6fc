"""
Note search: full text, regex, author, date range, file glob and tags.

Filters intersect. Full-text search tokenizes the query and requires every
term; results are ranked by term coverage and frequency (or regex hits),
with a small boost for recently updated notes.
"""

from __future__ import annotations

import fnmatch
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .model import Note
from .tags import filter_notes_by_tags

DEFAULT_MAX_RESULTS = 100

STOP_WORDS = frozenset("""
    the a an and or but in on at to for of with by from as is was are were
    been be have has had do does did will would should could may might can
    this that these those it its we you they them their our your my me
""".split())

_TOKEN_SPLIT = re.compile(r"[\s.,;:!?()\[\]{}<>'\"/\\]+")


@dataclass(frozen=True)
class SearchQuery:
    """
    text: whitespace-separated terms, all of which must occur.
    regex: pattern searched in the content; takes precedence over ``text``.
    date_field: ``created`` or ``updated``. ``since``/``until`` are ISO
        prefixes compared at their own precision, so ``until="2024-03-01"``
        includes the whole day.
    file_pattern: glob over workspace-relative paths, case-insensitive.
    """

    text: str | None = None
    regex: str | None = None
    case_sensitive: bool = False
    authors: tuple[str, ...] = ()
    date_field: str = "created"
    since: str | None = None
    until: str | None = None
    file_pattern: str | None = None
    tags: tuple[str, ...] = ()
    require_all_tags: bool = False
    max_results: int = DEFAULT_MAX_RESULTS


@dataclass(frozen=True)
class SearchResult:
    note: Note
    score: float
    matches: tuple[tuple[int, int], ...] = field(default=())  # (start, end) offsets in content
    context: str = ""


def tokenize(text: str, case_sensitive: bool = False) -> list[str]:
    """Split into terms, dropping one-character tokens and stop words."""
    if not case_sensitive:
        text = text.lower()
    return [
        token for token in _TOKEN_SPLIT.split(text)
        if len(token) > 1 and token.lower() not in STOP_WORDS
    ]


def _compile(query: SearchQuery) -> re.Pattern[str] | None:
    if not query.regex:
        return None
    try:
        return re.compile(query.regex, 0 if query.case_sensitive else re.IGNORECASE)
    except re.error as e:
        raise ValueError(f"Invalid regex {query.regex!r}: {e}") from e


def _in_range(value: str, since: str | None, until: str | None) -> bool:
    if since and value[:len(since)] < since:
        return False
    if until and value[:len(until)] > until:
        return False
    return True


def _find_spans(
    note: Note,
    terms: list[str],
    case_sensitive: bool,
    pattern: re.Pattern[str] | None,
) -> list[tuple[int, int]]:
    if pattern is not None:
        return [m.span() for m in pattern.finditer(note.content) if m.end() > m.start()]
    haystack = note.content if case_sensitive else note.content.lower()
    spans = []
    for term in terms:
        index = haystack.find(term)
        while index != -1:
            spans.append((index, index + len(term)))
            index = haystack.find(term, index + 1)
    return sorted(spans)


def _context(content: str, spans: list[tuple[int, int]], length: int = 100) -> str:
    if not spans:
        return content[:length]
    start, end = spans[0]
    lo = max(0, start - length // 2)
    hi = min(len(content), end + length // 2)
    snippet = content[lo:hi]
    return ("..." if lo > 0 else "") + snippet + ("..." if hi < len(content) else "")


def _score(
    note: Note,
    terms: list[str],
    query: SearchQuery,
    spans: list[tuple[int, int]],
    now: datetime,
) -> float:
    score = 0.0
    if terms:
        words = tokenize(note.content, query.case_sensitive)
        hits = [words.count(term) for term in terms]
        coverage = sum(1 for h in hits if h) / len(terms)
        frequency = sum(hits) / len(terms)
        score += coverage * 0.6 + min(frequency / 10, 1) * 0.4
    if query.regex and spans:
        score = max(score, 0.8 + len(spans) * 0.02)
    try:
        updated = datetime.fromisoformat(note.updated_at)
    except ValueError:
        updated = None
    if updated is not None:
        if updated.tzinfo is None:
            updated = updated.replace(tzinfo=timezone.utc)
        age_days = (now - updated).total_seconds() / 86400
        score += max(0.0, 1 - age_days / 365) * 0.1
    return min(1.0, max(0.0, score))


def search_notes(
    notes: Iterable[Note],
    query: SearchQuery,
    now: datetime | None = None,
) -> list[SearchResult]:
    """
    Apply every filter in ``query`` and rank what is left.

    Raises:
        ValueError: ``query.regex`` does not compile, or ``date_field`` is unknown.
    """
    if query.date_field not in ("created", "updated"):
        raise ValueError(f"Unknown date field {query.date_field!r}; expected created or updated")
    pattern = _compile(query)
    terms = tokenize(query.text, query.case_sensitive) if query.text and pattern is None else []
    if query.text and pattern is None and not terms:
        return []
    now = now or datetime.now(timezone.utc)

    candidates = list(notes)
    if query.tags:
        candidates = filter_notes_by_tags(candidates, include=query.tags, require_all=query.require_all_tags)

    authors = set(query.authors)
    results = []
    for note in candidates:
        if authors and note.author not in authors:
            continue
        stamp = note.created_at if query.date_field == "created" else note.updated_at
        if not _in_range(stamp, query.since, query.until):
            continue
        if query.file_pattern and not fnmatch.fnmatch(note.file_path.lower(), query.file_pattern.lower()):
            continue
        if pattern is not None:
            if not pattern.search(note.content):
                continue
        elif terms:
            words = set(tokenize(note.content, query.case_sensitive))
            if not all(term in words for term in terms):
                continue
        spans = _find_spans(note, terms, query.case_sensitive, pattern)
        results.append(SearchResult(
            note=note,
            score=_score(note, terms, query, spans, now),
            matches=tuple(spans),
            context=_context(note.content, spans),
        ))

    results.sort(key=lambda r: (-r.score, r.note.file_path, r.note.line_range.start))
    return results[:query.max_results]
