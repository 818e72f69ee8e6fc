"""Tests for note search."""

from datetime import datetime, timezone

import pytest

from codenotes.core.model import LineRange, Note
from codenotes.core.search import SearchQuery, search_notes, tokenize

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def note(note_id, file_path, content, author="ann", created="2024-01-10T09:00:00+00:00",
         updated=None, tags=(), start=0):
    return Note(
        id=note_id,
        file_path=file_path,
        line_range=LineRange(start, start),
        content=content,
        author=author,
        created_at=created,
        updated_at=updated or created,
        tags=set(tags),
    )


@pytest.fixture
def notes():
    return [
        note("n1", "src/cache.py", "Cache eviction is slow under load", tags=["perf"]),
        note("n2", "src/Cache.py", "The cache cache cache needs a TTL", author="bob",
             created="2024-03-01T12:00:00+00:00", tags=["perf", "TODO"]),
        note("n3", "docs/readme.md", "Document the eviction policy", author="cy",
             created="2024-05-20T08:00:00+00:00", updated="2024-05-31T08:00:00+00:00"),
        note("n4", "src/db.py", "Retry on error code E1234", tags=["TODO"], start=7),
    ]


def ids(results):
    return [r.note.id for r in results]


def test_tokenize_drops_stop_words_and_short_tokens():
    assert tokenize("The cache, a TTL (for x)!") == ["cache", "ttl"]
    assert tokenize("Cache TTL", case_sensitive=True) == ["Cache", "TTL"]


def test_text_requires_every_term(notes):
    assert sorted(ids(search_notes(notes, SearchQuery(text="eviction"), now=NOW))) == ["n1", "n3"]
    assert ids(search_notes(notes, SearchQuery(text="cache eviction"), now=NOW)) == ["n1"]
    assert search_notes(notes, SearchQuery(text="the of"), now=NOW) == []


def test_text_case_sensitivity(notes):
    assert sorted(ids(search_notes(notes, SearchQuery(text="cache"), now=NOW))) == ["n1", "n2"]
    exact = search_notes(notes, SearchQuery(text="Cache", case_sensitive=True), now=NOW)
    assert ids(exact) == ["n1"]


def test_frequency_ranks_higher(notes):
    results = search_notes(notes, SearchQuery(text="cache"), now=NOW)
    assert ids(results) == ["n2", "n1"]
    assert all(0.0 <= r.score <= 1.0 for r in results)


def test_matches_and_context(notes):
    [hit] = search_notes(notes, SearchQuery(text="ttl"), now=NOW)
    start, end = hit.matches[0]
    assert hit.note.content[start:end] == "TTL"
    assert "TTL" in hit.context


def test_regex(notes):
    results = search_notes(notes, SearchQuery(regex=r"e\d{4}"), now=NOW)
    assert ids(results) == ["n4"]
    assert results[0].score >= 0.8
    assert search_notes(notes, SearchQuery(regex=r"e\d{4}", case_sensitive=True), now=NOW) == []


def test_invalid_regex(notes):
    with pytest.raises(ValueError):
        search_notes(notes, SearchQuery(regex="(unclosed"))


def test_authors(notes):
    results = search_notes(notes, SearchQuery(authors=("bob", "cy")), now=NOW)
    assert sorted(ids(results)) == ["n2", "n3"]


def test_date_range_is_inclusive(notes):
    march = SearchQuery(since="2024-03-01", until="2024-03-01")
    assert ids(search_notes(notes, march, now=NOW)) == ["n2"]

    late_edits = SearchQuery(date_field="updated", since="2024-05-31")
    assert ids(search_notes(notes, late_edits, now=NOW)) == ["n3"]

    with pytest.raises(ValueError):
        search_notes(notes, SearchQuery(date_field="deleted"))


def test_file_pattern_ignores_case(notes):
    results = search_notes(notes, SearchQuery(file_pattern="src/cache.*"), now=NOW)
    assert sorted(ids(results)) == ["n1", "n2"]
    assert ids(search_notes(notes, SearchQuery(file_pattern="*.md"), now=NOW)) == ["n3"]


def test_tags_any_or_all(notes):
    anyof = search_notes(notes, SearchQuery(tags=("perf", "todo")), now=NOW)
    assert sorted(ids(anyof)) == ["n1", "n2", "n4"]
    allof = search_notes(notes, SearchQuery(tags=("perf", "todo"), require_all_tags=True), now=NOW)
    assert ids(allof) == ["n2"]


def test_filters_intersect(notes):
    query = SearchQuery(text="cache", tags=("todo",), file_pattern="src/*")
    assert ids(search_notes(notes, query, now=NOW)) == ["n2"]


def test_recent_notes_rank_first_and_limit(notes):
    results = search_notes(notes, SearchQuery(), now=NOW)
    assert ids(results)[0] == "n3"
    assert len(search_notes(notes, SearchQuery(max_results=2), now=NOW)) == 2
