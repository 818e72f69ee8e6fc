"""Tests for the query facade."""

import tempfile
from pathlib import Path

import pytest

from codenotes.adapters.fs_store import FsNoteStore
from codenotes.adapters.yaml_codec import YamlNoteSetCodec
from codenotes.core.model import AnchorStatus, LineRange
from codenotes.core.search import SearchQuery
from codenotes.errors import NotFound
from codenotes.query import QueryFacade


@pytest.fixture
def query():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = FsNoteStore(Path(tmpdir) / ".code-notes", YamlNoteSetCodec())
        store.create("src/b.py", LineRange(10, 12), "b late", author="a", tags=["perf"])
        store.create("src/b.py", LineRange(1, 3), "b early", author="a", tags=["todo", "perf"])
        store.create("src/a.py", LineRange(4, 4), "a only", author="a", category="bug")
        yield QueryFacade(store)


def test_notes_by_file_sorted(query):
    grouped = query.notes_by_file()

    assert list(grouped) == ["src/a.py", "src/b.py"]
    assert [n.content for n in grouped["src/b.py"]] == ["b early", "b late"]


def test_counts(query):
    assert query.note_count() == 3
    assert query.file_count() == 2


def test_notes_for_file(query):
    assert [n.content for n in query.notes_for_file("./src/b.py")] == ["b early", "b late"]
    assert query.notes_for_file("src/none.py") == []


def test_note_lookup(query):
    some = query.notes_for_file("src/a.py")[0]
    assert query.note(some.id).content == "a only"
    with pytest.raises(NotFound):
        query.note("missing")


def test_notes_at_line_and_in_range(query):
    assert [n.content for n in query.notes_at_line("src/b.py", 2)] == ["b early"]
    assert query.notes_at_line("src/b.py", 5) == []
    hits = query.notes_in_range("src/b.py", LineRange(3, 10))
    assert [n.content for n in hits] == ["b early", "b late"]


def test_orphaned_notes(query):
    assert query.orphaned_notes() == []

    def orphan(notes):
        for n in notes:
            n.status = AnchorStatus.ORPHANED

    query.store.apply("src/a.py", orphan)
    assert [n.content for n in query.orphaned_notes()] == ["a only"]


def test_filter_by_tags(query):
    assert [n.content for n in query.filter_by_tags(include=["perf"])] == ["b early", "b late"]
    assert [n.content for n in query.filter_by_tags(include=["BUG"])] == ["a only"]
    assert [n.content for n in query.filter_by_tags(exclude=["todo"])] == ["a only", "b late"]


def test_tag_statistics(query):
    assert query.tag_statistics() == [("perf", 2), ("TODO", 1)]


def test_search(query):
    assert [r.note.content for r in query.search(SearchQuery(text="early"))] == ["b early"]
    hits = query.search(SearchQuery(file_pattern="src/b.py", tags=("perf", "todo"), require_all_tags=True))
    assert [r.note.content for r in hits] == ["b early"]


def test_authors(query):
    query.store.create("src/c.py", LineRange(0, 0), "c", author="zed")
    assert query.authors() == ["a", "zed"]
