"""Tests for line diffing helpers."""

from codenotes.core.diff import diff_lines, map_line, runs_touching, shift_before, split_lines


def test_split_lines_empty():
    assert split_lines("") == []
    assert split_lines(None) == []


def test_split_lines_drops_terminators():
    assert split_lines("a\nb\r\nc\n") == ["a", "b", "c"]


def test_runs_cover_both_sequences():
    old = ["a", "b", "c", "d"]
    new = ["a", "x", "c", "d", "e"]
    runs = diff_lines(old, new)

    assert runs[0].old_start == 0 and runs[0].new_start == 0
    assert runs[-1].old_end == len(old) and runs[-1].new_end == len(new)
    for prev, nxt in zip(runs, runs[1:]):
        assert prev.old_end == nxt.old_start
        assert prev.new_end == nxt.new_start


def test_map_line_through_insertion():
    old = ["a", "b", "c"]
    new = ["x", "y", "a", "b", "c"]
    runs = diff_lines(old, new)

    assert map_line(runs, 0) == 2
    assert map_line(runs, 2) == 4


def test_map_line_deleted_line():
    runs = diff_lines(["a", "b", "c"], ["a", "c"])
    assert map_line(runs, 1) is None


def test_runs_touching_ignores_pure_insertions():
    runs = diff_lines(["a", "b", "c"], ["a", "new", "b", "c"])
    touched = runs_touching(runs, 1, 1)
    assert [r.tag for r in touched] == ["equal"]


def test_shift_before_counts_earlier_changes_only():
    old = ["a", "b", "c", "d", "e"]
    new = ["a", "x", "y", "b", "c", "d"]  # two inserted after a, e removed
    runs = diff_lines(old, new)

    assert shift_before(runs, 2) == 2
    assert shift_before(runs, 0) == 0
