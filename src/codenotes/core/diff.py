"""Line-level diffing between two text snapshots."""

from __future__ import annotations

import difflib
from dataclasses import dataclass


@dataclass(frozen=True)
class DiffRun:
    tag: str  # "equal" | "insert" | "delete" | "replace"
    old_start: int  # half-open [old_start, old_end)
    old_end: int
    new_start: int
    new_end: int

    @property
    def delta(self) -> int:
        """Net lines added (negative when lines were removed)."""
        return (self.new_end - self.new_start) - (self.old_end - self.old_start)


def split_lines(text: str | None) -> list[str]:
    """Split text into lines without terminators; ``""`` and None give ``[]``."""
    if not text:
        return []
    return text.splitlines()


def diff_lines(old_lines: list[str], new_lines: list[str]) -> list[DiffRun]:
    """
    Compute the run sequence turning ``old_lines`` into ``new_lines``.

    Runs cover both sequences contiguously and in order. Autojunk is off so
    that long files full of repeated lines (blank lines, closing braces) are
    still matched line by line.
    """
    matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)
    return [
        DiffRun(tag, i1, i2, j1, j2)
        for tag, i1, i2, j1, j2 in matcher.get_opcodes()
    ]


def runs_touching(runs: list[DiffRun], start: int, end: int) -> list[DiffRun]:
    """
    Runs that consume at least one old line in ``[start, end]`` (inclusive).

    Pure insertions consume no old lines and are never returned.
    """
    return [
        run for run in runs
        if run.old_start < run.old_end and run.old_start <= end and run.old_end > start
    ]


def map_line(runs: list[DiffRun], line: int) -> int | None:
    """Map an old line through the equal runs; None when it was not kept."""
    for run in runs:
        if run.tag == "equal" and run.old_start <= line < run.old_end:
            return run.new_start + (line - run.old_start)
    return None


def shift_before(runs: list[DiffRun], line: int) -> int:
    """Net line delta of all runs that end at or before ``line``."""
    return sum(run.delta for run in runs if run.tag != "equal" and run.old_end <= line)
