"""
Anchor resolution: keep note line ranges attached to the code they annotate.

Everything here is pure and synchronous. Given text snapshots and the notes
anchored to the older one, the resolver returns one AnchorResolution per
note. Losing track of content is a status (``orphaned``), not an exception;
only malformed ranges raise.
"""

from __future__ import annotations

import difflib
import hashlib
import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .diff import DiffRun, diff_lines, map_line, runs_touching, shift_before, split_lines
from .model import AnchorResolution, AnchorStatus, LineRange, Note

logger = logging.getLogger(__name__)

_WS = re.compile(r"\s+")


@dataclass(frozen=True)
class AnchorPolicy:
    """
    Tuning for the content-matching fallback.

    similarity_threshold: minimum ``SequenceMatcher.ratio()`` between the
        normalized snapshot and a candidate window for a fuzzy match.
    search_radius: fuzzy search only looks this many lines either side of
        the position the note is expected at. Exact matches are searched
        across the whole file.
    """

    similarity_threshold: float = 0.7
    search_radius: int = 50


def normalize_lines(lines: Iterable[str]) -> list[str]:
    """Strip each line, collapse internal whitespace, drop blank lines."""
    out = []
    for line in lines:
        line = _WS.sub(" ", line.strip())
        if line:
            out.append(line)
    return out


def content_hash(lines: Iterable[str]) -> str:
    """SHA-256 of the normalized lines."""
    normalized = "\n".join(normalize_lines(lines))
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def similarity(a: str, b: str) -> float:
    """Similarity in [0, 1]; two empty strings are identical."""
    if not a and not b:
        return 1.0
    return difflib.SequenceMatcher(None, a, b, autojunk=False).ratio()


def find_content(
    lines: Sequence[str],
    snapshot: Sequence[str],
    expected_start: int,
    policy: AnchorPolicy,
    fuzzy: bool = True,
) -> tuple[LineRange, float] | None:
    """
    Locate ``snapshot`` in ``lines``.

    Windows are the snapshot's line count. An exact normalized match anywhere
    in the file wins, closest to ``expected_start`` first. Otherwise, when
    ``fuzzy`` is set, the best window within ``policy.search_radius`` scoring
    at least ``policy.similarity_threshold`` wins.
    """
    size = len(snapshot)
    target = "\n".join(normalize_lines(snapshot))
    if size == 0 or not target or size > len(lines):
        return None

    normalized = [_WS.sub(" ", line.strip()) for line in lines]
    last_start = len(lines) - size

    def window(start: int) -> str:
        return "\n".join(line for line in normalized[start:start + size] if line)

    exact = [start for start in range(last_start + 1) if window(start) == target]
    if exact:
        best = min(exact, key=lambda start: (abs(start - expected_start), start))
        return LineRange(best, best + size - 1), 1.0

    if not fuzzy:
        return None

    lo = max(0, expected_start - policy.search_radius)
    hi = min(last_start, expected_start + policy.search_radius)
    matcher = difflib.SequenceMatcher(None, autojunk=False)
    matcher.set_seq2(target)
    best_match: tuple[LineRange, float] | None = None
    best_distance = 0
    for start in range(lo, hi + 1):
        matcher.set_seq1(window(start))
        if matcher.real_quick_ratio() < policy.similarity_threshold:
            continue
        if matcher.quick_ratio() < policy.similarity_threshold:
            continue
        score = matcher.ratio()
        if score < policy.similarity_threshold:
            continue
        distance = abs(start - expected_start)
        if best_match is None or score > best_match[1] or (
            score == best_match[1] and distance < best_distance
        ):
            best_match = (LineRange(start, start + size - 1), score)
            best_distance = distance
    return best_match


def orphaned(note: Note) -> AnchorResolution:
    return AnchorResolution(note.id, AnchorStatus.ORPHANED)


def orphan_all(notes: Iterable[Note]) -> dict[str, AnchorResolution]:
    """Resolution for a deleted file: every note is orphaned."""
    return {note.id: orphaned(note) for note in notes}


def _matched(
    note: Note, lines: Sequence[str], found: tuple[LineRange, float] | None
) -> AnchorResolution:
    if found is None:
        logger.debug("note %s orphaned in %s", note.id, note.file_path)
        return orphaned(note)
    rng, score = found
    return AnchorResolution(
        note.id,
        AnchorStatus.SHIFTED,
        rng,
        similarity=score,
        anchored_text=tuple(lines[rng.start:rng.end + 1]),
    )


def _resolve_one(
    note: Note,
    old_lines: list[str],
    new_lines: list[str],
    runs: list[DiffRun],
    policy: AnchorPolicy,
    unchanged: bool = False,
) -> AnchorResolution:
    rng = LineRange.checked(note.line_range.start, note.line_range.end)
    if not new_lines:
        return orphaned(note)

    fully_deleted = False
    if not note.is_orphaned and rng.end < len(old_lines):
        touched = runs_touching(runs, rng.start, rng.end)
        start = map_line(runs, rng.start)
        end = map_line(runs, rng.end)
        if all(run.tag == "equal" for run in touched) and start is not None and end is not None:
            new = LineRange(start, end)
            if unchanged:
                status = note.status
            else:
                status = AnchorStatus.STABLE if new == rng else AnchorStatus.SHIFTED
            return AnchorResolution(
                note.id, status, new, similarity=1.0,
                anchored_text=tuple(new_lines[start:end + 1]),
            )
        fully_deleted = all(run.tag == "delete" for run in touched)

    snapshot = note.anchored_text or old_lines[rng.start:rng.end + 1]
    expected = rng.start + shift_before(runs, rng.start)
    # Deleted content can only come back verbatim (a move); an orphan needs
    # the same to be recovered, which keeps re-runs idempotent.
    fuzzy = not (fully_deleted or note.is_orphaned)
    return _matched(note, new_lines, find_content(new_lines, snapshot, expected, policy, fuzzy))


def resolve_anchors(
    previous_text: str | None,
    current_text: str | None,
    notes: Iterable[Note],
    policy: AnchorPolicy | None = None,
) -> dict[str, AnchorResolution]:
    """
    Re-anchor ``notes`` (anchored to ``previous_text``) onto ``current_text``.

    Ranges untouched by deletions or replacements are mapped through the
    line diff (``stable`` when they did not move, ``shifted`` otherwise).
    When the text is unchanged such notes keep the status they had.
    Ranges that lost lines fall back to content matching against each
    note's snapshot; a match is ``shifted``, no match is ``orphaned`` with
    the last-known range kept on the note. Overlapping notes are resolved
    independently of one another.

    Raises:
        InvalidRange: a note carries a negative or inverted range.
    """
    policy = policy or AnchorPolicy()
    old_lines = split_lines(previous_text)
    new_lines = split_lines(current_text)
    runs = diff_lines(old_lines, new_lines) if new_lines else []
    unchanged = old_lines == new_lines
    return {
        note.id: _resolve_one(note, old_lines, new_lines, runs, policy, unchanged)
        for note in notes
    }


def reconcile_anchors(
    current_text: str | None,
    notes: Iterable[Note],
    policy: AnchorPolicy | None = None,
) -> dict[str, AnchorResolution]:
    """
    Verify anchors against ``current_text`` without a previous snapshot.

    A note whose snapshot still sits at its range keeps its status; otherwise
    the snapshot is searched for as in :func:`resolve_anchors`. Notes with no
    snapshot are trusted while their range fits inside the text.
    """
    policy = policy or AnchorPolicy()
    lines = split_lines(current_text)
    results: dict[str, AnchorResolution] = {}
    for note in notes:
        rng = LineRange.checked(note.line_range.start, note.line_range.end)
        if not lines:
            results[note.id] = orphaned(note)
            continue
        snapshot = note.anchored_text
        fits = rng.end < len(lines)
        if fits and not note.is_orphaned and (
            not snapshot
            or (len(snapshot) == len(rng)
                and normalize_lines(lines[rng.start:rng.end + 1]) == normalize_lines(snapshot))
        ):
            results[note.id] = AnchorResolution(
                note.id, note.status, rng, similarity=1.0,
                anchored_text=tuple(lines[rng.start:rng.end + 1]),
            )
            continue
        found = find_content(lines, snapshot, rng.start, policy, fuzzy=not note.is_orphaned)
        results[note.id] = _matched(note, lines, found)
    return results


def apply_resolution(note: Note, resolution: AnchorResolution) -> bool:
    """
    Write a resolution onto a note in place; returns True if anything changed.

    Orphaned notes keep their last-known range and snapshot.
    """
    before = (note.status, note.line_range, note.anchored_text)
    note.status = resolution.status
    if resolution.new_range is not None:
        note.line_range = resolution.new_range
    if resolution.anchored_text is not None:
        note.anchored_text = list(resolution.anchored_text)
        note.content_hash = content_hash(note.anchored_text)
    return before != (note.status, note.line_range, note.anchored_text)
