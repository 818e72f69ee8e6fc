"""
Debounced, per-file sequential anchor synchronization.

Each file moves through ``idle -> pending -> resolving -> idle``. Change
events (re)start a single-shot timer for their file; when it expires one
resolution pass runs against the latest snapshot and its result is persisted
through the note store. Events arriving mid-pass are queued and processed
right after it. Passes for one file never overlap; different files resolve
concurrently on their own timer threads.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, Union

from ..core.anchor import AnchorPolicy, apply_resolution, orphan_all, reconcile_anchors, resolve_anchors
from ..core.model import Note
from ..core.ports import NoteStore
from ..core.utils import normalize_path, utc_now
from ..errors import CodeNotesError
from .events import EventBus, FileChange, FileDeleted, FileRenamed, NotesChanged, SyncFailed

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 300

Change = Union[FileChange, FileDeleted]


class FileState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    RESOLVING = "resolving"


class Timer(Protocol):
    def start(self) -> None:
        pass

    def cancel(self) -> None:
        pass


TimerFactory = Callable[[float, Callable[[], None]], Timer]


def threading_timer(delay: float, callback: Callable[[], None]) -> Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


def merge_changes(first: Change | None, second: Change) -> Change:
    """
    Coalesce two consecutive changes of one file.

    The earliest previous text is kept (the snapshot anchors refer to) along
    with the latest outcome: a deletion wins, a later edit revives the file.
    """
    if first is None:
        return second
    if isinstance(second, FileDeleted):
        return FileDeleted(second.file_path, first.previous_text)
    return FileChange(second.file_path, first.previous_text, second.current_text)


def _retarget(change: Change, file_path: str) -> Change:
    if isinstance(change, FileDeleted):
        return FileDeleted(file_path, change.previous_text)
    return FileChange(file_path, change.previous_text, change.current_text)


@dataclass
class _Slot:
    state: FileState = FileState.IDLE
    change: Change | None = None  # debouncing, or retained after a failure
    received_at: str | None = None
    queued: Change | None = None  # arrived while resolving
    queued_at: str | None = None
    timer: Timer | None = None
    running: bool = False
    pass_lock: threading.Lock = field(default_factory=threading.Lock)


class SyncCoordinator:
    def __init__(
        self,
        store: NoteStore,
        bus: EventBus,
        policy: AnchorPolicy | None = None,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        timer_factory: TimerFactory = threading_timer,
        clock: Callable[[], str] = utc_now,
    ):
        self.store = store
        self.bus = bus
        self.policy = policy or AnchorPolicy()
        self.debounce_ms = debounce_ms
        self.timer_factory = timer_factory
        self.clock = clock
        self.passes = 0

        self._guard = threading.Lock()
        self._slots: dict[str, _Slot] = {}

    # -- inputs ----------------------------------------------------------

    def submit(self, change: Change) -> None:
        """Accept a file change or deletion and (re)start its debounce window."""
        path = normalize_path(change.file_path)
        change = _retarget(change, path)
        now = self.clock()
        with self._guard:
            slot = self._slots.setdefault(path, _Slot())
            slot.state = FileState.PENDING
            if slot.running:
                slot.queued = merge_changes(slot.queued, change)
                slot.queued_at = slot.queued_at or now
                logger.debug("queued change for %s behind in-flight pass", path)
                return
            slot.change = merge_changes(slot.change, change)
            slot.received_at = slot.received_at or now
            self._restart_timer(path, slot)

    def rename(self, event: FileRenamed) -> int:
        """
        Apply an explicit rename: notes and any pending change follow the
        file to its new path. Returns the number of notes moved.
        """
        old = normalize_path(event.old_path)
        new = normalize_path(event.new_path)
        if old == new:
            return 0
        with self._guard:
            old_slot = self._slots.setdefault(old, _Slot())
            new_slot = self._slots.setdefault(new, _Slot())
        first, second = sorted((old_slot, new_slot), key=lambda s: id(s))
        with first.pass_lock, second.pass_lock:
            moved = self.store.rename_file(old, new)
            with self._guard:
                carried = None
                for pending in (old_slot.change, old_slot.queued):
                    if pending is not None:
                        carried = merge_changes(carried, _retarget(pending, new))
                received_at = old_slot.received_at or old_slot.queued_at
                self._cancel_timer(old_slot)
                old_slot.change = old_slot.queued = None
                old_slot.received_at = old_slot.queued_at = None
                if not old_slot.running:
                    old_slot.state = FileState.IDLE
                if carried is not None:
                    new_slot.state = FileState.PENDING
                    if new_slot.running:
                        new_slot.queued = merge_changes(new_slot.queued, carried)
                        new_slot.queued_at = new_slot.queued_at or received_at
                    else:
                        new_slot.change = merge_changes(new_slot.change, carried)
                        new_slot.received_at = new_slot.received_at or received_at
                        self._restart_timer(new, new_slot)
        logger.info("renamed %s -> %s (%d notes)", old, new, moved)
        self.bus.publish(NotesChanged(old))
        self.bus.publish(NotesChanged(new))
        return moved

    # -- control ---------------------------------------------------------

    def state(self, file_path: str) -> FileState:
        with self._guard:
            slot = self._slots.get(normalize_path(file_path))
            return slot.state if slot else FileState.IDLE

    def flush(self, file_path: str | None = None) -> None:
        """Run pending passes now instead of waiting for their windows."""
        with self._guard:
            if file_path is not None:
                paths = [normalize_path(file_path)]
            else:
                paths = [p for p, s in self._slots.items() if s.change is not None]
        for path in paths:
            self._run(path)

    def close(self) -> None:
        """Cancel every debounce timer; pending changes stay pending."""
        with self._guard:
            for slot in self._slots.values():
                self._cancel_timer(slot)

    # -- internals -------------------------------------------------------

    def _cancel_timer(self, slot: _Slot) -> None:
        if slot.timer is not None:
            slot.timer.cancel()
            slot.timer = None

    def _restart_timer(self, path: str, slot: _Slot) -> None:
        """Caller holds the guard."""
        self._cancel_timer(slot)
        timer = self.timer_factory(self.debounce_ms / 1000.0, lambda: self._run(path))
        slot.timer = timer
        timer.start()

    def _run(self, path: str) -> None:
        with self._guard:
            slot = self._slots.get(path)
            if slot is None or slot.running or slot.change is None:
                return
            self._cancel_timer(slot)
            change, received_at = slot.change, slot.received_at
            slot.change = slot.received_at = None
            slot.running = True
            slot.state = FileState.RESOLVING

        while True:
            failure: Exception | None = None
            with slot.pass_lock:
                try:
                    self._resolve_pass(path, change, received_at)
                except CodeNotesError as e:
                    failure = e
                except Exception as e:
                    logger.exception("unexpected error resolving %s", path)
                    failure = e

            with self._guard:
                next_change = None
                if failure is not None:
                    slot.change = merge_changes(change, slot.queued) if slot.queued else change
                    slot.received_at = received_at
                    retry = slot.queued is not None
                    slot.queued = slot.queued_at = None
                    slot.running = False
                    slot.state = FileState.PENDING
                    if retry:
                        self._restart_timer(path, slot)
                elif slot.queued is not None:
                    next_change, received_at = slot.queued, slot.queued_at
                    slot.queued = slot.queued_at = None
                    slot.state = FileState.RESOLVING
                else:
                    slot.running = False
                    slot.state = FileState.IDLE

            if failure is not None:
                logger.warning("sync failed for %s: %s", path, failure)
                self.bus.publish(SyncFailed(path, failure))
                return
            self.bus.publish(NotesChanged(path))
            if next_change is None:
                return
            change = next_change

    def _resolve_pass(self, path: str, change: Change, received_at: str | None) -> None:
        with self._guard:
            self.passes += 1
        counts: Counter[str] = Counter()

        def mutate(notes: list[Note]) -> Any:
            if not notes:
                return False
            if isinstance(change, FileDeleted):
                results = orphan_all(notes)
            else:
                diffed: list[Note] = []
                fresh: list[Note] = []
                for note in notes:
                    # notes created after the change was first seen are
                    # anchored to the new text already
                    newer = received_at is not None and note.created_at > received_at
                    if change.previous_text is None or newer:
                        fresh.append(note)
                    else:
                        diffed.append(note)
                results = {}
                if diffed:
                    results.update(resolve_anchors(
                        change.previous_text, change.current_text, diffed, self.policy))
                if fresh:
                    results.update(reconcile_anchors(change.current_text, fresh, self.policy))
            changed = False
            for note in notes:
                resolution = results[note.id]
                counts[resolution.status.value] += 1
                changed = apply_resolution(note, resolution) or changed
            return changed

        self.store.apply(path, mutate)
        logger.debug("resolved %s: %s", path, dict(counts))
