"""Typed inputs and notifications of the synchronization layer."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Union

logger = logging.getLogger(__name__)


# -- file-change inputs --------------------------------------------------


@dataclass(frozen=True)
class FileChange:
    file_path: str
    previous_text: str | None  # None: previous snapshot unknown
    current_text: str


@dataclass(frozen=True)
class FileDeleted:
    file_path: str
    previous_text: str | None = None


@dataclass(frozen=True)
class FileRenamed:
    old_path: str
    new_path: str


# -- notifications -------------------------------------------------------


@dataclass(frozen=True)
class NotesChanged:
    file_path: str


@dataclass(frozen=True)
class SyncFailed:
    file_path: str
    cause: BaseException


Event = Union[NotesChanged, SyncFailed]
Listener = Callable[[Event], None]


class EventBus:
    """
    Publish/subscribe channel. Listeners run synchronously on the publishing
    thread; a failing listener is logged and does not stop the others.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[tuple[Listener, tuple[type, ...] | None]] = []

    def subscribe(self, listener: Listener, *types: type) -> Callable[[], None]:
        """Register ``listener`` (optionally only for ``types``); returns an unsubscribe function."""
        entry = (listener, types or None)
        with self._lock:
            self._listeners.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._listeners:
                    self._listeners.remove(entry)

        return unsubscribe

    def publish(self, event: Event) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener, types in listeners:
            if types is not None and not isinstance(event, types):
                continue
            try:
                listener(event)
            except Exception:
                logger.exception("listener %r failed on %r", listener, event)
