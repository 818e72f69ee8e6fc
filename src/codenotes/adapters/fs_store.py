"""
Filesystem note store: one YAML note set per annotated source file.

Layout::

    <workspace>/.code-notes/<sha1(file_path)[:16]>.yaml

Writes go to a temporary file in the same directory and are swapped in with
``os.replace``, so a crash mid-write leaves the previous set intact. Each
file path has its own lock; readers always receive copies.
"""

import hashlib
import logging
import os
import tempfile
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from ..core.anchor import content_hash
from ..core.model import AnchorStatus, HistoryEntry, LineRange, Note, NoteId, sort_key
from ..core.ports import AuthorProvider, IdGenerator, NoteSetCodec, NoteStore
from ..core.tags import normalize_tags, parse_category
from ..core.utils import normalize_path, utc_now
from ..errors import IOFailure, NotFound
from ..sync.events import EventBus, NotesChanged
from .idgen import UuidId

logger = logging.getLogger(__name__)

PATCH_KEYS = {"content", "tags", "category", "author", "line_range", "anchored_text"}

Signature = tuple[int, int, int] | None  # (inode, mtime_ns, size) of a note set file


class FsNoteStore(NoteStore):
    def __init__(
        self,
        root: Path,
        codec: NoteSetCodec,
        idgen: IdGenerator | None = None,
        author: AuthorProvider | None = None,
        bus: EventBus | None = None,
        clock: Callable[[], str] = utc_now,
    ):
        self.root = root
        self.codec = codec
        self.idgen = idgen or UuidId()
        self.author = author
        self.bus = bus
        self.clock = clock

        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}
        self._cache: dict[str, tuple[Signature, list[Note]]] = {}
        self._index: dict[NoteId, str] | None = None  # note id -> file path

    # -- paths and locks -------------------------------------------------

    def _path(self, file_path: str) -> Path:
        digest = hashlib.sha1(file_path.encode("utf-8")).hexdigest()[:16]
        return self.root / f"{digest}.yaml"

    def _lock(self, file_path: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(file_path)
            if lock is None:
                lock = self._locks[file_path] = threading.RLock()
            return lock

    # -- raw persistence -------------------------------------------------

    def _signature(self, p: Path) -> Signature:
        try:
            st = p.stat()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise IOFailure(f"Failed to stat note set {p.name}", e) from e
        return (st.st_ino, st.st_mtime_ns, st.st_size)

    def _read(self, file_path: str) -> list[Note]:
        """
        Notes for ``file_path``. Caller holds the lock.

        The cached set is reused only while the file on disk still has the
        signature it had when cached; another process writing the set
        forces a re-read.
        """
        p = self._path(file_path)
        signature = self._signature(p)
        cached = self._cache.get(file_path)
        if cached is not None and cached[0] == signature:
            return cached[1]
        if signature is None:
            notes: list[Note] = []
        else:
            try:
                stored_path, notes = self.codec.decode(p.read_text(encoding="utf-8"))
            except Exception as e:
                # any malformed record surfaces as a storage failure
                raise IOFailure(f"Failed to load notes for {file_path}", e) from e
            if stored_path != file_path:
                raise IOFailure(f"Note set {p.name} belongs to {stored_path}, not {file_path}")
        self._cache[file_path] = (signature, notes)
        return notes

    def _write(self, file_path: str, notes: list[Note]) -> None:
        """Crash-safe write, then cache swap. Caller holds the lock."""
        notes = sorted(notes, key=sort_key)
        p = self._path(file_path)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            if notes:
                text = self.codec.encode(file_path, notes)
                fd, tmp = tempfile.mkstemp(dir=self.root, prefix=f".{p.stem}.", suffix=".tmp")
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as f:
                        f.write(text)
                        f.flush()
                        os.fsync(f.fileno())
                    os.replace(tmp, p)
                except BaseException:
                    Path(tmp).unlink(missing_ok=True)
                    raise
            elif p.exists():
                p.unlink()
        except (OSError, yaml.YAMLError) as e:
            raise IOFailure(f"Failed to save notes for {file_path}", e) from e

        self._cache[file_path] = (self._signature(p), notes)
        with self._guard:
            index = self._index
            if index is not None:
                for nid in [nid for nid, fp in index.items() if fp == file_path]:
                    del index[nid]
                for note in notes:
                    index[note.id] = file_path
        logger.debug("saved %d notes for %s", len(notes), file_path)

    def _notify(self, file_path: str) -> None:
        if self.bus is not None:
            self.bus.publish(NotesChanged(file_path))

    # -- listing ---------------------------------------------------------

    def file_paths(self) -> list[str]:
        """All source paths that have a persisted note set."""
        if not self.root.exists():
            return []
        paths = set()
        for p in self.root.glob("*.yaml"):
            try:
                with p.open(encoding="utf-8") as f:
                    head = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise IOFailure(f"Failed to read note set {p.name}", e) from e
            if isinstance(head, dict) and "file" in head:
                paths.add(str(head["file"]))
        return sorted(paths)

    def _holds(self, file_path: str, note_id: NoteId) -> bool:
        with self._lock(file_path):
            return any(n.id == note_id for n in self._read(file_path))

    def _locate(self, note_id: NoteId) -> str:
        with self._guard:
            file_path = self._index.get(note_id) if self._index is not None else None
        if file_path is None or not self._holds(file_path, note_id):
            # missing or stale index: rescan once
            file_path = None
            index: dict[NoteId, str] = {}
            for fp in self.file_paths():
                with self._lock(fp):
                    for note in self._read(fp):
                        index[note.id] = fp
            with self._guard:
                self._index = index
            file_path = index.get(note_id)
        if file_path is None:
            raise NotFound("Note", note_id)
        return file_path

    # -- NoteStore -------------------------------------------------------

    def load(self, file_path: str) -> list[Note]:
        file_path = normalize_path(file_path)
        with self._lock(file_path):
            return [n.copy() for n in self._read(file_path)]

    def save(self, file_path: str, notes: list[Note]) -> None:
        file_path = normalize_path(file_path)
        for note in notes:
            LineRange.checked(note.line_range.start, note.line_range.end)
        with self._lock(file_path):
            self._read(file_path)
            self._write(file_path, [n.copy() for n in notes])

    def apply(self, file_path: str, mutator: Callable[[list[Note]], Any]) -> list[Note]:
        """
        Read-modify-write one file's set atomically.

        ``mutator`` receives working copies and edits them in place; when it
        returns False nothing is written. Returns copies of the stored set.
        """
        file_path = normalize_path(file_path)
        with self._lock(file_path):
            working = [n.copy() for n in self._read(file_path)]
            if mutator(working) is not False:
                self._write(file_path, working)
            return [n.copy() for n in self._read(file_path)]

    def create(
        self,
        file_path: str,
        line_range: LineRange,
        content: str,
        author: str | None = None,
        tags: Any = None,
        category: Any = None,
        anchored_text: list[str] | None = None,
    ) -> Note:
        file_path = normalize_path(file_path)
        line_range = LineRange.checked(line_range.start, line_range.end)
        tag_set = normalize_tags(tags)
        cat = parse_category(category)
        if author is None:
            author = self.author.author_name() if self.author else "Unknown User"
        content = content.strip()
        now = self.clock()
        snapshot = list(anchored_text or [])
        note = Note(
            id=self.idgen.new_id(),
            file_path=file_path,
            line_range=line_range,
            content=content,
            author=author,
            created_at=now,
            updated_at=now,
            tags=tag_set,
            category=cat,
            status=AnchorStatus.STABLE,
            anchored_text=snapshot,
            content_hash=content_hash(snapshot),
            history=[HistoryEntry("created", content, author, now)],
        )
        with self._lock(file_path):
            notes = self._read(file_path)
            self._write(file_path, notes + [note])
        logger.info("created note %s on %s:%s", note.id, file_path, line_range.display())
        self._notify(file_path)
        return note.copy()

    def update(self, note_id: NoteId, patch: dict[str, Any]) -> Note:
        unknown = set(patch) - PATCH_KEYS
        if unknown:
            raise ValueError(f"Unknown note fields: {', '.join(sorted(unknown))}")

        new_range = None
        if patch.get("line_range") is not None:
            rng = patch["line_range"]
            new_range = LineRange.checked(rng.start, rng.end)
        tag_set = normalize_tags(patch["tags"]) if "tags" in patch else None
        cat = parse_category(patch["category"]) if "category" in patch else None

        file_path = self._locate(note_id)
        with self._lock(file_path):
            notes = [n.copy() for n in self._read(file_path)]
            note = next((n for n in notes if n.id == note_id), None)
            if note is None:
                raise NotFound("Note", note_id)

            now = max(self.clock(), note.updated_at)
            if "author" in patch and patch["author"]:
                note.author = patch["author"]
            if "content" in patch:
                note.content = patch["content"].strip()
            if tag_set is not None:
                note.tags = tag_set
            if "category" in patch:
                note.category = cat
            if new_range is not None:
                note.line_range = new_range
                note.status = AnchorStatus.STABLE
                if patch.get("anchored_text") is not None:
                    note.anchored_text = list(patch["anchored_text"])
                    note.content_hash = content_hash(note.anchored_text)
            note.updated_at = now
            note.history.append(HistoryEntry("edited", note.content, note.author, now))
            self._write(file_path, notes)
        self._notify(file_path)
        return note.copy()

    def delete(self, note_id: NoteId) -> None:
        file_path = self._locate(note_id)
        with self._lock(file_path):
            notes = self._read(file_path)
            remaining = [n for n in notes if n.id != note_id]
            if len(remaining) == len(notes):
                raise NotFound("Note", note_id)
            self._write(file_path, remaining)
        logger.info("deleted note %s from %s", note_id, file_path)
        self._notify(file_path)

    def get(self, note_id: NoteId) -> Note:
        file_path = self._locate(note_id)
        with self._lock(file_path):
            for note in self._read(file_path):
                if note.id == note_id:
                    return note.copy()
        raise NotFound("Note", note_id)

    def all(self) -> dict[str, list[Note]]:
        out: dict[str, list[Note]] = {}
        for file_path in self.file_paths():
            with self._lock(file_path):
                notes = [n.copy() for n in self._read(file_path)]
            if notes:
                out[file_path] = notes
        return out

    def rename_file(self, old_path: str, new_path: str) -> int:
        """
        Move every note of ``old_path`` onto ``new_path``; returns the count.

        The new set is written before the old one is removed, so a failure
        can duplicate notes but never lose them.
        """
        old_path = normalize_path(old_path)
        new_path = normalize_path(new_path)
        if old_path == new_path:
            return 0
        first, second = sorted((old_path, new_path))
        with self._lock(first), self._lock(second):
            moving = [n.copy() for n in self._read(old_path)]
            if not moving:
                return 0
            for note in moving:
                note.file_path = new_path
            self._write(new_path, self._read(new_path) + moving)
            self._write(old_path, [])
        logger.info("moved %d notes from %s to %s", len(moving), old_path, new_path)
        return len(moving)
