"""Runtime wiring helper for CLI and API applications."""

import logging
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .adapters.author import GitAuthor
from .adapters.fs_store import FsNoteStore
from .adapters.idgen import HexId
from .adapters.yaml_codec import YamlNoteSetCodec
from .config import CodeNotesConfig, load_config
from .core.anchor import AnchorPolicy, apply_resolution, reconcile_anchors
from .core.diff import split_lines
from .core.model import LineRange, Note
from .core.utils import normalize_path
from .errors import InvalidRange, IOFailure
from .query import QueryFacade
from .sync.coordinator import SyncCoordinator
from .sync.events import EventBus, NotesChanged

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Container for all wired components."""
    workspace: Path
    store: FsNoteStore
    bus: EventBus
    coordinator: SyncCoordinator
    query: QueryFacade
    policy: AnchorPolicy
    config: CodeNotesConfig

    def relative(self, file_path: str | Path) -> str:
        """Workspace-relative key for a path given relative to cwd or absolute."""
        p = Path(file_path)
        if p.is_absolute():
            try:
                p = p.resolve().relative_to(self.workspace.resolve())
            except ValueError:
                pass
        return normalize_path(p)

    def read_text(self, file_path: str) -> str | None:
        """Current text of a workspace file, None if it does not exist."""
        p = self.workspace / file_path
        if not p.exists():
            return None
        try:
            return p.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise IOFailure(f"Failed to read {file_path}", e) from e

    def annotate(
        self,
        file_path: str,
        line_range: LineRange,
        content: str,
        author: str | None = None,
        tags: Any = None,
        category: Any = None,
    ) -> Note:
        """
        Create a note on the current text of ``file_path``, capturing the
        annotated lines as the note's snapshot.

        Raises:
            InvalidRange: malformed range, or one past the end of the file.
        """
        file_path = self.relative(file_path)
        line_range = LineRange.checked(line_range.start, line_range.end)
        text = self.read_text(file_path)
        snapshot = None
        if text is not None:
            lines = split_lines(text)
            if line_range.end >= len(lines):
                raise InvalidRange(
                    line_range.start,
                    line_range.end,
                    f"Line range end ({line_range.end}) exceeds document line count ({len(lines)})",
                )
            snapshot = lines[line_range.start:line_range.end + 1]
        return self.store.create(
            file_path, line_range, content,
            author=author, tags=tags, category=category, anchored_text=snapshot,
        )

    def check(self, file_path: str) -> Counter:
        """
        Reconcile the notes of one file against its text on disk and persist
        the outcome. Returns a count per status.
        """
        file_path = self.relative(file_path)
        text = self.read_text(file_path)
        counts: Counter = Counter()

        def mutate(notes: list[Note]) -> bool:
            changed = False
            for note_id, resolution in reconcile_anchors(text, notes, self.policy).items():
                note = next(n for n in notes if n.id == note_id)
                counts[resolution.status.value] += 1
                changed = apply_resolution(note, resolution) or changed
            return changed

        self.store.apply(file_path, mutate)
        logger.info("checked %s: %s", file_path, dict(counts))
        self.bus.publish(NotesChanged(file_path))
        return counts


def build_runtime(
    workspace: Path | None = None,
    config_path: Path | None = None,
) -> Runtime:
    """Build and wire all components for a workspace."""
    config = load_config(config_path=config_path, workspace=workspace)

    if workspace is None:
        workspace = config.storage.workspace
    config.storage.workspace = workspace

    bus = EventBus()
    author = GitAuthor(workspace, override=config.author.name or None)
    store = FsNoteStore(
        config.storage.root,
        YamlNoteSetCodec(),
        idgen=HexId(),
        author=author,
        bus=bus,
    )
    policy = AnchorPolicy(
        similarity_threshold=config.anchor.similarity_threshold,
        search_radius=config.anchor.search_radius,
    )
    coordinator = SyncCoordinator(store, bus, policy=policy, debounce_ms=config.sync.debounce_ms)

    return Runtime(
        workspace=workspace,
        store=store,
        bus=bus,
        coordinator=coordinator,
        query=QueryFacade(store),
        policy=policy,
        config=config,
    )
