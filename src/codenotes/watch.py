"""Watch mode for codenotes - feeds workspace file events to the sync coordinator."""

import json
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .sync.coordinator import SyncCoordinator
from .sync.events import FileChange, FileDeleted, FileRenamed, NotesChanged, SyncFailed

logger = logging.getLogger(__name__)


class WorkspaceHandler(FileSystemEventHandler):
    """
    Turns file system events into coordinator inputs.

    Keeps the last seen text of every file so each change carries the
    previous snapshot; a file seen for the first time is submitted without
    one and gets reconciled instead of diffed.
    """

    def __init__(
        self,
        workspace: Path,
        coordinator: SyncCoordinator,
        ignore: list[str] | None = None,
    ):
        super().__init__()
        self.workspace = workspace
        self.coordinator = coordinator
        self.ignore = set(ignore or ())
        self.snapshots: dict[str, str] = {}

    def _should_skip(self, path: Path) -> bool:
        """Check if file should be skipped."""
        name = path.name

        # Skip hidden files
        if name.startswith("."):
            return True

        # Skip temp/swap files
        if name.endswith("~") or name.endswith((".swp", ".swx", ".tmp")) or name.startswith(".#"):
            return True

        return any(part in self.ignore for part in path.parts)

    def _relative(self, src: Any) -> str | None:
        """Workspace-relative POSIX path, None for files outside or skipped."""
        path = Path(src.decode() if isinstance(src, bytes) else str(src))
        try:
            rel = path.resolve().relative_to(self.workspace.resolve())
        except ValueError:
            return None
        if self._should_skip(rel):
            return None
        return rel.as_posix()

    def _read(self, rel: str) -> str | None:
        try:
            return (self.workspace / rel).read_text(encoding="utf-8", errors="replace")
        except OSError:
            return None

    def prime(self, paths: list[str]) -> None:
        """Record the current text of ``paths`` as their previous snapshots."""
        for rel in paths:
            text = self._read(rel)
            if text is not None:
                self.snapshots[rel] = text

    def _changed(self, rel: str) -> None:
        text = self._read(rel)
        if text is None:
            return
        previous = self.snapshots.get(rel)
        if text == previous:
            return
        self.snapshots[rel] = text
        logger.debug("change in %s (previous snapshot %s)", rel, "known" if previous is not None else "unknown")
        self.coordinator.submit(FileChange(rel, previous, text))

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle file creation."""
        if event.is_directory:
            return
        rel = self._relative(event.src_path)
        if rel:
            self._changed(rel)

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle file modification."""
        if event.is_directory:
            return
        rel = self._relative(event.src_path)
        if rel:
            self._changed(rel)

    def on_deleted(self, event: FileSystemEvent) -> None:
        """Handle file deletion."""
        if event.is_directory:
            return
        rel = self._relative(event.src_path)
        if rel:
            previous = self.snapshots.pop(rel, None)
            self.coordinator.submit(FileDeleted(rel, previous))

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle renames; an editor's save-via-temp-file is a modification."""
        if event.is_directory:
            return
        old = self._relative(event.src_path)
        new = self._relative(event.dest_path)
        if old and new:
            if old in self.snapshots:
                self.snapshots[new] = self.snapshots.pop(old)
            self.coordinator.rename(FileRenamed(old, new))
            self._changed(new)
        elif new:
            self._changed(new)
        elif old:
            previous = self.snapshots.pop(old, None)
            self.coordinator.submit(FileDeleted(old, previous))


def watch_workspace(rt: Any, quiet: bool = False, json_output: bool = False) -> int:
    """
    Watch the workspace and keep note anchors in sync until interrupted.

    Args:
        rt: Runtime instance
        quiet: Suppress output
        json_output: Output JSON events instead of human-readable

    Returns:
        Exit code
    """
    workspace: Path = rt.workspace
    if not workspace.exists():
        print(f"Error: Workspace not found: {workspace}", file=sys.stderr)
        return 1

    running = True

    def on_event(event: Any) -> None:
        if isinstance(event, NotesChanged):
            if json_output:
                print(json.dumps({"type": "notes_changed", "file": event.file_path}), flush=True)
            elif not quiet:
                notes = rt.query.notes_for_file(event.file_path)
                orphaned = sum(1 for n in notes if n.is_orphaned)
                print(f"Synced {event.file_path}: {len(notes)} notes, {orphaned} orphaned", flush=True)
        elif isinstance(event, SyncFailed):
            if json_output:
                print(json.dumps({
                    "type": "sync_failed",
                    "file": event.file_path,
                    "message": str(event.cause),
                }), flush=True)
            else:
                print(f"Error: sync failed for {event.file_path}: {event.cause}", file=sys.stderr, flush=True)

    unsubscribe = rt.bus.subscribe(on_event)

    # Set up signal handlers for graceful shutdown
    def signal_handler(signum: int, frame: Any) -> None:
        nonlocal running
        running = False
        if not quiet and not json_output:
            print("\nShutting down...", flush=True)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    handler = WorkspaceHandler(workspace, rt.coordinator, rt.config.watch.ignore)
    handler.prime(rt.store.file_paths())
    observer = Observer()
    observer.schedule(handler, str(workspace), recursive=True)

    if not quiet and not json_output:
        print(f"Watching {workspace} (debounce: {rt.coordinator.debounce_ms}ms)", flush=True)
        print("Press Ctrl+C to stop", flush=True)

    observer.start()

    try:
        while running:
            time.sleep(0.1)
    finally:
        # Resolve whatever is still pending before shutdown
        observer.stop()
        observer.join()
        rt.coordinator.flush()
        rt.coordinator.close()
        unsubscribe()

    if not quiet and not json_output:
        print("Watch stopped", flush=True)

    return 0
