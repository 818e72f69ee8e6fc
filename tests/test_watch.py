"""Tests for watch mode functionality."""

import tempfile
from pathlib import Path

import pytest
from watchdog.events import (
    DirModifiedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from codenotes.sync.events import FileChange, FileDeleted, FileRenamed
from codenotes.watch import WorkspaceHandler


class RecordingCoordinator:
    def __init__(self):
        self.submitted = []
        self.renamed = []

    def submit(self, change):
        self.submitted.append(change)

    def rename(self, event):
        self.renamed.append(event)
        return 0


@pytest.fixture
def workspace():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def handler(workspace):
    return WorkspaceHandler(workspace, RecordingCoordinator(), [".code-notes", "node_modules"])


def test_first_sighting_has_no_previous_text(workspace, handler):
    path = workspace / "app.py"
    path.write_text("a\n")

    handler.on_created(FileCreatedEvent(str(path)))

    assert handler.coordinator.submitted == [FileChange("app.py", None, "a\n")]


def test_modification_carries_previous_snapshot(workspace, handler):
    path = workspace / "src" / "app.py"
    path.parent.mkdir()
    path.write_text("a\n")
    handler.prime(["src/app.py"])

    path.write_text("b\n")
    handler.on_modified(FileModifiedEvent(str(path)))
    handler.on_modified(FileModifiedEvent(str(path)))

    assert handler.coordinator.submitted == [FileChange("src/app.py", "a\n", "b\n")]


def test_ignored_and_hidden_paths_are_skipped(workspace, handler):
    notes_dir = workspace / ".code-notes"
    notes_dir.mkdir()
    (notes_dir / "abc.yaml").write_text("x")
    modules = workspace / "node_modules"
    modules.mkdir()
    (modules / "lib.js").write_text("x")
    (workspace / ".env").write_text("x")
    (workspace / "app.py.swp").write_text("x")

    for p in [notes_dir / "abc.yaml", modules / "lib.js", workspace / ".env", workspace / "app.py.swp"]:
        handler.on_modified(FileModifiedEvent(str(p)))
    handler.on_modified(DirModifiedEvent(str(workspace)))

    assert handler.coordinator.submitted == []


def test_deletion(workspace, handler):
    path = workspace / "app.py"
    path.write_text("a\n")
    handler.prime(["app.py"])
    path.unlink()

    handler.on_deleted(FileDeletedEvent(str(path)))

    assert handler.coordinator.submitted == [FileDeleted("app.py", "a\n")]


def test_move_within_workspace_is_a_rename(workspace, handler):
    old = workspace / "old.py"
    new = workspace / "new.py"
    old.write_text("a\n")
    handler.prime(["old.py"])
    old.rename(new)

    handler.on_moved(FileMovedEvent(str(old), str(new)))

    assert handler.coordinator.renamed == [FileRenamed("old.py", "new.py")]
    assert handler.coordinator.submitted == []


def test_save_via_temp_file_is_a_modification(workspace, handler):
    target = workspace / "app.py"
    target.write_text("a\n")
    handler.prime(["app.py"])
    tmp = workspace / ".app.py.tmp"
    tmp.write_text("b\n")
    tmp.replace(target)

    handler.on_moved(FileMovedEvent(str(tmp), str(target)))

    assert handler.coordinator.renamed == []
    assert handler.coordinator.submitted == [FileChange("app.py", "a\n", "b\n")]


def test_move_out_of_workspace_is_a_deletion(workspace, handler):
    with tempfile.TemporaryDirectory() as elsewhere:
        src = workspace / "app.py"
        src.write_text("a\n")
        handler.prime(["app.py"])
        dest = Path(elsewhere) / "app.py"
        src.replace(dest)

        handler.on_moved(FileMovedEvent(str(src), str(dest)))

    assert handler.coordinator.submitted == [FileDeleted("app.py", "a\n")]
