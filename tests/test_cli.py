"""Tests for the codenotes command line."""

import json
import sys
import tempfile
from pathlib import Path

import pytest

from codenotes.cli import main, parse_lines
from codenotes.core.model import LineRange
from codenotes.errors import InvalidRange

SOURCE = "\n".join(f"value_{i} = {i}" for i in range(10)) + "\n"


@pytest.fixture
def workspace():
    with tempfile.TemporaryDirectory() as tmpdir:
        ws = Path(tmpdir)
        (ws / "app.py").write_text(SOURCE)
        yield ws


def run(monkeypatch, capsys, workspace, *argv):
    monkeypatch.chdir(workspace)
    monkeypatch.setattr(sys, "argv", ["codenotes", "--workspace", str(workspace), *argv])
    with pytest.raises(SystemExit) as exc:
        main()
    out = capsys.readouterr()
    return exc.value.code, out.out, out.err


def test_parse_lines():
    assert parse_lines("12") == LineRange(11, 11)
    assert parse_lines("12-14") == LineRange(11, 13)
    with pytest.raises(InvalidRange):
        parse_lines("abc")
    with pytest.raises(InvalidRange):
        parse_lines("0")
    with pytest.raises(InvalidRange):
        parse_lines("5-3")


def test_add_list_show_remove(monkeypatch, capsys, workspace):
    code, out, _ = run(
        monkeypatch, capsys, workspace,
        "add", "app.py", "3-4", "-m", "Check these values", "--tags", "todo,math", "--author", "ann",
    )
    assert code == 0
    note_id = out.strip()

    code, out, _ = run(monkeypatch, capsys, workspace, "--json", "ls")
    assert code == 0
    listed = json.loads(out)
    assert listed["app.py"][0]["id"] == note_id
    assert listed["app.py"][0]["lines"] == "3-4"
    assert listed["app.py"][0]["tags"] == ["TODO", "math"]

    code, out, _ = run(monkeypatch, capsys, workspace, "show", note_id)
    assert code == 0
    assert "Check these values" in out
    assert "Author:   ann" in out

    code, out, _ = run(monkeypatch, capsys, workspace, "--json", "count")
    assert json.loads(out) == {"notes": 1, "files": 1}

    code, _, _ = run(monkeypatch, capsys, workspace, "rm", note_id, "--yes")
    assert code == 0
    code, _, err = run(monkeypatch, capsys, workspace, "show", note_id)
    assert code == 1
    assert "not found" in err


def test_add_out_of_range_fails(monkeypatch, capsys, workspace):
    code, _, err = run(monkeypatch, capsys, workspace, "add", "app.py", "9-20", "-m", "x", "--author", "a")
    assert code == 1
    assert "Error" in err


def test_edit_and_tags(monkeypatch, capsys, workspace):
    _, out, _ = run(monkeypatch, capsys, workspace, "add", "app.py", "1", "-m", "x", "--author", "a")
    note_id = out.strip()

    code, _, _ = run(monkeypatch, capsys, workspace, "edit", note_id, "-m", "y", "--tags", "perf")
    assert code == 0
    code, out, _ = run(monkeypatch, capsys, workspace, "tags")
    assert out.split() == ["1", "perf"]

    code, _, err = run(monkeypatch, capsys, workspace, "edit", note_id)
    assert code == 1


def test_check_reanchors_after_offline_edit(monkeypatch, capsys, workspace):
    _, out, _ = run(monkeypatch, capsys, workspace, "add", "app.py", "5", "-m", "x", "--author", "a")
    note_id = out.strip()
    (workspace / "app.py").write_text("# new header\n" + SOURCE)

    code, out, _ = run(monkeypatch, capsys, workspace, "--json", "check")
    assert code == 0
    assert json.loads(out) == {"app.py": {"shifted": 1}}

    _, out, _ = run(monkeypatch, capsys, workspace, "--json", "show", note_id)
    assert json.loads(out)["lines"] == "6"

    code, out, _ = run(monkeypatch, capsys, workspace, "--json", "check")
    assert json.loads(out) == {"app.py": {"shifted": 1}}
    _, out, _ = run(monkeypatch, capsys, workspace, "--json", "show", note_id)
    assert json.loads(out)["status"] == "shifted"
    assert json.loads(out)["lines"] == "6"


def test_check_strict_fails_on_orphans(monkeypatch, capsys, workspace):
    run(monkeypatch, capsys, workspace, "add", "app.py", "5", "-m", "x", "--author", "a")
    (workspace / "app.py").unlink()

    code, _, _ = run(monkeypatch, capsys, workspace, "check", "--strict")
    assert code == 1

    code, out, _ = run(monkeypatch, capsys, workspace, "ls", "--orphaned")
    assert "[orphaned]" in out


def test_version_flag(monkeypatch, capsys, workspace):
    code, out, _ = run(monkeypatch, capsys, workspace, "--version")
    assert code == 0
    assert "codenotes" in out
    assert "python" in out
    assert "platform" in out


def test_search_and_authors(monkeypatch, capsys, workspace):
    run(monkeypatch, capsys, workspace, "add", "app.py", "1", "-m", "Slow cache lookup", "--author", "ann")
    run(monkeypatch, capsys, workspace, "add", "app.py", "2", "-m", "Error E42 here", "--author", "bob",
        "--tags", "bug")

    code, out, _ = run(monkeypatch, capsys, workspace, "--json", "search", "cache")
    assert code == 0
    [hit] = json.loads(out)
    assert hit["content"] == "Slow cache lookup"
    assert 0 < hit["score"] <= 1

    code, out, _ = run(monkeypatch, capsys, workspace, "--json", "search", "--regex", r"e\d+", "--author", "bob")
    assert [h["author"] for h in json.loads(out)] == ["bob"]

    code, out, _ = run(monkeypatch, capsys, workspace, "--json", "search", "--file", "*.md")
    assert json.loads(out) == []

    code, _, err = run(monkeypatch, capsys, workspace, "search", "--regex", "(")
    assert code == 1
    assert "Error" in err

    code, out, _ = run(monkeypatch, capsys, workspace, "authors")
    assert out.split() == ["ann", "bob"]
