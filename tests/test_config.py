"""Tests for configuration loading."""

import os
import tempfile
from pathlib import Path

import pytest

from codenotes.config import DEFAULT_IGNORE, load_config


def test_load_config_defaults():
    """Test loading config with defaults when no file exists."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config = load_config(workspace=Path(tmpdir))

        assert config.storage.root == Path(tmpdir) / ".code-notes"
        assert config.sync.debounce_ms == 300
        assert config.anchor.similarity_threshold == 0.7
        assert config.anchor.search_radius == 50
        assert config.author.name == ""
        assert config.watch.ignore == DEFAULT_IGNORE
        assert config.ui.preview_length == 50


def test_load_config_from_file():
    """Test loading config from a file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "codenotes.toml"
        config_path.write_text("""
[storage]
dir = "notes-db"

[sync]
debounce_ms = 50

[anchor]
similarity_threshold = 0.85
search_radius = 10

[author]
name = "Ada"

[watch]
ignore = ["build"]

[ui]
preview_length = 20
auto_expand = true
""")

        config = load_config(config_path=config_path, workspace=Path(tmpdir))

        assert config.storage.root == Path(tmpdir) / "notes-db"
        assert config.sync.debounce_ms == 50
        assert config.anchor.similarity_threshold == 0.85
        assert config.anchor.search_radius == 10
        assert config.author.name == "Ada"
        assert config.watch.ignore == ["build"]
        assert config.ui.preview_length == 20
        assert config.ui.auto_expand is True


def test_load_config_search_cwd():
    """Test config search in current working directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        orig_cwd = os.getcwd()
        try:
            os.chdir(tmpdir)
            (Path(tmpdir) / "codenotes.toml").write_text("[sync]\ndebounce_ms = 5\n")

            config = load_config()
            assert config.sync.debounce_ms == 5
        finally:
            os.chdir(orig_cwd)


def test_load_config_search_workspace():
    """Test config search in the workspace directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        (Path(tmpdir) / "codenotes.toml").write_text("[author]\nname = \"ws\"\n")

        config = load_config(workspace=Path(tmpdir))
        assert config.author.name == "ws"


@pytest.mark.parametrize("body", [
    "[anchor]\nsimilarity_threshold = 0.0\n",
    "[anchor]\nsimilarity_threshold = 1.5\n",
    "[anchor]\nsearch_radius = -1\n",
    "[sync]\ndebounce_ms = -10\n",
])
def test_load_config_rejects_out_of_range(body):
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "codenotes.toml"
        config_path.write_text(body)

        with pytest.raises(ValueError):
            load_config(config_path=config_path)
