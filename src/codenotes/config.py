"""Configuration loader for codenotes.toml."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore

CONFIG_NAME = "codenotes.toml"

DEFAULT_IGNORE = [".git", ".code-notes", "node_modules", "__pycache__", ".venv"]


@dataclass
class StorageConfig:
    """Where note sets live."""
    workspace: Path
    dir: str = ".code-notes"

    @property
    def root(self) -> Path:
        return self.workspace / self.dir


@dataclass
class SyncConfig:
    """Debounce window for file-change bursts."""
    debounce_ms: int = 300


@dataclass
class AnchorConfig:
    """Content-matching fallback tuning."""
    similarity_threshold: float = 0.7
    search_radius: int = 50


@dataclass
class AuthorConfig:
    """Author override (empty: detect from git, then the OS user)."""
    name: str = ""


@dataclass
class WatchConfig:
    """Path components the watcher never reports."""
    ignore: list[str] = field(default_factory=lambda: list(DEFAULT_IGNORE))


@dataclass
class UIConfig:
    """Display-only settings; never affect anchoring."""
    preview_length: int = 50
    auto_expand: bool = False


@dataclass
class CodeNotesConfig:
    """Complete codenotes configuration."""
    storage: StorageConfig
    sync: SyncConfig
    anchor: AnchorConfig
    author: AuthorConfig
    watch: WatchConfig
    ui: UIConfig


def load_config(config_path: Path | None = None, workspace: Path | None = None) -> CodeNotesConfig:
    """
    Load configuration from codenotes.toml.

    Search order:
    1. config_path (if provided)
    2. cwd/codenotes.toml
    3. workspace/codenotes.toml

    Args:
        config_path: Explicit path to config file
        workspace: Workspace root for fallback search

    Returns:
        CodeNotesConfig with resolved settings

    Raises:
        ValueError: a setting is out of range
    """
    toml_data: dict[str, Any] = {}

    search_paths = []
    if config_path:
        search_paths.append(config_path)
    search_paths.append(Path.cwd() / CONFIG_NAME)
    if workspace:
        search_paths.append(workspace / CONFIG_NAME)

    for path in search_paths:
        if path.exists():
            with open(path, "rb") as f:
                toml_data = tomllib.load(f)
            break

    storage_data = toml_data.get("storage", {})
    storage_config = StorageConfig(
        workspace=Path(storage_data.get("workspace", workspace or Path("."))),
        dir=storage_data.get("dir", ".code-notes"),
    )

    sync_data = toml_data.get("sync", {})
    sync_config = SyncConfig(debounce_ms=int(sync_data.get("debounce_ms", 300)))
    if sync_config.debounce_ms < 0:
        raise ValueError("sync.debounce_ms must be >= 0")

    anchor_data = toml_data.get("anchor", {})
    anchor_config = AnchorConfig(
        similarity_threshold=float(anchor_data.get("similarity_threshold", 0.7)),
        search_radius=int(anchor_data.get("search_radius", 50)),
    )
    if not 0.0 < anchor_config.similarity_threshold <= 1.0:
        raise ValueError("anchor.similarity_threshold must be in (0, 1]")
    if anchor_config.search_radius < 0:
        raise ValueError("anchor.search_radius must be >= 0")

    author_data = toml_data.get("author", {})
    author_config = AuthorConfig(name=author_data.get("name", ""))

    watch_data = toml_data.get("watch", {})
    watch_config = WatchConfig(ignore=list(watch_data.get("ignore", DEFAULT_IGNORE)))

    ui_data = toml_data.get("ui", {})
    ui_config = UIConfig(
        preview_length=ui_data.get("preview_length", 50),
        auto_expand=ui_data.get("auto_expand", False),
    )

    return CodeNotesConfig(
        storage=storage_config,
        sync=sync_config,
        anchor=anchor_config,
        author=author_config,
        watch=watch_config,
        ui=ui_config,
    )
