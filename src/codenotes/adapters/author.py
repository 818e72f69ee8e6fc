import getpass
import logging
import subprocess
from pathlib import Path

from ..core.ports import AuthorProvider

logger = logging.getLogger(__name__)

UNKNOWN_AUTHOR = "Unknown User"


class GitAuthor(AuthorProvider):
    """
    Author name for new notes.

    Order of precedence: configured override, ``git config user.name`` run in
    the workspace, the OS login name, ``"Unknown User"``. The detected name is
    cached until :meth:`clear_cache`.
    """

    def __init__(self, workspace: Path, override: str | None = None, timeout: float = 5.0):
        self.workspace = workspace
        self.override = override
        self.timeout = timeout
        self._cached: str | None = None

    def author_name(self) -> str:
        if self.override and self.override.strip():
            return self.override.strip()
        if self._cached is None:
            self._cached = self._git_user() or self._system_user() or UNKNOWN_AUTHOR
        return self._cached

    def clear_cache(self) -> None:
        self._cached = None

    def _git_user(self) -> str | None:
        try:
            result = subprocess.run(
                ["git", "config", "user.name"],
                cwd=self.workspace,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.SubprocessError) as e:
            # git missing or hung: fall back to the system user
            logger.debug("git user lookup failed: %s", e)
            return None
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def _system_user(self) -> str | None:
        try:
            return getpass.getuser() or None
        except (KeyError, OSError):
            return None
