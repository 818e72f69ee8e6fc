"""Utility functions for codenotes."""

import os
from datetime import datetime, timezone
from pathlib import PurePosixPath


def utc_now() -> str:
    """
    Current UTC time as ISO 8601 with fixed microsecond precision, so that
    timestamps from one clock also sort correctly as strings.
    """
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def normalize_path(file_path: str | os.PathLike[str]) -> str:
    """
    Workspace-relative POSIX form used as a file's identity key.

    Examples:
        >>> normalize_path("./src\\\\app.py")
        'src/app.py'
    """
    path = PurePosixPath(str(file_path).replace("\\", "/")).as_posix()
    return path[2:] if path.startswith("./") else path
