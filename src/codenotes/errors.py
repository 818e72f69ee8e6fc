"""Exceptions raised by the codenotes engine.

Orphaned anchors are not errors; they are reported as a resolution status.
"""

from typing import Any


class CodeNotesError(Exception):
    """Base exception for all codenotes errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class InvalidRange(CodeNotesError):
    """A line range with a negative bound or start > end."""

    def __init__(self, start: int, end: int, reason: str | None = None):
        message = reason or f"Invalid line range {start}-{end}"
        super().__init__(message, {"start": start, "end": end})
        self.start = start
        self.end = end


class NotFound(CodeNotesError):
    """A referenced note or file does not exist."""

    def __init__(self, what: str, key: str):
        super().__init__(f"{what} {key} not found", {"key": key})
        self.key = key


class IOFailure(CodeNotesError):
    """Persistence fault; wraps the underlying exception."""

    def __init__(self, message: str, cause: BaseException | None = None):
        details = {"cause": repr(cause)} if cause is not None else {}
        super().__init__(message, details)
        self.cause = cause


class InvalidTag(CodeNotesError):
    """A tag that is empty, too long, or contains a delimiter."""

    def __init__(self, tag: str, reason: str):
        super().__init__(f"Invalid tag {tag!r}: {reason}", {"tag": tag})
        self.tag = tag
        self.reason = reason
