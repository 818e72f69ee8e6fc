"""codenotes - line-anchored notes that follow the code they annotate."""

__version__ = "0.1.0"
