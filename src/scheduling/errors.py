"""
Error taxonomy for the review scheduling core.

Every failure the core can surface is one of these four. The scheduler
raises only InvalidArgument; the store translates sqlite3 failures into
Unavailable and stale writes into Conflict.
"""

from __future__ import annotations


class RecallError(Exception):
    """Base class for all scheduling/review errors."""


class InvalidArgument(RecallError, ValueError):
    """Malformed rating or non-finite prior scheduling values."""


class NotFound(RecallError, LookupError):
    """Referenced submission, user or schedule does not exist."""

    def __init__(self, kind: str, item_id: str | int):
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"{kind} not found: {item_id}")


class Conflict(RecallError):
    """A concurrent write changed the record between read and write."""

    def __init__(self, item_id: str | int, expected_version: int, actual_version: int | None = None):
        self.item_id = item_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stale write for {item_id}: expected version {expected_version}, "
            f"found {actual_version}"
        )


class Unavailable(RecallError):
    """The persistence collaborator failed (I/O, locked database, ...)."""
