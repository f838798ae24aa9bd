"""Pending change tracking with exact rollback."""

from editagent.changes.models import ChangeOutcome, ChangeType, PendingChange, ResolutionResult
from editagent.changes.tracker import BackupError, ChangeTracker

__all__ = [
    "BackupError",
    "ChangeOutcome",
    "ChangeTracker",
    "ChangeType",
    "PendingChange",
    "ResolutionResult",
]
