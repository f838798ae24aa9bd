"""Core primitives shared by the session loop and the model layer."""

from editagent.core.cancellation import CancellationToken, CancelledByUser

__all__ = ["CancellationToken", "CancelledByUser"]
