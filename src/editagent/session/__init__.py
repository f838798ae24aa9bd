"""Chat sessions: the streaming step loop and per-project wiring."""

from editagent.session.controller import (
    ProviderFailure,
    SessionController,
    SessionState,
    TurnOutcome,
    generate_fallback_title,
)
from editagent.session.manager import ProjectSession, SessionManager, SubmitResult

__all__ = [
    "ProjectSession",
    "ProviderFailure",
    "SessionController",
    "SessionManager",
    "SessionState",
    "SubmitResult",
    "TurnOutcome",
    "generate_fallback_title",
]
