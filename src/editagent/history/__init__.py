"""Conversation history: records, storage and titles."""

from editagent.history.models import ChatMessage, Conversation
from editagent.history.store import HistoryStore, project_key
from editagent.history.title import EMPTY_TITLE, FALLBACK_TITLE, generate_title

__all__ = [
    "ChatMessage",
    "Conversation",
    "EMPTY_TITLE",
    "FALLBACK_TITLE",
    "HistoryStore",
    "generate_title",
    "project_key",
]
