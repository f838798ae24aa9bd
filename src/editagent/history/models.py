"""Conversation and message records."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

USER = "user"
ASSISTANT = "assistant"
SYSTEM = "system"

REASONING = "reasoning"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class ChatMessage:
    """One message of a persisted conversation.

    ``kind`` marks special assistant segments; ``"reasoning"`` holds a
    completed extended-reasoning block, which is kept for display and never
    replayed to the model.
    """

    role: str
    content: str
    created_at: int | None = None
    kind: str | None = None

    @property
    def is_reasoning(self) -> bool:
        return self.kind == REASONING

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.created_at is not None:
            data["createdAt"] = self.created_at
        if self.kind:
            data["kind"] = self.kind
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatMessage:
        role = data.get("role")
        if role not in (USER, ASSISTANT, SYSTEM):
            raise ValueError(f"Invalid message role: {role!r}")
        created = data.get("createdAt", data.get("created_at"))
        return cls(
            role=role,
            content=str(data.get("content") or ""),
            created_at=int(created) if isinstance(created, (int, float)) else None,
            kind=data.get("kind"),
        )


@dataclass
class Conversation:
    """An ordered list of messages under a stable id."""

    id: str
    title: str = ""
    created_at: int = field(default_factory=now_ms)
    timestamp: int = field(default_factory=now_ms)
    messages: list[ChatMessage] = field(default_factory=list)

    def to_record(self) -> dict[str, Any]:
        """The persisted shape: id, title, timestamp, messages."""
        return {
            "id": self.id,
            "title": self.title,
            "timestamp": self.timestamp,
            "messages": [m.to_dict() for m in self.messages],
        }

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "timestamp": self.timestamp,
            "messageCount": len(self.messages),
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> Conversation:
        messages = [ChatMessage.from_dict(m) for m in data.get("messages") or [] if isinstance(m, dict)]
        timestamp = int(data.get("timestamp") or now_ms())
        first = next((m.created_at for m in messages if m.created_at is not None), None)
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            created_at=first if first is not None else timestamp,
            timestamp=timestamp,
            messages=messages,
        )
