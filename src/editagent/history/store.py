"""Conversation persistence.

Conversations are stored one YAML file per conversation under a directory
keyed by a stable hash of the project path:

    <history dir>/chat/<project key>/<conversation id>.yaml

Each file holds ``id``, ``title``, ``timestamp`` (last save, ms since the
epoch) and ``messages``. Writes are atomic (temp file, then rename).
"""

from __future__ import annotations

import hashlib
import os
import re
from pathlib import Path

import yaml

from editagent.events import EventChannel, HistoryUpdatedEvent
from editagent.fsutil import write_text_atomic
from editagent.history.models import Conversation, now_ms
from editagent.logging import get_logger

log = get_logger("history")

_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")


def project_key(project_path: str | Path) -> str:
    """Stable key for a project path, independent of separators and case rules."""
    normalized = os.path.normcase(os.path.normpath(str(Path(project_path).expanduser().resolve())))
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16]


def _check_id(conversation_id: str) -> str:
    if not _ID_PATTERN.match(conversation_id) or conversation_id.startswith("."):
        raise ValueError(f"Invalid conversation id: {conversation_id!r}")
    return conversation_id


class HistoryStore:
    """CRUD over the conversations of one project."""

    def __init__(
        self,
        project_path: str | Path,
        base_dir: Path,
        channel: EventChannel | None = None,
    ) -> None:
        self._project_path = Path(project_path)
        self._directory = base_dir / "chat" / project_key(project_path)
        self._channel = channel

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, conversation_id: str) -> Path:
        return self._directory / f"{_check_id(conversation_id)}.yaml"

    def _load(self, path: Path) -> Conversation | None:
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
            if not isinstance(data, dict):
                raise ValueError("not a conversation record")
            return Conversation.from_record(data)
        except FileNotFoundError:
            return None
        except (OSError, yaml.YAMLError, KeyError, TypeError, ValueError) as e:
            log.warning("Skipping unreadable conversation %s: %s", path, e)
            return None

    def list_conversations(self) -> list[Conversation]:
        """All readable conversations, newest first."""
        if not self._directory.exists():
            return []
        conversations = [
            conversation
            for path in self._directory.glob("*.yaml")
            if (conversation := self._load(path)) is not None
        ]
        conversations.sort(key=lambda c: c.timestamp, reverse=True)
        return conversations

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        return self._load(self._path(conversation_id))

    async def save_conversation(self, conversation: Conversation) -> Path:
        """Persist ``conversation`` and refresh its timestamp.

        Raises:
            RuntimeError: The file could not be written.
        """
        path = self._path(conversation.id)
        conversation.timestamp = now_ms()
        text = yaml.safe_dump(
            conversation.to_record(),
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False,
        )
        try:
            write_text_atomic(path, text)
        except OSError as e:
            raise RuntimeError(f"Failed to save conversation: {e}") from e

        log.debug("Saved conversation %s to %s", conversation.id, path)
        await self._publish()
        return path

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation; returns False when it did not exist."""
        path = self._path(conversation_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        log.info("Deleted conversation %s", conversation_id)
        await self._publish()
        return True

    async def _publish(self) -> None:
        if self._channel is None:
            return
        await self._channel.publish(
            HistoryUpdatedEvent(conversations=[c.summary() for c in self.list_conversations()])
        )
