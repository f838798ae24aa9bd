"""Per-project sessions and the collaborator-facing commands.

One ProjectSession exists per project root. It owns the event channel,
change tracker, tool executor, history store and session controller of
that project; SessionManager creates them on first use and routes the
collaborator commands to the right one.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from editagent.changes import ChangeTracker, PendingChange, ResolutionResult
from editagent.config import Config, get_user_data_dir, load_config
from editagent.core.llm import ModelGateway
from editagent.events import EventChannel
from editagent.history import ChatMessage, Conversation, HistoryStore, project_key
from editagent.history.models import USER
from editagent.logging import get_logger
from editagent.session.controller import ProviderFactory, SessionController, TurnOutcome
from editagent.terminal import ShellExecutor
from editagent.tools import ToolExecutor

log = get_logger("session.manager")


@dataclass
class SubmitResult:
    """Answer to submit-message."""

    success: bool
    conversation_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success, "conversationId": self.conversation_id}
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_outcome(cls, outcome: TurnOutcome) -> SubmitResult:
        return cls(outcome.success, outcome.conversation_id, outcome.error)


class ProjectSession:
    """Everything bound to one project root."""

    def __init__(
        self,
        project_path: Path,
        config: Config,
        *,
        gateway: ModelGateway | None = None,
        history_dir: Path | None = None,
        shell: ShellExecutor | None = None,
        provider_factory: ProviderFactory | None = None,
        title_provider_factory: ProviderFactory | None = None,
    ) -> None:
        self.project_path = project_path
        self.config = config
        self.gateway = gateway or ModelGateway(config.llm)
        self.channel = EventChannel(config.server.queue_size)
        self.tracker = ChangeTracker(project_path, config.changes, self.channel)
        self.tools = ToolExecutor(project_path, self.tracker, config.tools, shell=shell)
        self.history = HistoryStore(
            project_path,
            history_dir or default_history_dir(config),
            self.channel,
        )
        if provider_factory is None:
            provider_factory = self.gateway.create_provider
            title_provider_factory = title_provider_factory or self.gateway.create_title_provider
        self.controller = SessionController(
            self.tools,
            self.history,
            self.channel,
            provider_factory,
            title_provider_factory=title_provider_factory,
            config=config.session,
        )

    @property
    def key(self) -> str:
        return project_key(self.project_path)

    def status(self) -> dict[str, Any]:
        conversation = self.controller.conversation
        return {
            "project": str(self.project_path),
            "state": self.controller.state.value,
            "conversationId": conversation.id if conversation else None,
            "pendingChanges": len(self.tracker.get_pending()),
            "subscribers": self.channel.subscriber_count,
        }

    async def close(self) -> None:
        self.controller.abort("closing")
        self.channel.close()


def default_history_dir(config: Config) -> Path:
    if config.history.dir:
        return Path(config.history.dir).expanduser()
    return get_user_data_dir() / "history"


def _to_message(item: ChatMessage | dict[str, Any]) -> ChatMessage:
    if isinstance(item, ChatMessage):
        return item
    return ChatMessage.from_dict(item)


class SessionManager:
    """Routes collaborator commands to per-project sessions.

    Args:
        config: Configuration for every project; when omitted each project
            loads its own layered config.
        gateway: Shared model gateway; by default each project builds one
            from its config.
        history_dir: Root of the conversation store.
        provider_factory: Overrides model provider construction (tests).
        shell: Overrides the shell executor (tests).
    """

    def __init__(
        self,
        config: Config | None = None,
        gateway: ModelGateway | None = None,
        history_dir: Path | None = None,
        provider_factory: ProviderFactory | None = None,
        shell: ShellExecutor | None = None,
    ) -> None:
        self._config = config
        self._gateway = gateway
        self._history_dir = history_dir
        self._provider_factory = provider_factory
        self._shell = shell
        self._sessions: dict[str, ProjectSession] = {}
        self._lock = asyncio.Lock()

    @property
    def gateway(self) -> ModelGateway:
        if self._gateway is None:
            self._gateway = ModelGateway((self._config or load_config()).llm)
        return self._gateway

    def list_sessions(self) -> list[ProjectSession]:
        return list(self._sessions.values())

    def get_session(self, project_path: str | Path) -> ProjectSession:
        """The session of a project, created on first use.

        Raises:
            ValueError: If ``project_path`` is not an existing directory.
        """
        path = Path(project_path).expanduser()
        if not path.is_dir():
            raise ValueError(f"Project directory not found: {project_path}")
        path = path.resolve()
        key = project_key(path)
        session = self._sessions.get(key)
        if session is None:
            config = self._config or load_config(path)
            session = ProjectSession(
                path,
                config,
                gateway=self._gateway,
                history_dir=self._history_dir,
                shell=self._shell,
                provider_factory=self._provider_factory,
            )
            self._sessions[key] = session
            log.info("Opened project session %s (%s)", path, key)
        return session

    def find_session(self, project_path: str | Path) -> ProjectSession | None:
        """The session of a project if one is open."""
        path = Path(project_path).expanduser()
        if not path.is_dir():
            return None
        return self._sessions.get(project_key(path.resolve()))

    async def submit_message(
        self,
        project_path: str | Path,
        messages: list[ChatMessage | dict[str, Any]],
        conversation_id: str | None = None,
    ) -> SubmitResult:
        """Run one turn for the last message of ``messages``.

        Waits for the turn to finish. A turn already running in the same
        project is aborted first.
        """
        try:
            session = self.get_session(project_path)
            transcript = [_to_message(m) for m in messages]
        except ValueError as e:
            return SubmitResult(False, conversation_id, str(e))
        if not transcript or transcript[-1].role != USER:
            return SubmitResult(False, conversation_id, "The last message must be a user message")

        last = transcript[-1]
        try:
            outcome = await session.controller.run_turn(
                last.content,
                conversation_id=conversation_id,
                prior_messages=transcript[:-1] or None,
            )
        except ValueError as e:
            return SubmitResult(False, conversation_id, str(e))
        return SubmitResult.from_outcome(outcome)

    def abort_session(self, project_path: str | Path | None = None) -> bool:
        """Abort the running turn of one project, or of every project."""
        if project_path is None:
            sessions = list(self._sessions.values())
        else:
            session = self.find_session(project_path)
            sessions = [session] if session else []
        aborted = False
        for session in sessions:
            aborted = session.controller.abort() or aborted
        return aborted

    def get_pending_changes(self, project_path: str | Path) -> list[PendingChange]:
        return self.get_session(project_path).tracker.get_pending()

    async def accept_pending_changes(
        self, project_path: str | Path, target: str | None = None
    ) -> ResolutionResult:
        """Accept one change (by id or path) or all of them."""
        tracker = self.get_session(project_path).tracker
        if target is None:
            return await tracker.accept_all()
        return ResolutionResult([await tracker.accept(target)])

    async def reject_pending_changes(
        self, project_path: str | Path, target: str | None = None
    ) -> ResolutionResult:
        """Reject one change (by id or path) or all of them."""
        tracker = self.get_session(project_path).tracker
        if target is None:
            return await tracker.reject_all()
        return ResolutionResult([await tracker.reject(target)])

    async def dismiss_pending_changes(
        self, project_path: str | Path, target: str | None = None
    ) -> ResolutionResult:
        """Dismiss one change (by id or path) or all of them."""
        tracker = self.get_session(project_path).tracker
        if target is None:
            return await tracker.dismiss_all()
        return ResolutionResult([await tracker.dismiss(target)])

    def list_conversations(self, project_path: str | Path) -> list[Conversation]:
        return self.get_session(project_path).history.list_conversations()

    def get_conversation(self, project_path: str | Path, conversation_id: str) -> Conversation | None:
        return self.get_session(project_path).history.get_conversation(conversation_id)

    async def delete_conversation(self, project_path: str | Path, conversation_id: str) -> bool:
        return await self.get_session(project_path).history.delete_conversation(conversation_id)

    async def close(self) -> None:
        """Abort running turns and close every event channel."""
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            await session.close()
