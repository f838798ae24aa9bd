"""Streaming session controller: the step loop behind one project chat.

A turn runs ``idle -> running -> completed | aborted | errored -> idle``:

1. The user message is appended to the in-memory conversation and a fresh
   CancellationToken is created.
2. Up to ``max_steps`` times, one model turn is streamed with the full
   message context and the tool schemas. Text and reasoning deltas are
   published as they arrive; requested tool calls run sequentially after
   the stream ends, each announced with a ``tool-call`` chunk and answered
   with exactly one ``tool-result`` chunk.
3. The loop stops when the model requests no tools, the step ceiling is
   hit, or the token is cancelled (checked at every chunk boundary).
4. Completed and aborted turns are persisted and end with ``done``; a
   provider failure ends with a single ``error`` chunk, restores the
   conversation to its pre-turn state and persists nothing.

Only one turn runs at a time: submitting while a turn is running cancels
it and waits for it to wind down first. A submission that is itself
superseded while it waits ends as aborted without calling the model.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from collections.abc import Callable
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum

from editagent.config.schema import SessionConfig
from editagent.core.cancellation import CancellationToken
from editagent.core.llm.provider import (
    LLMProvider,
    Message,
    ReasoningDelta,
    ReasoningEnd,
    ReasoningStart,
    Role,
    TextDelta,
    ToolCallRequest,
)
from editagent.events import (
    DoneChunk,
    ErrorChunk,
    EventChannel,
    EventModel,
    ReasoningChunk,
    ReasoningEndChunk,
    ReasoningStartChunk,
    TextChunk,
    ToolCallChunk,
    ToolResultChunk,
)
from editagent.history import (
    EMPTY_TITLE,
    FALLBACK_TITLE,
    ChatMessage,
    Conversation,
    HistoryStore,
    generate_title,
)
from editagent.history.models import ASSISTANT, REASONING, SYSTEM, USER, now_ms
from editagent.logging import get_logger
from editagent.prompts import SYSTEM_PROMPT
from editagent.tools import ToolCall, ToolExecutor

log = get_logger("session")

ProviderFactory = Callable[[], LLMProvider]

_ROLES = {USER: Role.USER, ASSISTANT: Role.ASSISTANT, SYSTEM: Role.SYSTEM}


class SessionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"
    ERRORED = "errored"


@dataclass
class TurnOutcome:
    """How a turn ended."""

    state: SessionState
    conversation_id: str
    steps: int = 0
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.state is not SessionState.ERRORED


class ProviderFailure(Exception):
    """The model provider failed mid-turn."""


@dataclass
class _Turn:
    """Per-turn buffers, reset for every user message.

    ``text`` holds assistant text not yet written to the conversation; it is
    flushed when reasoning starts and at the end of every step so messages
    land in the order they were generated.
    """

    conversation: Conversation
    token: CancellationToken
    snapshot: list[ChatMessage]
    text: str = ""
    reasoning: str = ""
    in_reasoning: bool = False
    steps: int = 0


class SessionController:
    """Runs chat turns for one project.

    Args:
        tools: Executor for model tool calls.
        history: Store the conversation is persisted to after each turn.
        channel: Where chunks are published.
        provider_factory: Builds the provider for a turn; called once per
            turn so model and reasoning settings are picked up fresh.
        title_provider_factory: Builds the provider for title generation;
            defaults to ``provider_factory``.
        config: Step ceiling.
        system_prompt: Prepended to every model context.
    """

    def __init__(
        self,
        tools: ToolExecutor,
        history: HistoryStore,
        channel: EventChannel,
        provider_factory: ProviderFactory,
        title_provider_factory: ProviderFactory | None = None,
        config: SessionConfig | None = None,
        system_prompt: str = SYSTEM_PROMPT,
    ) -> None:
        self._tools = tools
        self._history = history
        self._channel = channel
        self._provider_factory = provider_factory
        self._title_provider_factory = title_provider_factory or provider_factory
        self._config = config or SessionConfig()
        self._system_prompt = system_prompt

        self._state = SessionState.IDLE
        self._last_outcome: TurnOutcome | None = None
        self._conversation: Conversation | None = None
        self._token: CancellationToken | None = None
        self._run_lock = asyncio.Lock()
        self._generation = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is SessionState.RUNNING

    @property
    def last_outcome(self) -> TurnOutcome | None:
        return self._last_outcome

    @property
    def conversation(self) -> Conversation | None:
        return self._conversation

    def abort(self, reason: str = "aborted") -> bool:
        """Signal the running turn to stop at its next chunk boundary."""
        if self._token is None or self._token.cancelled:
            return False
        log.info("Aborting turn of conversation %s", self._conversation.id if self._conversation else "?")
        self._token.cancel(reason)
        return True

    async def run_turn(
        self,
        content: str,
        *,
        conversation_id: str | None = None,
        prior_messages: list[ChatMessage] | None = None,
    ) -> TurnOutcome:
        """Process one user message to completion.

        Args:
            content: The new user message.
            conversation_id: Conversation to continue; a new one is created
                when omitted.
            prior_messages: Transcript before ``content``; when given it
                replaces the stored messages of the conversation.
        """
        # Abort-then-replace
        self._generation += 1
        generation = self._generation
        self.abort("replaced")
        async with self._run_lock:
            conversation = self._open_conversation(conversation_id)
            if prior_messages:
                conversation.messages = list(prior_messages)

            turn = _Turn(
                conversation=conversation,
                token=CancellationToken(),
                snapshot=list(conversation.messages),
            )
            if generation != self._generation:
                turn.token.cancel("replaced")
            self._token = turn.token
            conversation.messages.append(ChatMessage(USER, content, created_at=now_ms()))
            self._set_state(SessionState.RUNNING)

            try:
                outcome = await self._run(turn)
            finally:
                self._token = None
                self._set_state(SessionState.IDLE)
            self._last_outcome = outcome
            return outcome

    def _open_conversation(self, conversation_id: str | None) -> Conversation:
        current = self._conversation
        if conversation_id is None:
            conversation = Conversation(id=uuid.uuid4().hex)
        elif current is not None and current.id == conversation_id:
            conversation = current
        else:
            conversation = self._history.get_conversation(conversation_id) or Conversation(id=conversation_id)
        self._conversation = conversation
        return conversation

    def _set_state(self, state: SessionState) -> None:
        if state is not self._state:
            log.debug("Session state %s -> %s", self._state.value, state.value)
        self._state = state

    async def _emit(self, event: EventModel) -> None:
        await self._channel.publish(event)

    def _context(self, conversation: Conversation) -> list[Message]:
        messages = [Message(role=Role.SYSTEM, content=self._system_prompt)]
        for message in conversation.messages:
            if message.is_reasoning or not message.content:
                continue
            messages.append(Message(role=_ROLES.get(message.role, Role.USER), content=message.content))
        return messages

    async def _run(self, turn: _Turn) -> TurnOutcome:
        conversation = turn.conversation
        try:
            await self._loop(turn)
        except ProviderFailure as e:
            message = str(e.__cause__ or e) or e.__class__.__name__
            log.error("Provider failed in conversation %s: %s", conversation.id, message, exc_info=e.__cause__)
            conversation.messages = turn.snapshot
            self._set_state(SessionState.ERRORED)
            await self._emit(ErrorChunk(content=message))
            return TurnOutcome(SessionState.ERRORED, conversation.id, turn.steps, message)

        aborted = turn.token.cancelled

        try:
            await self._persist(conversation)
        except RuntimeError as e:
            log.error("Could not persist conversation %s: %s", conversation.id, e)
            self._set_state(SessionState.ERRORED)
            await self._emit(ErrorChunk(content=str(e)))
            return TurnOutcome(SessionState.ERRORED, conversation.id, turn.steps, str(e))

        state = SessionState.ABORTED if aborted else SessionState.COMPLETED
        self._set_state(state)
        await self._emit(DoneChunk(conversation_id=conversation.id))
        log.info(
            "Turn %s for conversation %s after %d step(s)", state.value, conversation.id, turn.steps
        )
        return TurnOutcome(state, conversation.id, turn.steps)

    async def _loop(self, turn: _Turn) -> None:
        if turn.token.cancelled:
            log.info("Turn for conversation %s was replaced before it started", turn.conversation.id)
            return
        try:
            provider = self._provider_factory()
        except Exception as e:
            raise ProviderFailure(str(e)) from e

        context = self._context(turn.conversation)
        schemas = self._tools.schemas()

        while turn.steps < self._config.max_steps:
            if turn.token.cancelled:
                return
            turn.steps += 1
            step_text, calls = await self._stream_step(provider, context, schemas, turn)

            if turn.token.cancelled or not calls:
                return

            context.append(Message(role=Role.ASSISTANT, content=step_text, tool_calls=tuple(calls)))
            for call in calls:
                if turn.token.cancelled:
                    return
                await self._run_tool(call, context)

        log.warning(
            "Conversation %s reached the step ceiling (%d)", turn.conversation.id, self._config.max_steps
        )

    async def _stream_step(
        self,
        provider: LLMProvider,
        context: list[Message],
        schemas: list[dict],
        turn: _Turn,
    ) -> tuple[str, list[ToolCallRequest]]:
        step_text = ""
        calls: list[ToolCallRequest] = []
        try:
            async with aclosing(provider.stream(context, tools=schemas, cancel=turn.token)) as stream:
                async for event in stream:
                    if isinstance(event, TextDelta):
                        if event.text:
                            step_text += event.text
                            turn.text += event.text
                            await self._emit(TextChunk(content=event.text))
                    elif isinstance(event, ReasoningStart):
                        self._flush_text(turn)
                        turn.reasoning = ""
                        turn.in_reasoning = True
                        await self._emit(ReasoningStartChunk())
                    elif isinstance(event, ReasoningDelta):
                        turn.reasoning += event.text
                        await self._emit(ReasoningChunk(content=event.text))
                    elif isinstance(event, ReasoningEnd):
                        await self._end_reasoning(turn)
                    elif isinstance(event, ToolCallRequest):
                        calls.append(event)

                    if turn.token.cancelled:
                        break
        except Exception as e:
            raise ProviderFailure(str(e)) from e

        if turn.in_reasoning:
            await self._end_reasoning(turn)
        self._flush_text(turn)
        return step_text, calls

    def _flush_text(self, turn: _Turn) -> None:
        if turn.text:
            turn.conversation.messages.append(ChatMessage(ASSISTANT, turn.text, created_at=now_ms()))
        turn.text = ""

    async def _end_reasoning(self, turn: _Turn) -> None:
        turn.in_reasoning = False
        await self._emit(ReasoningEndChunk())
        if turn.reasoning:
            turn.conversation.messages.append(
                ChatMessage(ASSISTANT, turn.reasoning, created_at=now_ms(), kind=REASONING)
            )
        turn.reasoning = ""

    async def _run_tool(self, call: ToolCallRequest, context: list[Message]) -> None:
        await self._emit(ToolCallChunk(id=call.id, name=call.name, args=call.arguments))
        result = await self._tools.execute(ToolCall(call.id, call.name, call.arguments))
        await self._emit(ToolResultChunk(id=call.id, name=call.name, result=result.result))
        context.append(
            Message(
                role=Role.TOOL,
                content=json.dumps(result.result, ensure_ascii=False, default=str),
                tool_call_id=call.id,
                name=call.name,
            )
        )

    async def _persist(self, conversation: Conversation) -> None:
        if not conversation.title:
            try:
                provider = self._title_provider_factory()
            except Exception as e:
                log.warning("No provider for title generation: %s", e)
                provider = None
            if provider is not None:
                conversation.title = await generate_title(conversation.messages, provider)
            else:
                conversation.title = generate_fallback_title(conversation)
        await self._history.save_conversation(conversation)


def generate_fallback_title(conversation: Conversation) -> str:
    has_user = any(m.role == USER for m in conversation.messages)
    return FALLBACK_TITLE if has_user else EMPTY_TITLE
