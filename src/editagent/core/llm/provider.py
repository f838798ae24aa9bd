"""LLM provider protocol and the normalized types that cross it."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from editagent.core.cancellation import CancellationToken


class Role(Enum):
    """Message role in a conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True, slots=True)
class ToolCallRequest:
    """A tool invocation requested by the model, arguments already decoded."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Message:
    """A message sent to the provider.

    Assistant messages may carry ``tool_calls``; tool messages answer one of
    them through ``tool_call_id``.
    """

    role: Role
    content: str
    tool_calls: tuple[ToolCallRequest, ...] = ()
    tool_call_id: str | None = None
    name: str | None = None


# Provider stream events, one per normalized delta


@dataclass(frozen=True, slots=True)
class TextDelta:
    text: str


@dataclass(frozen=True, slots=True)
class ReasoningStart:
    pass


@dataclass(frozen=True, slots=True)
class ReasoningDelta:
    text: str


@dataclass(frozen=True, slots=True)
class ReasoningEnd:
    pass


@dataclass(frozen=True, slots=True)
class TurnFinished:
    finish_reason: str | None = None


ProviderEvent = TextDelta | ReasoningStart | ReasoningDelta | ReasoningEnd | ToolCallRequest | TurnFinished


@dataclass(slots=True)
class CompletionResult:
    """Result from a non-streaming completion."""

    content: str
    finish_reason: str | None = None
    usage: dict[str, int] = field(default_factory=dict)


@runtime_checkable
class LLMProvider(Protocol):
    """Streaming chat completion with tool calling."""

    @property
    def model(self) -> str: ...

    async def complete(
        self,
        messages: list[Message],
        *,
        max_tokens: int = 4096,
    ) -> CompletionResult: ...

    def stream(
        self,
        messages: list[Message],
        *,
        tools: list[dict[str, Any]] | None = None,
        cancel: CancellationToken | None = None,
        max_tokens: int | None = None,
    ) -> AsyncGenerator[ProviderEvent, None]:
        """Stream one model turn.

        Yields text and reasoning deltas as they arrive, then one
        ToolCallRequest per requested tool call, then TurnFinished. The
        stream stops early, without tool calls, once ``cancel`` fires.
        """
        ...
