"""Shared test utilities for editagent tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Iterable
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any

from editagent.core.llm.provider import (
    CompletionResult,
    Message,
    ProviderEvent,
    TextDelta,
    ToolCallRequest,
    TurnFinished,
)
from editagent.events import EventModel, Subscription


class Abort:
    """Script marker: cancel the turn's token at this point of the stream."""


@dataclass
class ScriptedProvider:
    """Fake LLMProvider that replays one scripted list of events per step.

    A step may also be an exception instance, raised when the step starts.
    Once the script runs out, every further step answers ``repeat`` (or
    plain "done." text when no repeat is set).
    """

    steps: list[Any] = field(default_factory=list)
    repeat: list[Any] | None = None
    title: str = "Rename foo to bar"
    model: str = "scripted"
    contexts: list[list[Message]] = field(default_factory=list)
    title_prompts: list[str] = field(default_factory=list)
    closed_streams: int = 0

    async def complete(self, messages: list[Message], *, max_tokens: int = 4096) -> CompletionResult:
        self.title_prompts.append(messages[-1].content)
        return CompletionResult(content=self.title, finish_reason="stop")

    async def stream(
        self,
        messages: list[Message],
        *,
        tools: list[dict[str, Any]] | None = None,
        cancel: Any = None,
        max_tokens: int | None = None,
    ) -> AsyncGenerator[ProviderEvent, None]:
        self.contexts.append(list(messages))
        index = len(self.contexts) - 1
        if index < len(self.steps):
            step = self.steps[index]
        else:
            step = self.repeat if self.repeat is not None else [TextDelta("done.")]
        if isinstance(step, Exception):
            raise step

        try:
            for item in step:
                if isinstance(item, Abort):
                    cancel.cancel("test")
                    continue
                if cancel is not None and cancel.cancelled:
                    return
                await asyncio.sleep(0)
                yield item
            if cancel is None or not cancel.cancelled:
                yield TurnFinished("tool_calls" if any(isinstance(i, ToolCallRequest) for i in step) else "stop")
        finally:
            self.closed_streams += 1


def tool_call(call_id: str, name: str, **arguments: Any) -> ToolCallRequest:
    return ToolCallRequest(id=call_id, name=name, arguments=arguments)


async def collect(subscription: Subscription) -> list[EventModel]:
    """Close ``subscription`` and return everything it had queued."""
    subscription.close()
    return [event async for event in subscription]


def event_types(events: Iterable[EventModel], *, chunks_only: bool = True) -> list[str]:
    skip = {"pending-changes", "history-updated"} if chunks_only else set()
    return [e.type for e in events if e.type not in skip]


# ---------------------------------------------------------------------------
# LiteLLM streaming fakes
# ---------------------------------------------------------------------------


def make_tool_delta(
    index: int,
    call_id: str | None = None,
    name: str | None = None,
    arguments: str | None = None,
) -> SimpleNamespace:
    return SimpleNamespace(
        index=index,
        id=call_id,
        function=SimpleNamespace(name=name, arguments=arguments),
    )


def make_stream_chunk(
    content: str | None = None,
    reasoning: str | None = None,
    tool_calls: list[SimpleNamespace] | None = None,
    finish_reason: str | None = None,
) -> SimpleNamespace:
    """A LiteLLM streaming chunk with every delta field set explicitly."""
    delta = SimpleNamespace(content=content, reasoning_content=reasoning, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)])


async def stream_of(chunks: list[SimpleNamespace]) -> AsyncGenerator[SimpleNamespace, None]:
    for chunk in chunks:
        yield chunk


def make_completion(content: str = "Test response") -> SimpleNamespace:
    """A LiteLLM non-streaming response."""
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=20, total_tokens=30),
    )
