"""LiteLLM provider implementation.

Supports the catalog providers and anything else LiteLLM routes:
- Anthropic: "anthropic/claude-sonnet-4-5-20250929"
- OpenAI: "gpt-5-mini"
- Google: "gemini/gemini-3-pro-preview"
- Local: "ollama/llama3"

See https://docs.litellm.ai/docs/providers for the full list.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING, Any

import litellm

from editagent.core.llm.provider import (
    CompletionResult,
    Message,
    ProviderEvent,
    ReasoningDelta,
    ReasoningEnd,
    ReasoningStart,
    Role,
    TextDelta,
    ToolCallRequest,
    TurnFinished,
)
from editagent.logging import get_logger

if TYPE_CHECKING:
    from editagent.core.cancellation import CancellationToken

log = get_logger("llm")


def message_to_dict(message: Message) -> dict[str, Any]:
    """Convert a Message to the OpenAI-style dict LiteLLM expects."""
    data: dict[str, Any] = {"role": message.role.value, "content": message.content}
    if message.role is Role.ASSISTANT and message.tool_calls:
        data["content"] = message.content or None
        data["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
            }
            for call in message.tool_calls
        ]
    if message.role is Role.TOOL:
        data["tool_call_id"] = message.tool_call_id
        if message.name:
            data["name"] = message.name
    return data


def decode_arguments(raw: str) -> dict[str, Any]:
    """Decode streamed tool arguments; undecodable input is kept under ``_raw``."""
    if not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        log.warning("Tool arguments are not valid JSON: %.200s", raw)
        return {"_raw": raw}
    return value if isinstance(value, dict) else {"_raw": raw}


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


class LiteLLMProvider:
    """LLM provider using litellm for multi-provider support.

    Usage:
        provider = LiteLLMProvider("gpt-5-mini")
        provider = LiteLLMProvider(
            "anthropic/claude-sonnet-4-5-20250929",
            extra_kwargs={"thinking": {"type": "enabled", "budget_tokens": 10000}},
        )
    """

    def __init__(
        self,
        model: str,
        *,
        api_key: str | None = None,
        api_base: str | None = None,
        max_tokens: int | None = None,
        extra_kwargs: dict[str, Any] | None = None,
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._api_base = api_base
        self._max_tokens = max_tokens
        self._extra_kwargs = extra_kwargs or {}

    @property
    def model(self) -> str:
        return self._model

    @property
    def extra_kwargs(self) -> dict[str, Any]:
        return dict(self._extra_kwargs)

    def _build_kwargs(
        self,
        messages: list[Message],
        *,
        max_tokens: int | None,
        stream: bool,
        tools: list[dict[str, Any]] | None = None,
        extras: bool = True,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": [message_to_dict(m) for m in messages],
            "stream": stream,
            # Unsupported provider options are dropped instead of failing
            "drop_params": True,
        }
        if extras:
            kwargs.update(self._extra_kwargs)
        tokens = max_tokens or self._max_tokens
        if tokens:
            kwargs["max_tokens"] = tokens
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        if self._api_key:
            kwargs["api_key"] = self._api_key
        if self._api_base:
            kwargs["api_base"] = self._api_base
        return kwargs

    async def complete(
        self,
        messages: list[Message],
        *,
        max_tokens: int = 4096,
    ) -> CompletionResult:
        """Non-streaming completion without reasoning options (used for titles)."""
        kwargs = self._build_kwargs(messages, max_tokens=max_tokens, stream=False, extras=False)
        response = await litellm.acompletion(**kwargs)

        choice = response.choices[0]
        usage: dict[str, int] = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        return CompletionResult(
            content=_text(choice.message.content),
            finish_reason=choice.finish_reason,
            usage=usage,
        )

    async def stream(
        self,
        messages: list[Message],
        *,
        tools: list[dict[str, Any]] | None = None,
        cancel: CancellationToken | None = None,
        max_tokens: int | None = None,
    ) -> AsyncGenerator[ProviderEvent, None]:
        kwargs = self._build_kwargs(messages, max_tokens=max_tokens, stream=True, tools=tools)
        log.debug("Streaming %s with %d messages, %d tools", self._model, len(messages), len(tools or []))
        response = await litellm.acompletion(**kwargs)

        # Tool call fragments arrive keyed by index; names and arguments
        # are concatenated across chunks.
        partial_calls: dict[int, dict[str, str]] = {}
        in_reasoning = False
        finish_reason: str | None = None

        async for chunk in response:
            if cancel is not None and cancel.cancelled:
                log.debug("Stream for %s cancelled", self._model)
                if in_reasoning:
                    yield ReasoningEnd()
                return

            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            delta = choice.delta
            if choice.finish_reason:
                finish_reason = choice.finish_reason
            if delta is None:
                continue

            reasoning = _text(getattr(delta, "reasoning_content", None))
            if reasoning:
                if not in_reasoning:
                    in_reasoning = True
                    yield ReasoningStart()
                yield ReasoningDelta(reasoning)

            content = _text(getattr(delta, "content", None))
            tool_deltas = getattr(delta, "tool_calls", None) or []
            if (content or tool_deltas) and in_reasoning:
                in_reasoning = False
                yield ReasoningEnd()

            if content:
                yield TextDelta(content)

            for tool_delta in tool_deltas:
                index = tool_delta.index if isinstance(tool_delta.index, int) else len(partial_calls)
                part = partial_calls.setdefault(index, {"id": "", "name": "", "arguments": ""})
                if isinstance(tool_delta.id, str) and tool_delta.id:
                    part["id"] = tool_delta.id
                function = tool_delta.function
                if function is not None:
                    part["name"] += _text(function.name)
                    part["arguments"] += _text(function.arguments)

        if in_reasoning:
            yield ReasoningEnd()

        for index in sorted(partial_calls):
            part = partial_calls[index]
            yield ToolCallRequest(
                id=part["id"] or f"call_{uuid.uuid4().hex[:12]}",
                name=part["name"],
                arguments=decode_arguments(part["arguments"]),
            )

        yield TurnFinished(finish_reason)
