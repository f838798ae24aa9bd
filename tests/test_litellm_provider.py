"""Tests for the LiteLLM provider's stream normalization."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from editagent.core.cancellation import CancellationToken
from editagent.core.llm.litellm_provider import LiteLLMProvider, decode_arguments, message_to_dict
from editagent.core.llm.provider import (
    Message,
    ReasoningDelta,
    ReasoningEnd,
    ReasoningStart,
    Role,
    TextDelta,
    ToolCallRequest,
    TurnFinished,
)
from tests.utils import make_completion, make_stream_chunk, make_tool_delta, stream_of

USER_MESSAGE = [Message(role=Role.USER, content="hi")]


async def drain(provider, chunks, **kwargs):
    mock = AsyncMock(return_value=stream_of(chunks))
    with patch("litellm.acompletion", mock):
        events = [event async for event in provider.stream(USER_MESSAGE, **kwargs)]
    return events, mock


class TestStream:
    @pytest.mark.asyncio
    async def test_text_deltas(self):
        events, mock = await drain(
            LiteLLMProvider("gpt-5-mini"),
            [make_stream_chunk("Hel"), make_stream_chunk("lo"), make_stream_chunk(finish_reason="stop")],
        )
        assert events == [TextDelta("Hel"), TextDelta("lo"), TurnFinished("stop")]
        kwargs = mock.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    async def test_reasoning_segment(self):
        events, _ = await drain(
            LiteLLMProvider("anthropic/claude-sonnet-4-5-20250929"),
            [
                make_stream_chunk(reasoning="Let me "),
                make_stream_chunk(reasoning="think."),
                make_stream_chunk("Answer"),
            ],
        )
        assert events == [
            ReasoningStart(),
            ReasoningDelta("Let me "),
            ReasoningDelta("think."),
            ReasoningEnd(),
            TextDelta("Answer"),
            TurnFinished(None),
        ]

    @pytest.mark.asyncio
    async def test_reasoning_closed_at_stream_end(self):
        events, _ = await drain(LiteLLMProvider("x"), [make_stream_chunk(reasoning="hmm")])
        assert events == [ReasoningStart(), ReasoningDelta("hmm"), ReasoningEnd(), TurnFinished(None)]

    @pytest.mark.asyncio
    async def test_tool_call_assembled_across_chunks(self):
        events, mock = await drain(
            LiteLLMProvider("gpt-5-mini"),
            [
                make_stream_chunk(tool_calls=[make_tool_delta(0, "call_1", "replace-", '{"path": ')]),
                make_stream_chunk(tool_calls=[make_tool_delta(0, None, "in-file", '"utils.js"}')]),
                make_stream_chunk(tool_calls=[make_tool_delta(1, "call_2", "read-file", "")]),
                make_stream_chunk(finish_reason="tool_calls"),
            ],
            tools=[{"type": "function", "function": {"name": "read-file"}}],
        )
        assert events == [
            ToolCallRequest("call_1", "replace-in-file", {"path": "utils.js"}),
            ToolCallRequest("call_2", "read-file", {}),
            TurnFinished("tool_calls"),
        ]
        assert mock.call_args.kwargs["tool_choice"] == "auto"

    @pytest.mark.asyncio
    async def test_invalid_arguments_kept_raw(self):
        events, _ = await drain(
            LiteLLMProvider("gpt-5-mini"),
            [make_stream_chunk(tool_calls=[make_tool_delta(0, "c", "read-file", "{oops")])],
        )
        assert events[0].arguments == {"_raw": "{oops"}

    @pytest.mark.asyncio
    async def test_cancel_stops_stream_without_tool_calls(self):
        token = CancellationToken()
        token.cancel()
        events, _ = await drain(
            LiteLLMProvider("gpt-5-mini"),
            [make_stream_chunk("a"), make_stream_chunk(tool_calls=[make_tool_delta(0, "c", "read-file", "{}")])],
            cancel=token,
        )
        assert events == []

    @pytest.mark.asyncio
    async def test_extra_kwargs_forwarded(self):
        provider = LiteLLMProvider(
            "gpt-5.1", api_key="sk-test", max_tokens=512, extra_kwargs={"reasoning_effort": "high"}
        )
        _, mock = await drain(provider, [make_stream_chunk("x")])
        kwargs = mock.call_args.kwargs
        assert kwargs["reasoning_effort"] == "high"
        assert kwargs["api_key"] == "sk-test"
        assert kwargs["max_tokens"] == 512
        assert kwargs["drop_params"] is True


class TestComplete:
    @pytest.mark.asyncio
    async def test_complete_omits_reasoning_options(self):
        provider = LiteLLMProvider("gpt-5.1", extra_kwargs={"reasoning_effort": "high"})
        mock = AsyncMock(return_value=make_completion("Fix the build"))
        with patch("litellm.acompletion", mock):
            result = await provider.complete(USER_MESSAGE, max_tokens=50)

        assert result.content == "Fix the build"
        assert result.usage["total_tokens"] == 30
        kwargs = mock.call_args.kwargs
        assert "reasoning_effort" not in kwargs
        assert kwargs["stream"] is False
        assert kwargs["max_tokens"] == 50


class TestMessageConversion:
    def test_assistant_with_tool_calls(self):
        call = ToolCallRequest("c1", "read-file", {"path": "a.js"})
        data = message_to_dict(Message(role=Role.ASSISTANT, content="", tool_calls=(call,)))
        assert data["content"] is None
        assert data["tool_calls"][0]["function"] == {"name": "read-file", "arguments": '{"path": "a.js"}'}

    def test_tool_result(self):
        data = message_to_dict(Message(role=Role.TOOL, content="{}", tool_call_id="c1", name="read-file"))
        assert data == {"role": "tool", "content": "{}", "tool_call_id": "c1", "name": "read-file"}

    @pytest.mark.parametrize("raw,expected", [("", {}), ("[1]", {"_raw": "[1]"}), ('{"a": 1}', {"a": 1})])
    def test_decode_arguments(self, raw, expected):
        assert decode_arguments(raw) == expected
