"""Short conversation titles from a separate model call."""

from __future__ import annotations

import re

from editagent.core.llm.provider import LLMProvider, Message, Role
from editagent.history.models import USER, ChatMessage
from editagent.logging import get_logger
from editagent.prompts import TITLE_PROMPT

log = get_logger("history")

FALLBACK_TITLE = "Conversation"
EMPTY_TITLE = "New Conversation"
MAX_TITLE_WORDS = 5
MAX_MESSAGE_CHARS = 500

_STRIP = "\"'`*#.:;!?,"


def clean_title(raw: str) -> str:
    """First line of the answer, without quotes or markup, cut to five words."""
    line = next((ln for ln in raw.strip().splitlines() if ln.strip()), "")
    line = re.sub(r"^(title)\s*:\s*", "", line.strip(), flags=re.IGNORECASE)
    words = [w.strip(_STRIP) for w in line.split()]
    return " ".join([w for w in words if w][:MAX_TITLE_WORDS])


async def generate_title(messages: list[ChatMessage], provider: LLMProvider) -> str:
    """Summarize the first user message into at most five words.

    Never raises: an empty conversation gets EMPTY_TITLE and any failure
    gets FALLBACK_TITLE.
    """
    first = next((m for m in messages if m.role == USER and m.content.strip()), None)
    if first is None:
        return EMPTY_TITLE

    prompt = TITLE_PROMPT.replace("{message}", first.content[:MAX_MESSAGE_CHARS])
    try:
        result = await provider.complete([Message(role=Role.USER, content=prompt)], max_tokens=50)
    except Exception as e:
        log.warning("Title generation failed: %s", e)
        return FALLBACK_TITLE

    title = clean_title(result.content)
    return title or FALLBACK_TITLE
