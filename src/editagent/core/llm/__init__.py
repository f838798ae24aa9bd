"""LLM access: provider protocol, LiteLLM implementation and model gateway."""

from editagent.core.llm.catalog import ModelCatalog, ModelConfig, ProviderConfig, load_catalog
from editagent.core.llm.gateway import ModelGateway, ReasoningOptions, ResolvedModel
from editagent.core.llm.litellm_provider import LiteLLMProvider
from editagent.core.llm.provider import (
    CompletionResult,
    LLMProvider,
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

__all__ = [
    "CompletionResult",
    "LLMProvider",
    "LiteLLMProvider",
    "Message",
    "ModelCatalog",
    "ModelConfig",
    "ModelGateway",
    "ProviderConfig",
    "ProviderEvent",
    "ReasoningDelta",
    "ReasoningEnd",
    "ReasoningOptions",
    "ReasoningStart",
    "ResolvedModel",
    "Role",
    "TextDelta",
    "ToolCallRequest",
    "TurnFinished",
    "load_catalog",
]
