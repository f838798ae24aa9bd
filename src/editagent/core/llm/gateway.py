"""Model gateway: resolve a model choice and build a provider for it.

The gateway owns two decisions:

1. Which model to call. Catalog ids and LiteLLM model strings resolve
   directly; unknown identifiers fall back to the catalog default
   (``gpt-5-mini``).
2. Which extended-reasoning options to send. The normalized
   ``ReasoningOptions(enabled, effort_or_budget)`` is translated per provider
   and is only applied when the user setting and the model's ``thinking``
   capability agree:

   - anthropic, google: ``thinking={"type": "enabled", "budget_tokens": N}``
   - openai: ``reasoning_effort="low" | "medium" | "high"``
   - anything else: omitted
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from editagent.config.schema import LLMConfig
from editagent.config.secrets import fetch_secret
from editagent.core.llm.catalog import ModelCatalog, ModelConfig, load_catalog
from editagent.core.llm.litellm_provider import LiteLLMProvider
from editagent.logging import get_logger

log = get_logger("llm")

EFFORT_BUDGETS = {"low": 2048, "medium": 10000, "high": 24000}
MIN_BUDGET = 1024


@dataclass(frozen=True)
class ReasoningOptions:
    """Provider-neutral extended reasoning request."""

    enabled: bool = False
    effort_or_budget: int | str | None = None

    @classmethod
    def from_config(cls, config: LLMConfig) -> ReasoningOptions:
        return cls(enabled=config.extended_reasoning, effort_or_budget=config.reasoning_budget)


@dataclass
class ResolvedModel:
    """The model a session will actually call."""

    id: str
    litellm_model: str
    provider: str
    name: str
    capabilities: list[str] = field(default_factory=list)
    fallback: bool = False  # True when the requested id was unknown

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities

    @classmethod
    def from_model(cls, model: ModelConfig, fallback: bool = False) -> ResolvedModel:
        return cls(
            id=model.id,
            litellm_model=model.litellm_model,
            provider=model.provider,
            name=model.name,
            capabilities=list(model.capabilities),
            fallback=fallback,
        )


def budget_for(value: int | str | None) -> int:
    if isinstance(value, bool):
        return EFFORT_BUDGETS["medium"]
    if isinstance(value, int):
        return max(MIN_BUDGET, value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text.isdigit():
            return max(MIN_BUDGET, int(text))
        return EFFORT_BUDGETS.get(text, EFFORT_BUDGETS["medium"])
    return EFFORT_BUDGETS["medium"]


def effort_for(value: int | str | None) -> str:
    if isinstance(value, str) and value.strip().lower() in EFFORT_BUDGETS:
        return value.strip().lower()
    if isinstance(value, (int, str)) and not isinstance(value, bool):
        budget = budget_for(value)
        if budget <= EFFORT_BUDGETS["low"]:
            return "low"
        if budget < EFFORT_BUDGETS["high"]:
            return "medium"
        return "high"
    return "medium"


class ModelGateway:
    """Resolves configured model choices to streaming providers."""

    def __init__(self, config: LLMConfig | None = None, catalog: ModelCatalog | None = None) -> None:
        self._config = config or LLMConfig()
        self._catalog = catalog or load_catalog()

    @property
    def catalog(self) -> ModelCatalog:
        return self._catalog

    @property
    def default_model(self) -> str:
        return self._catalog.default_model

    def resolve(self, model_id: str | None = None, provider: str | None = None) -> ResolvedModel:
        """Resolve a model identifier, falling back to the default model."""
        model_id = model_id or self._config.model or self.default_model
        provider = provider or self._config.provider

        model = self._catalog.find(model_id, provider) or self._catalog.find(model_id)
        if model is not None:
            return ResolvedModel.from_model(model)

        # Explicit LiteLLM routes ("ollama/llama3") pass through untouched
        if "/" in model_id:
            prefix = model_id.split("/", 1)[0]
            return ResolvedModel(id=model_id, litellm_model=model_id, provider=prefix, name=model_id)

        default = self._catalog.find(self.default_model)
        if default is None:
            raise LookupError(f"Default model {self.default_model!r} is not in the catalog")
        log.warning("Unknown model %r (provider %r); using %s", model_id, provider, default.id)
        return ResolvedModel.from_model(default, fallback=True)

    def reasoning_kwargs(self, model: ResolvedModel, options: ReasoningOptions) -> dict[str, Any]:
        """Provider-specific reasoning parameters, or {} when not applicable."""
        if not options.enabled:
            return {}
        if not model.supports("thinking"):
            log.debug("Model %s has no thinking capability; reasoning option ignored", model.id)
            return {}

        provider_config = self._catalog.providers.get(model.provider)
        style = provider_config.reasoning if provider_config else None
        if style == "budget":
            return {"thinking": {"type": "enabled", "budget_tokens": budget_for(options.effort_or_budget)}}
        if style == "effort":
            return {"reasoning_effort": effort_for(options.effort_or_budget)}
        return {}

    def api_key_for(self, provider: str) -> str | None:
        provider_config = self._catalog.providers.get(provider)
        if provider_config is None or not provider_config.env_var:
            return None
        return fetch_secret(provider_config.env_var)

    def create_provider(
        self,
        model_id: str | None = None,
        provider: str | None = None,
        reasoning: ReasoningOptions | None = None,
    ) -> LiteLLMProvider:
        """Build a provider for the resolved model with its reasoning options."""
        resolved = self.resolve(model_id, provider)
        options = reasoning if reasoning is not None else ReasoningOptions.from_config(self._config)
        extra = self.reasoning_kwargs(resolved, options)
        if extra:
            log.info("Extended reasoning enabled for %s: %s", resolved.id, extra)
        return LiteLLMProvider(
            resolved.litellm_model,
            api_key=self.api_key_for(resolved.provider),
            api_base=self._config.api_base,
            max_tokens=self._config.max_tokens,
            extra_kwargs=extra,
        )

    def create_title_provider(self) -> LiteLLMProvider:
        """Provider for title generation; never uses reasoning options."""
        return self.create_provider(
            self._config.title_model or self._config.model,
            reasoning=ReasoningOptions(enabled=False),
        )

    def list_models(self) -> list[dict[str, Any]]:
        """Catalog entries with availability (API key present)."""
        result = []
        for model in self._catalog.models():
            result.append(
                {
                    "id": model.id,
                    "name": model.name,
                    "provider": model.provider,
                    "description": model.description,
                    "context_length": model.context_length,
                    "input_price": model.input_price,
                    "output_price": model.output_price,
                    "capabilities": list(model.capabilities),
                    "available": self.api_key_for(model.provider) is not None,
                    "default": model.id == self.default_model,
                }
            )
        return result
