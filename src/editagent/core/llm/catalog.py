"""Model catalog loaded from models.yaml package data."""

from __future__ import annotations

import importlib.resources
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

import yaml


@dataclass
class ModelConfig:
    """One selectable model."""

    id: str
    name: str
    provider: str
    litellm_model: str
    description: str = ""
    context_length: int = 0
    input_price: float | None = None
    output_price: float | None = None
    capabilities: list[str] = field(default_factory=list)  # tool_use, thinking

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities


@dataclass
class ProviderConfig:
    """A provider, its API key variable and its reasoning option style."""

    name: str
    env_var: str | None
    reasoning: str | None = None  # "budget", "effort", or None
    models: list[ModelConfig] = field(default_factory=list)


@dataclass
class ModelCatalog:
    providers: dict[str, ProviderConfig]
    default_model: str

    def models(self) -> list[ModelConfig]:
        return [m for p in self.providers.values() for m in p.models]

    def find(self, model_id: str, provider: str | None = None) -> ModelConfig | None:
        """Look a model up by catalog id or LiteLLM model string."""
        for model in self.models():
            if provider and model.provider != provider:
                continue
            if model_id in (model.id, model.litellm_model):
                return model
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelCatalog:
        providers: dict[str, ProviderConfig] = {}
        for provider_name, provider_data in (data.get("providers") or {}).items():
            providers[provider_name] = ProviderConfig(
                name=provider_name,
                env_var=provider_data.get("env_var"),
                reasoning=provider_data.get("reasoning"),
                models=[
                    ModelConfig(
                        id=m["id"],
                        name=m.get("name", m["id"]),
                        provider=provider_name,
                        litellm_model=m.get("litellm_model", m["id"]),
                        description=m.get("description", ""),
                        context_length=m.get("context_length", 0),
                        input_price=m.get("input_price"),
                        output_price=m.get("output_price"),
                        capabilities=list(m.get("capabilities", [])),
                    )
                    for m in provider_data.get("models", [])
                ],
            )
        return cls(providers=providers, default_model=data.get("default_model", "gpt-5-mini"))


@lru_cache(maxsize=1)
def _load_models_yaml() -> dict[str, Any]:
    files = importlib.resources.files("editagent.core.llm")
    with importlib.resources.as_file(files.joinpath("models.yaml")) as path:
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f) or {}


def load_catalog() -> ModelCatalog:
    """The packaged model catalog."""
    return ModelCatalog.from_dict(_load_models_yaml())
