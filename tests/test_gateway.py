"""Tests for model resolution and extended reasoning options."""

from __future__ import annotations

import pytest

from editagent.config.schema import LLMConfig
from editagent.core.llm.catalog import load_catalog
from editagent.core.llm.gateway import ModelGateway, ReasoningOptions, budget_for, effort_for

API_KEY_VARS = ("ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GEMINI_API_KEY")


@pytest.fixture
def no_keys(monkeypatch):
    for var in API_KEY_VARS:
        monkeypatch.delenv(var, raising=False)


class TestCatalog:
    def test_default_model_in_catalog(self):
        catalog = load_catalog()
        assert catalog.default_model == "gpt-5-mini"
        assert catalog.find("gpt-5-mini") is not None

    def test_find_by_litellm_string(self):
        model = load_catalog().find("anthropic/claude-sonnet-4-5-20250929")
        assert model.id == "claude-sonnet-4.5"
        assert model.supports("thinking")


class TestResolve:
    def test_catalog_id(self):
        resolved = ModelGateway().resolve("claude-sonnet-4.5")
        assert resolved.litellm_model == "anthropic/claude-sonnet-4-5-20250929"
        assert resolved.provider == "anthropic"
        assert resolved.fallback is False

    def test_config_model_used_by_default(self):
        resolved = ModelGateway(LLMConfig(model="gemini-3-pro")).resolve()
        assert resolved.provider == "google"

    def test_default_when_unset(self):
        assert ModelGateway().resolve().id == "gpt-5-mini"

    def test_litellm_route_passes_through(self):
        resolved = ModelGateway().resolve("ollama/llama3")
        assert resolved.litellm_model == "ollama/llama3"
        assert resolved.provider == "ollama"
        assert resolved.capabilities == []

    def test_unknown_model_falls_back(self):
        resolved = ModelGateway().resolve("definitely-not-a-model")
        assert resolved.id == "gpt-5-mini"
        assert resolved.fallback is True


class TestReasoning:
    @pytest.mark.parametrize(
        "value,expected",
        [(None, 10000), (500, 1024), (32000, 32000), ("low", 2048), ("HIGH", 24000), ("4096", 4096), ("bogus", 10000)],
    )
    def test_budget_for(self, value, expected):
        assert budget_for(value) == expected

    @pytest.mark.parametrize(
        "value,expected",
        [("low", "low"), ("high", "high"), (1024, "low"), (10000, "medium"), (30000, "high"), (None, "medium")],
    )
    def test_effort_for(self, value, expected):
        assert effort_for(value) == expected

    def test_anthropic_gets_thinking_budget(self):
        gateway = ModelGateway()
        model = gateway.resolve("claude-sonnet-4.5")
        kwargs = gateway.reasoning_kwargs(model, ReasoningOptions(True, 10000))
        assert kwargs == {"thinking": {"type": "enabled", "budget_tokens": 10000}}

    def test_openai_gets_effort(self):
        gateway = ModelGateway()
        model = gateway.resolve("gpt-5.1")
        assert gateway.reasoning_kwargs(model, ReasoningOptions(True, "medium")) == {"reasoning_effort": "medium"}

    def test_disabled_sends_nothing(self):
        gateway = ModelGateway()
        model = gateway.resolve("claude-sonnet-4.5")
        assert gateway.reasoning_kwargs(model, ReasoningOptions(False, 10000)) == {}

    def test_model_without_thinking_sends_nothing(self):
        gateway = ModelGateway()
        model = gateway.resolve("ollama/llama3")
        assert gateway.reasoning_kwargs(model, ReasoningOptions(True, 10000)) == {}


class TestProviders:
    def test_create_provider_applies_config(self, no_keys, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
        gateway = ModelGateway(LLMConfig(model="claude-haiku-4.5", extended_reasoning=True, reasoning_budget="high"))
        provider = gateway.create_provider()
        assert provider.model == "anthropic/claude-haiku-4-5-20251015"
        assert provider.extra_kwargs == {"thinking": {"type": "enabled", "budget_tokens": 24000}}
        assert provider._api_key == "sk-test"

    def test_title_provider_never_reasons(self, no_keys):
        gateway = ModelGateway(LLMConfig(model="claude-haiku-4.5", extended_reasoning=True))
        assert gateway.create_title_provider().extra_kwargs == {}

    def test_list_models_availability(self, no_keys, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        models = {m["id"]: m for m in ModelGateway().list_models()}
        assert models["gpt-5-mini"]["available"] is True
        assert models["gpt-5-mini"]["default"] is True
        assert models["claude-sonnet-4.5"]["available"] is False
        assert "thinking" in models["claude-sonnet-4.5"]["capabilities"]

    def test_secret_from_dotenv_file(self, no_keys, tmp_path):
        (tmp_path / ".env.secrets").write_text("GEMINI_API_KEY=from-file\n")
        assert ModelGateway().api_key_for("google") == "from-file"
