"""Tests for the configuration module."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from editagent.config import (
    Config,
    clear_secret_cache,
    fetch_secret,
    get_config,
    get_user_data_dir,
    load_config,
    reset_config,
)
from editagent.config.loader import dict_to_config, env_overrides, load_yaml_file
from editagent.config.merge import deep_merge, merge_configs
from editagent.config.paths import (
    get_config_paths,
    get_project_config_path,
    get_user_config_path,
)
from editagent.config.schema import DEFAULT_DENIED_COMMANDS


class TestDeepMerge:
    """Test the deep merge algorithm."""

    def test_simple_override(self) -> None:
        assert deep_merge({"a": 1, "b": 2}, {"b": 3, "c": 4}) == {"a": 1, "b": 3, "c": 4}

    def test_nested_merge(self) -> None:
        base = {"llm": {"model": "gpt-5-mini", "max_tokens": 1000}}
        result = deep_merge(base, {"llm": {"max_tokens": 2000}})
        assert result["llm"] == {"model": "gpt-5-mini", "max_tokens": 2000}

    def test_none_does_not_override(self) -> None:
        assert deep_merge({"a": 1}, {"a": None}) == {"a": 1}

    def test_list_replaced_not_merged(self) -> None:
        assert deep_merge({"items": [1, 2, 3]}, {"items": [4]}) == {"items": [4]}

    def test_base_not_mutated(self) -> None:
        base = {"a": {"b": 1}}
        deep_merge(base, {"a": {"b": 2}})
        assert base == {"a": {"b": 1}}

    def test_merge_configs_later_wins(self) -> None:
        assert merge_configs({"a": 1}, {}, {"a": 2}, {"b": 3}) == {"a": 2, "b": 3}


class TestPaths:
    def test_user_config_respects_xdg(self, tmp_path) -> None:
        if sys.platform == "win32":
            pytest.skip("XDG paths are POSIX only")
        assert get_user_config_path() == tmp_path / "xdg-config" / "editagent" / "config.yaml"

    def test_project_config_path(self, tmp_path) -> None:
        assert get_project_config_path(tmp_path) == tmp_path / ".editagent" / "config.yaml"

    def test_project_path_is_last(self, tmp_path) -> None:
        paths = get_config_paths(tmp_path)
        assert paths[-1] == get_project_config_path(tmp_path)

    def test_data_dir_respects_xdg(self, tmp_path) -> None:
        if sys.platform == "win32":
            pytest.skip("XDG paths are POSIX only")
        assert get_user_data_dir() == tmp_path / "xdg-data" / "editagent"


class TestDictToConfig:
    def test_defaults(self) -> None:
        config = dict_to_config({})
        assert isinstance(config, Config)
        assert config.session.max_steps == 25
        assert config.tools.command_timeout == 30.0
        assert config.tools.stdout_limit == 2000
        assert config.tools.stderr_limit == 500
        assert config.tools.denied_commands == DEFAULT_DENIED_COMMANDS
        assert config.changes.backup_suffix == ".backup"
        assert config.llm.extended_reasoning is False
        assert config.llm.reasoning_budget == 10000

    def test_values_and_extra(self) -> None:
        config = dict_to_config(
            {
                "llm": {"model": "claude-sonnet-4.5", "extended_reasoning": True, "reasoning_budget": "high"},
                "session": {"max_steps": 5},
                "tools": {"denied_commands": ["git push*"]},
                "custom": {"x": 1},
            }
        )
        assert config.llm.model == "claude-sonnet-4.5"
        assert config.llm.extended_reasoning is True
        assert config.llm.reasoning_budget == "high"
        assert config.session.max_steps == 5
        assert config.tools.denied_commands == ["git push*"]
        assert config.extra == {"custom": {"x": 1}}


class TestLoading:
    def test_invalid_yaml_is_ignored(self, tmp_path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("llm: [unclosed", encoding="utf-8")
        assert load_yaml_file(path) == {}

    def test_missing_file(self, tmp_path) -> None:
        assert load_yaml_file(tmp_path / "missing.yaml") == {}

    def test_project_overrides_user(self, tmp_path) -> None:
        user_path = get_user_config_path()
        user_path.parent.mkdir(parents=True)
        user_path.write_text("llm:\n  model: gpt-5.1\nsession:\n  max_steps: 10\n", encoding="utf-8")

        project = tmp_path / "proj"
        project_config = get_project_config_path(project)
        project_config.parent.mkdir(parents=True)
        project_config.write_text("session:\n  max_steps: 3\n", encoding="utf-8")

        config = load_config(project)
        assert config.llm.model == "gpt-5.1"
        assert config.session.max_steps == 3

    def test_env_overrides_win(self, monkeypatch, tmp_path) -> None:
        monkeypatch.setenv("EDITAGENT_MODEL", "claude-haiku-4.5")
        monkeypatch.setenv("EDITAGENT_LOG", str(tmp_path / "agent.log"))
        assert env_overrides() == {
            "llm": {"model": "claude-haiku-4.5"},
            "logging": {"file": str(tmp_path / "agent.log")},
        }
        assert load_config().llm.model == "claude-haiku-4.5"

    def test_global_config_is_cached(self) -> None:
        first = get_config()
        assert get_config() is first
        reset_config()
        assert get_config() is not first

    def test_project_config_not_cached(self, tmp_path) -> None:
        assert load_config(tmp_path) is not load_config(tmp_path)


class TestSecrets:
    def test_environment_first(self, monkeypatch, tmp_path) -> None:
        Path(".env.secrets").write_text("OPENAI_API_KEY=from-file\n", encoding="utf-8")
        monkeypatch.setenv("OPENAI_API_KEY", "from-env")
        assert fetch_secret("OPENAI_API_KEY") == "from-env"

    def test_dotenv_file(self, monkeypatch) -> None:
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        Path(".env.secrets").write_text("ANTHROPIC_API_KEY=sk-ant-file\n", encoding="utf-8")
        clear_secret_cache()
        assert fetch_secret("ANTHROPIC_API_KEY") == "sk-ant-file"

    def test_default(self, monkeypatch) -> None:
        monkeypatch.delenv("NOPE_KEY", raising=False)
        assert fetch_secret("NOPE_KEY", "fallback") == "fallback"
