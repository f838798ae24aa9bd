"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Environment variable overrides
- Global config caching
- Conversion from merged dict to the typed Config dataclass
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from editagent.config.merge import merge_configs
from editagent.config.paths import get_config_paths
from editagent.config.schema import (
    DEFAULT_DENIED_COMMANDS,
    DEFAULT_IGNORE_DIRS,
    ChangesConfig,
    Config,
    HistoryConfig,
    LLMConfig,
    LoggingConfig,
    ServerConfig,
    SessionConfig,
    ToolsConfig,
)

# The package logger may not be configured yet at import time
_log = logging.getLogger("editagent.config")

_cached_config: Config | None = None

_KNOWN_SECTIONS = {"llm", "session", "tools", "changes", "history", "logging", "server"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML mapping, returning an empty dict if missing or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def env_overrides() -> dict[str, Any]:
    """Config values taken from environment variables (highest priority).

    API keys are not read here; use fetch_secret() for those.
    """
    overrides: dict[str, Any] = {}

    log_path = os.environ.get("EDITAGENT_LOG")
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    model = os.environ.get("EDITAGENT_MODEL")
    if model:
        overrides.setdefault("llm", {})["model"] = model

    provider = os.environ.get("EDITAGENT_PROVIDER")
    if provider:
        overrides.setdefault("llm", {})["provider"] = provider

    return overrides


def _str_list(value: Any, default: list[str]) -> list[str]:
    if not isinstance(value, list):
        return list(default)
    return [v for v in value if isinstance(v, str)]


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert a merged config dict to the typed Config dataclass."""
    llm_data = data.get("llm") or {}
    llm = LLMConfig(
        provider=llm_data.get("provider"),
        model=llm_data.get("model"),
        api_base=llm_data.get("api_base"),
        max_tokens=llm_data.get("max_tokens"),
        extended_reasoning=bool(llm_data.get("extended_reasoning", False)),
        reasoning_budget=llm_data.get("reasoning_budget", 10000),
        title_model=llm_data.get("title_model"),
    )

    session_data = data.get("session") or {}
    session = SessionConfig(
        max_steps=int(session_data.get("max_steps", 25)),
    )

    tools_data = data.get("tools") or {}
    tools = ToolsConfig(
        command_timeout=float(tools_data.get("command_timeout", 30.0)),
        max_command_timeout=float(tools_data.get("max_command_timeout", 120.0)),
        stdout_limit=int(tools_data.get("stdout_limit", 2000)),
        stderr_limit=int(tools_data.get("stderr_limit", 500)),
        denied_commands=_str_list(tools_data.get("denied_commands"), DEFAULT_DENIED_COMMANDS),
        ignore_dirs=_str_list(tools_data.get("ignore_dirs"), DEFAULT_IGNORE_DIRS),
        allow_outside_project=bool(tools_data.get("allow_outside_project", False)),
        max_search_results=int(tools_data.get("max_search_results", 20)),
        max_matches_per_file=int(tools_data.get("max_matches_per_file", 5)),
        max_file_size=int(tools_data.get("max_file_size", 1_000_000)),
        large_file_threshold=int(tools_data.get("large_file_threshold", 50_000)),
    )

    changes_data = data.get("changes") or {}
    changes = ChangesConfig(
        backup_suffix=changes_data.get("backup_suffix") or ".backup",
        dismiss_removes_backups=bool(changes_data.get("dismiss_removes_backups", True)),
    )

    history_data = data.get("history") or {}
    history = HistoryConfig(dir=history_data.get("dir"))

    log_data = data.get("logging") or {}
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=log_data.get("verbose"),
        file=log_data.get("file"),
    )

    server_data = data.get("server") or {}
    server = ServerConfig(
        host=server_data.get("host", "127.0.0.1"),
        port=int(server_data.get("port", 8765)),
        queue_size=int(server_data.get("queue_size", 256)),
    )

    extra = {k: v for k, v in data.items() if k not in _KNOWN_SECTIONS}

    return Config(
        llm=llm,
        session=session,
        tools=tools,
        changes=changes,
        history=history,
        logging=logging_config,
        server=server,
        extra=extra,
    )


def load_config(project_root: str | Path | None = None, reload: bool = False) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables
    2. Project config (<project>/.editagent/config.yaml)
    3. User config
    4. System config

    Only the global (project-less) config is cached.
    """
    global _cached_config

    if _cached_config is not None and not reload and project_root is None:
        return _cached_config

    configs: list[dict[str, Any]] = []
    for path in get_config_paths(project_root):
        config_data = load_yaml_file(path)
        if config_data:
            _log.debug("Loaded config from %s", path)
            configs.append(config_data)

    env_config = env_overrides()
    if env_config:
        configs.append(env_config)

    config = dict_to_config(merge_configs(*configs))

    if project_root is None:
        _cached_config = config

    return config


def get_config() -> Config:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Drop the cached config so the next get_config() reloads."""
    global _cached_config
    _cached_config = None
