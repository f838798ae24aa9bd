"""Configuration schema dataclasses for EditAgent.

Defines the structure of configuration at all levels (system, user, project).
Every field has a default so partial configs merge together.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_DENIED_COMMANDS = [
    "rm -rf /",
    "rm -rf ~",
    "sudo",
    "mkfs",
    "dd if=",
    ":(){ :|:& };:",
    "shutdown",
    "reboot",
    "chmod -R 777 /",
]

DEFAULT_IGNORE_DIRS = [
    ".git",
    "node_modules",
    "dist",
    "build",
    ".next",
    "__pycache__",
    ".venv",
    ".editagent",
]


@dataclass
class LLMConfig:
    """Model selection and extended reasoning settings."""

    provider: str | None = None  # e.g. "anthropic", "openai"
    model: str | None = None  # Catalog id or LiteLLM model string
    api_base: str | None = None  # Custom endpoint
    max_tokens: int | None = None
    extended_reasoning: bool = False  # User toggle
    reasoning_budget: int | str = 10000  # Token budget or effort: low | medium | high
    title_model: str | None = None  # Model used for conversation titles


@dataclass
class SessionConfig:
    """Session loop configuration."""

    max_steps: int = 25


@dataclass
class ToolsConfig:
    """Tool executor limits and guards.

    Example config.yaml:
        tools:
          command_timeout: 60
          denied_commands:
            - "rm -rf /"
            - "git push*"
    """

    command_timeout: float = 30.0  # Seconds
    max_command_timeout: float = 120.0
    stdout_limit: int = 2000  # Characters kept from stdout
    stderr_limit: int = 500
    denied_commands: list[str] = field(default_factory=lambda: list(DEFAULT_DENIED_COMMANDS))
    ignore_dirs: list[str] = field(default_factory=lambda: list(DEFAULT_IGNORE_DIRS))
    allow_outside_project: bool = False
    max_search_results: int = 20
    max_matches_per_file: int = 5
    max_file_size: int = 1_000_000  # Files larger than this are skipped by searches
    large_file_threshold: int = 50_000


@dataclass
class ChangesConfig:
    """Pending change tracking configuration."""

    backup_suffix: str = ".backup"
    dismiss_removes_backups: bool = True


@dataclass
class HistoryConfig:
    """Conversation history storage."""

    dir: str | None = None  # Default: <user data dir>/history


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, overrides level
    file: str | None = None  # Log file path


@dataclass
class ServerConfig:
    """HTTP/WebSocket transport configuration."""

    host: str = "127.0.0.1"
    port: int = 8765
    queue_size: int = 256  # Per-subscriber event queue bound


@dataclass
class Config:
    """Root configuration object."""

    llm: LLMConfig = field(default_factory=LLMConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    changes: ChangesConfig = field(default_factory=ChangesConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    extra: dict[str, Any] = field(default_factory=dict)  # Unknown top-level keys
