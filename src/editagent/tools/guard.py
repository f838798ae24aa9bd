"""Denylist for shell commands the agent may not run.

Patterns are matched case-insensitively against the whitespace-normalized
command line and against each sub-command split on ``;``, ``&&``, ``||`` and
``|``. A pattern containing glob characters (``*``, ``?``, ``[``) is an
fnmatch pattern; any other pattern matches as a plain substring anywhere in
the command, including inside quoted arguments and subshells. The defaults
are all substrings.
"""

from __future__ import annotations

import fnmatch
import re
from dataclasses import dataclass, field

from editagent.config.schema import DEFAULT_DENIED_COMMANDS, ToolsConfig

_SEPARATORS = re.compile(r"\s*(?:&&|\|\||;|\|)\s*")
_GLOB_CHARS = frozenset("*?[")


def normalize_command(command: str) -> str:
    return " ".join(command.split()).lower()


@dataclass
class CommandGuard:
    """First matching deny pattern wins; commands matching none are allowed."""

    patterns: list[str] = field(default_factory=lambda: list(DEFAULT_DENIED_COMMANDS))

    @classmethod
    def from_config(cls, config: ToolsConfig | None) -> CommandGuard:
        if config is None:
            return cls()
        return cls(patterns=list(config.denied_commands))

    def match(self, command: str) -> str | None:
        """Return the deny pattern ``command`` hits, or None if it is allowed."""
        normalized = normalize_command(command)
        segments = [s for s in _SEPARATORS.split(normalized) if s]

        for raw in self.patterns:
            pattern = normalize_command(raw)
            if not pattern:
                continue
            if _GLOB_CHARS.intersection(pattern):
                if fnmatch.fnmatchcase(normalized, pattern) or any(
                    fnmatch.fnmatchcase(s, pattern) for s in segments
                ):
                    return raw
            elif pattern in normalized:
                return raw
        return None

    def is_denied(self, command: str) -> bool:
        return self.match(command) is not None
