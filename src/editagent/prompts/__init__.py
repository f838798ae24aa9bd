"""Prompt templates for the agent.

Prompts are loaded from markdown files in this package.
"""

from importlib.resources import files

_PROMPTS_PKG = files("editagent.prompts")


def load_prompt(name: str) -> str:
    """Load a prompt by name (without .md extension)."""
    return _PROMPTS_PKG.joinpath(f"{name}.md").read_text(encoding="utf-8")


SYSTEM_PROMPT = load_prompt("system")
TITLE_PROMPT = load_prompt("title")

__all__ = ["load_prompt", "SYSTEM_PROMPT", "TITLE_PROMPT"]
