"""EditAgent: an LLM-driven file editing agent with reversible changes.

The agent streams a model conversation, dispatches tool calls against a local
project directory, and records every mutation as a pending change that the
user can later accept or reject as a group.
"""

__version__ = "0.1.0"
