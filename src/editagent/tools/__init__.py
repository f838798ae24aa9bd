"""Tools the model may call against the project directory."""

from editagent.tools.executor import ToolCall, ToolError, ToolExecutor, ToolResult
from editagent.tools.guard import CommandGuard
from editagent.tools.schema import TOOL_SPECS, ToolName, ToolSpec

__all__ = [
    "CommandGuard",
    "TOOL_SPECS",
    "ToolCall",
    "ToolError",
    "ToolExecutor",
    "ToolName",
    "ToolResult",
    "ToolSpec",
]
