"""Shell command execution for the run-command tool."""

from editagent.terminal.executor import ShellExecutor, SubprocessShellExecutor, truncate
from editagent.terminal.result import ShellResult

__all__ = ["ShellExecutor", "ShellResult", "SubprocessShellExecutor", "truncate"]
