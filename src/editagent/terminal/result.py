"""Shell execution result dataclass."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ShellResult:
    """Result of a shell command execution.

    Attributes:
        command: The command line that was executed.
        exit_code: Process exit code, or None if killed on timeout.
        stdout: Captured standard output (may be truncated).
        stderr: Captured standard error (may be truncated).
        truncated: True if either stream was cut to its limit.
        status: "ok", "error", "timeout", or "killed".
        duration_ms: Wall-clock duration in milliseconds.
    """

    command: str
    exit_code: int | None
    stdout: str
    stderr: str
    truncated: bool
    status: str
    duration_ms: float

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict[str, object]:
        return {
            "success": self.success,
            "command": self.command,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "truncated": self.truncated,
            "status": self.status,
            "duration_ms": round(self.duration_ms, 1),
        }

    def __repr__(self) -> str:
        if self.success:
            lines = self.stdout.count("\n") + 1 if self.stdout else 0
            return f"<ShellResult ok, {lines} lines>"
        return f"<ShellResult {self.status}, exit={self.exit_code}>"
