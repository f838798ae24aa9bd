"""Subprocess-based shell execution with a hard wall-clock timeout."""

from __future__ import annotations

import asyncio
import os
import signal
import sys
import time
from typing import Protocol

from editagent.logging import get_logger
from editagent.terminal.result import ShellResult

log = get_logger("terminal")


class ShellExecutor(Protocol):
    """Anything that can run a shell command line and report a ShellResult."""

    async def execute(
        self,
        command: str,
        cwd: str | None = None,
        timeout: float | None = 30.0,
        stdout_limit: int = 2000,
        stderr_limit: int = 500,
    ) -> ShellResult: ...


def truncate(text: str, limit: int) -> tuple[str, bool]:
    """Cut ``text`` to ``limit`` characters, marking the cut."""
    if limit < 0 or len(text) <= limit:
        return text, False
    return text[:limit] + "\n... (output truncated)", True


class SubprocessShellExecutor:
    """Run command lines through the platform shell using asyncio subprocesses.

    The timeout is enforced independently of any session cancellation: a
    command that exceeds it is killed and reported with status "timeout".
    """

    def __init__(self, default_cwd: str = ".") -> None:
        self._default_cwd = default_cwd

    async def execute(
        self,
        command: str,
        cwd: str | None = None,
        timeout: float | None = 30.0,
        stdout_limit: int = 2000,
        stderr_limit: int = 500,
    ) -> ShellResult:
        start_time = time.perf_counter()
        working_dir = cwd or self._default_cwd

        def elapsed() -> float:
            return (time.perf_counter() - start_time) * 1000

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.DEVNULL,
                cwd=working_dir,
                env=os.environ.copy(),
                start_new_session=sys.platform != "win32",
            )
        except FileNotFoundError:
            return ShellResult(
                command=command,
                exit_code=127,
                stdout="",
                stderr=f"Working directory not found: {working_dir}",
                truncated=False,
                status="error",
                duration_ms=elapsed(),
            )
        except PermissionError:
            return ShellResult(
                command=command,
                exit_code=126,
                stdout="",
                stderr=f"Permission denied: {command}",
                truncated=False,
                status="error",
                duration_ms=elapsed(),
            )
        except OSError as e:
            return ShellResult(
                command=command,
                exit_code=1,
                stdout="",
                stderr=f"OS error: {e}",
                truncated=False,
                status="error",
                duration_ms=elapsed(),
            )

        try:
            if timeout is not None:
                stdout_data, stderr_data = await asyncio.wait_for(
                    process.communicate(), timeout=timeout
                )
            else:
                stdout_data, stderr_data = await process.communicate()
        except asyncio.TimeoutError:
            await _kill(process)
            log.warning("Command timed out after %ss: %s", timeout, command)
            return ShellResult(
                command=command,
                exit_code=None,
                stdout="",
                stderr=f"Command timed out after {timeout}s",
                truncated=False,
                status="timeout",
                duration_ms=elapsed(),
            )
        except asyncio.CancelledError:
            await _kill(process)
            raise

        stdout, out_cut = truncate(stdout_data.decode("utf-8", errors="replace"), stdout_limit)
        stderr, err_cut = truncate(stderr_data.decode("utf-8", errors="replace"), stderr_limit)
        exit_code = process.returncode

        if exit_code is not None and exit_code < 0:
            status = "killed"
        else:
            status = "ok" if exit_code == 0 else "error"

        return ShellResult(
            command=command,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            truncated=out_cut or err_cut,
            status=status,
            duration_ms=elapsed(),
        )


async def _kill(process: asyncio.subprocess.Process) -> None:
    """Kill the process (and its process group on POSIX) and reap it."""
    try:
        if sys.platform != "win32":
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except ProcessLookupError:
        pass
    await process.wait()
