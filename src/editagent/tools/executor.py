"""Tool executor: the fixed set of operations the model may invoke.

Each ToolName is dispatched to one handler after its arguments validate
against the tool's input model. Handlers raise ToolError for expected
failures; ``execute`` turns every failure into a structured result so the
session can feed it back to the model. ``execute`` never raises.

Mutating handlers run inside ``ChangeTracker.track`` so the pre-mutation
bytes are on disk before the file is touched.
"""

from __future__ import annotations

import fnmatch
import json
import re
import shutil
import tomllib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from editagent.changes import BackupError, ChangeTracker
from editagent.config.schema import ToolsConfig
from editagent.fsutil import is_within, write_bytes_atomic
from editagent.logging import get_logger
from editagent.terminal import ShellExecutor, SubprocessShellExecutor
from editagent.tools import schema as s
from editagent.tools.guard import CommandGuard
from editagent.tools.schema import TOOL_SPECS, ToolName
from editagent.tools.search import (
    FileMatches,
    compile_pattern,
    context_block,
    find_in_lines,
    looks_binary,
    normalize_extensions,
    preview,
    walk_files,
)

log = get_logger("tools")

MAX_LISTED_ENTRIES = 100
MAX_FOUND_FILES = 100
MAX_TREE_ENTRIES = 500


class ToolError(Exception):
    """Expected tool failure, reported to the model as a structured error."""


@dataclass
class ToolCall:
    """A model-initiated tool invocation."""

    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResult:
    """Outcome of a ToolCall; ``result`` always carries a ``success`` flag."""

    id: str
    name: str
    result: dict[str, Any]

    @property
    def success(self) -> bool:
        return bool(self.result.get("success"))


def error_payload(message: str) -> dict[str, Any]:
    return {"success": False, "error": message}


def _validation_message(name: str, exc: ValidationError) -> str:
    problems = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        problems.append(f"{loc}: {err.get('msg', 'invalid')}")
    return f"Invalid arguments for {name}: " + "; ".join(problems)


class _Text:
    """Decoded file text, edited by splicing so untouched bytes keep their line endings."""

    def __init__(self, raw: str) -> None:
        self.raw = raw

    @property
    def text(self) -> str:
        return self.raw.replace("\r\n", "\n")

    def lines(self) -> list[str]:
        return self.raw.splitlines(keepends=True)

    def find(self, search: str) -> list[re.Match[str]]:
        """Non-overlapping matches of an LF-normalized block, whatever the line endings."""
        pattern = re.compile(r"\r?\n".join(re.escape(part) for part in search.split("\n")))
        return list(pattern.finditer(self.raw))

    def newline_at(self, offset: int) -> str:
        """Line ending of the line holding ``offset``, or of the last ended line before it."""
        end = self.raw.find("\n", offset)
        if end == -1:
            end = self.raw.rfind("\n", 0, offset)
        if end == -1:
            return "\n"
        return "\r\n" if self.raw[end - 1 : end] == "\r" else "\n"

    def splice(self, start: int, end: int, content: str, newline: str) -> bytes:
        """Replace ``raw[start:end]`` with LF-normalized ``content`` written with ``newline``."""
        block = content.replace("\r\n", "\n").replace("\n", newline)
        return (self.raw[:start] + block + self.raw[end:]).encode("utf-8")


Handler = Callable[[Any], Awaitable[dict[str, Any]]]


class ToolExecutor:
    """Runs tool calls against one project root.

    Args:
        root: Project root; relative paths resolve against it.
        tracker: Change tracker that records every mutation.
        config: Tool limits and guards.
        shell: Executor for run-command. Defaults to a subprocess executor.
        guard: Denylist for run-command. Defaults to config.denied_commands.
    """

    def __init__(
        self,
        root: Path,
        tracker: ChangeTracker,
        config: ToolsConfig | None = None,
        shell: ShellExecutor | None = None,
        guard: CommandGuard | None = None,
    ) -> None:
        self._root = root.resolve()
        self._tracker = tracker
        self._config = config or ToolsConfig()
        self._shell = shell or SubprocessShellExecutor(default_cwd=str(self._root))
        self._guard = guard or CommandGuard.from_config(self._config)
        self._ignore_dirs = set(self._config.ignore_dirs)

        self._handlers: dict[ToolName, Handler] = {
            ToolName.READ_FILE: self._read_file,
            ToolName.GET_LINE_RANGE: self._get_line_range,
            ToolName.GET_FILE_INFO: self._get_file_info,
            ToolName.SEARCH_IN_PROJECT: self._search_in_project,
            ToolName.SEARCH_IN_FILE: self._search_in_file,
            ToolName.SEARCH_BY_REGEX: self._search_by_regex,
            ToolName.FIND_FILES_BY_NAME: self._find_files_by_name,
            ToolName.LIST_FILES: self._list_files,
            ToolName.GET_PROJECT_STRUCTURE: self._get_project_structure,
            ToolName.GET_PROJECT_INFO: self._get_project_info,
            ToolName.WRITE_FILE: self._write_file,
            ToolName.REPLACE_IN_FILE: self._replace_in_file,
            ToolName.INSERT_AT_LINE: self._insert_at_line,
            ToolName.APPEND_TO_FILE: self._append_to_file,
            ToolName.CREATE_FILE: self._create_file,
            ToolName.DELETE_FILE: self._delete_file,
            ToolName.COPY_FILE: self._copy_file,
            ToolName.MOVE_FILE: self._move_file,
            ToolName.RUN_COMMAND: self._run_command,
        }
        missing = set(ToolName) - set(self._handlers)
        if missing:
            raise RuntimeError(f"Tools without handlers: {sorted(m.value for m in missing)}")

    @property
    def root(self) -> Path:
        return self._root

    def schemas(self) -> list[dict[str, Any]]:
        """Function definitions for every tool, in ToolName order."""
        return [TOOL_SPECS[name].function_schema() for name in ToolName]

    async def execute(self, call: ToolCall) -> ToolResult:
        """Run one tool call. Failures come back as ``{"success": False, "error": ...}``."""
        try:
            name = ToolName(call.name)
        except ValueError:
            log.warning("Model called unknown tool %r", call.name)
            return ToolResult(call.id, call.name, error_payload(f"Unknown tool: {call.name}"))

        spec = TOOL_SPECS[name]
        try:
            args = spec.input_model.model_validate(call.args or {})
            payload = await self._handlers[name](args)
        except ValidationError as e:
            payload = error_payload(_validation_message(name.value, e))
        except (ToolError, BackupError) as e:
            payload = error_payload(str(e))
        except UnicodeDecodeError:
            payload = error_payload("File is not UTF-8 text")
        except OSError as e:
            detail = e.strerror or str(e)
            target = f": {e.filename}" if e.filename else ""
            payload = error_payload(f"{detail}{target}")
        except Exception as e:
            log.exception("Tool %s crashed", name.value)
            payload = error_payload(f"Unexpected error in {name.value}: {e}")
        else:
            payload = {"success": True, **payload}

        if payload["success"]:
            log.debug("Tool %s (%s) ok", name.value, call.id)
        else:
            log.debug("Tool %s (%s) failed: %s", name.value, call.id, payload["error"])
        return ToolResult(call.id, call.name, payload)

    # ------------------------------------------------------------------
    # Paths and file helpers
    # ------------------------------------------------------------------

    def _resolve(self, raw: str) -> Path:
        path = Path(raw).expanduser()
        if not path.is_absolute():
            path = self._root / path
        path = path.resolve()
        if not self._config.allow_outside_project and not is_within(path, self._root):
            raise ToolError(f"Path is outside the project: {raw}")
        return path

    def _display(self, path: Path) -> str:
        if is_within(path, self._root):
            return path.relative_to(self._root).as_posix() or "."
        return str(path)

    def _require_file(self, path: Path) -> None:
        if not path.exists():
            raise ToolError(f"File not found: {self._display(path)}")
        if not path.is_file():
            raise ToolError(f"Not a file: {self._display(path)}")

    def _require_dir(self, path: Path) -> None:
        if not path.exists():
            raise ToolError(f"Directory not found: {self._display(path)}")
        if not path.is_dir():
            raise ToolError(f"Not a directory: {self._display(path)}")

    def _read(self, path: Path) -> _Text:
        self._require_file(path)
        return _Text(path.read_bytes().decode("utf-8"))

    def _skip_file(self, path: Path) -> bool:
        if self._tracker.is_backup_file(path):
            return True
        try:
            if path.stat().st_size > self._config.max_file_size:
                return True
        except OSError:
            return True
        return looks_binary(path)

    def _change_info(self, path: Path) -> dict[str, Any] | None:
        entry = self._tracker.get(path)
        return entry.to_dict() if entry else None

    # ------------------------------------------------------------------
    # Read tools
    # ------------------------------------------------------------------

    async def _read_file(self, args: s.ReadFileInput) -> dict[str, Any]:
        path = self._resolve(args.path)
        self._require_file(path)
        raw = path.read_bytes().decode("utf-8")
        result: dict[str, Any] = {
            "path": self._display(path),
            "content": raw,
            "lines": len(raw.splitlines()),
            "size": len(raw.encode("utf-8")),
        }
        if result["size"] > self._config.large_file_threshold:
            result["warning"] = "Large file; prefer get-line-range for targeted reads"
        return result

    async def _get_line_range(self, args: s.GetLineRangeInput) -> dict[str, Any]:
        if args.end_line < args.start_line:
            raise ToolError("end_line must be greater than or equal to start_line")
        path = self._resolve(args.path)
        lines = self._read(path).text.splitlines()
        total = len(lines)
        if total == 0:
            return {
                "path": self._display(path),
                "content": "",
                "start_line": 0,
                "end_line": 0,
                "total_lines": 0,
            }

        end = min(args.end_line, total)
        start = min(args.start_line, end)
        return {
            "path": self._display(path),
            "content": "\n".join(lines[start - 1 : end]),
            "start_line": start,
            "end_line": end,
            "total_lines": total,
        }

    async def _get_file_info(self, args: s.GetFileInfoInput) -> dict[str, Any]:
        path = self._resolve(args.path)
        self._require_file(path)
        stat = path.stat()
        binary = looks_binary(path)
        line_count = None if binary else len(path.read_bytes().decode("utf-8", errors="replace").splitlines())
        return {
            "path": self._display(path),
            "size": stat.st_size,
            "size_kb": round(stat.st_size / 1024, 2),
            "lines": line_count,
            "extension": path.suffix,
            "binary": binary,
            "last_modified": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
            "is_large_file": stat.st_size > self._config.large_file_threshold,
        }

    async def _search_in_project(self, args: s.SearchInProjectInput) -> dict[str, Any]:
        limit = args.max_results or self._config.max_search_results
        results: list[dict[str, Any]] = []
        truncated = False

        for path in walk_files(
            self._root,
            self._ignore_dirs,
            skip_file=self._skip_file,
            extensions=normalize_extensions(args.extensions),
        ):
            try:
                lines = path.read_bytes().decode("utf-8").splitlines()
            except (OSError, UnicodeDecodeError):
                continue
            found = find_in_lines(
                lines, args.query, args.case_sensitive, limit=self._config.max_matches_per_file
            )
            if not found:
                continue
            if len(results) >= limit:
                truncated = True
                break
            results.append(FileMatches(self._display(path), found).to_dict())

        return {"query": args.query, "results": results, "count": len(results), "truncated": truncated}

    async def _search_in_file(self, args: s.SearchInFileInput) -> dict[str, Any]:
        path = self._resolve(args.path)
        lines = self._read(path).text.splitlines()
        needle = args.query if args.case_sensitive else args.query.lower()

        matches = []
        for index, line in enumerate(lines):
            haystack = line if args.case_sensitive else line.lower()
            if needle in haystack:
                matches.append(
                    {
                        "line": index + 1,
                        "text": preview(line),
                        "context": context_block(lines, index, args.context_lines),
                    }
                )
        return {"path": self._display(path), "query": args.query, "matches": matches, "count": len(matches)}

    async def _search_by_regex(self, args: s.SearchByRegexInput) -> dict[str, Any]:
        try:
            pattern = compile_pattern(args.pattern, args.flags)
        except ValueError as e:
            raise ToolError(str(e)) from e
        except re.error as e:
            raise ToolError(f"Invalid regular expression: {e}") from e

        base = self._resolve(args.directory)
        self._require_dir(base)
        limit = args.max_results or self._config.max_search_results * self._config.max_matches_per_file
        matches: list[dict[str, Any]] = []
        truncated = False

        for path in walk_files(
            base,
            self._ignore_dirs,
            skip_file=self._skip_file,
            extensions=normalize_extensions(args.extensions),
        ):
            try:
                text = path.read_bytes().decode("utf-8").replace("\r\n", "\n")
            except (OSError, UnicodeDecodeError):
                continue
            lines = text.split("\n")
            for m in pattern.finditer(text):
                if len(matches) >= limit:
                    truncated = True
                    break
                line_no = text.count("\n", 0, m.start()) + 1
                matches.append(
                    {
                        "file": self._display(path),
                        "line": line_no,
                        "match": m.group(0)[:200],
                        "preview": preview(lines[line_no - 1]),
                    }
                )
            if truncated:
                break

        return {"pattern": args.pattern, "matches": matches, "count": len(matches), "truncated": truncated}

    async def _find_files_by_name(self, args: s.FindFilesByNameInput) -> dict[str, Any]:
        base = self._resolve(args.directory)
        self._require_dir(base)
        pattern = args.pattern.lower()
        by_path = "/" in pattern

        files: list[str] = []
        truncated = False
        for path in walk_files(base, self._ignore_dirs, skip_file=self._tracker.is_backup_file):
            subject = self._display(path).lower() if by_path else path.name.lower()
            if fnmatch.fnmatchcase(subject, pattern):
                if len(files) >= MAX_FOUND_FILES:
                    truncated = True
                    break
                files.append(self._display(path))
        return {"pattern": args.pattern, "files": files, "count": len(files), "truncated": truncated}

    def _visible(self, path: Path) -> bool:
        name = path.name
        if name.startswith(".") or self._tracker.is_backup_file(path):
            return False
        return not (path.is_dir() and name in self._ignore_dirs)

    async def _list_files(self, args: s.ListFilesInput) -> dict[str, Any]:
        base = self._resolve(args.directory)
        self._require_dir(base)
        entries: list[dict[str, Any]] = []
        truncated = False

        if args.recursive:
            candidates = (p for p in walk_files(base, self._ignore_dirs) if self._visible(p))
        else:
            candidates = (
                p for p in sorted(base.iterdir(), key=lambda p: (not p.is_dir(), p.name)) if self._visible(p)
            )

        for path in candidates:
            if len(entries) >= MAX_LISTED_ENTRIES:
                truncated = True
                break
            entry: dict[str, Any] = {
                "name": path.name,
                "path": self._display(path),
                "type": "directory" if path.is_dir() else "file",
            }
            if path.is_file():
                entry["size"] = path.stat().st_size
            entries.append(entry)

        return {"directory": self._display(base), "entries": entries, "count": len(entries), "truncated": truncated}

    async def _get_project_structure(self, args: s.GetProjectStructureInput) -> dict[str, Any]:
        base = self._resolve(args.directory)
        self._require_dir(base)
        lines = [f"{base.name}/"]
        count = 0

        def walk(directory: Path, depth: int) -> None:
            nonlocal count
            if depth > args.max_depth:
                return
            children = sorted(
                (p for p in directory.iterdir() if self._visible(p)),
                key=lambda p: (not p.is_dir(), p.name),
            )
            for child in children:
                if count >= MAX_TREE_ENTRIES:
                    return
                count += 1
                indent = "  " * depth
                if child.is_dir():
                    lines.append(f"{indent}{child.name}/")
                    walk(child, depth + 1)
                else:
                    lines.append(f"{indent}{child.name}")

        walk(base, 1)
        return {
            "directory": self._display(base),
            "tree": "\n".join(lines),
            "entries": count,
            "truncated": count >= MAX_TREE_ENTRIES,
        }

    async def _get_project_info(self, args: s.GetProjectInfoInput) -> dict[str, Any]:
        package_json = self._root / "package.json"
        if package_json.is_file():
            try:
                data = json.loads(package_json.read_text(encoding="utf-8"))
            except json.JSONDecodeError as e:
                raise ToolError(f"package.json is not valid JSON: {e}") from e
            return {
                "source": "package.json",
                "name": data.get("name"),
                "version": data.get("version"),
                "description": data.get("description"),
                "scripts": data.get("scripts") or {},
                "dependencies": sorted((data.get("dependencies") or {}).keys()),
                "dev_dependencies": sorted((data.get("devDependencies") or {}).keys()),
            }

        pyproject = self._root / "pyproject.toml"
        if pyproject.is_file():
            try:
                data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
            except tomllib.TOMLDecodeError as e:
                raise ToolError(f"pyproject.toml is not valid TOML: {e}") from e
            project = data.get("project") or {}
            optional = project.get("optional-dependencies") or {}
            return {
                "source": "pyproject.toml",
                "name": project.get("name"),
                "version": project.get("version"),
                "description": project.get("description"),
                "scripts": project.get("scripts") or {},
                "dependencies": list(project.get("dependencies") or []),
                "dev_dependencies": sorted({d for deps in optional.values() for d in deps}),
            }

        raise ToolError("No package.json or pyproject.toml in the project root")

    # ------------------------------------------------------------------
    # Mutating tools
    # ------------------------------------------------------------------

    async def _write_file(self, args: s.WriteFileInput) -> dict[str, Any]:
        path = self._resolve(args.path)
        if path.is_dir():
            raise ToolError(f"Not a file: {self._display(path)}")

        async with self._tracker.track(path):
            crlf = path.is_file() and b"\r\n" in path.read_bytes()
            data = args.content.replace("\r\n", "\n")
            if crlf:
                data = data.replace("\n", "\r\n")
            encoded = data.encode("utf-8")
            write_bytes_atomic(path, encoded, fsync=False)

        log.info("write-file %s: %s", self._display(path), args.explanation or "-")
        return {"path": self._display(path), "bytes": len(encoded), "change": self._change_info(path)}

    async def _replace_in_file(self, args: s.ReplaceInFileInput) -> dict[str, Any]:
        path = self._resolve(args.path)
        search = args.search.replace("\r\n", "\n")
        not_found = (
            f"Code block not found in {self._display(path)}. "
            "Use read-file to get the exact current content and retry."
        )

        # Checked before tracking so a mismatch never writes a backup
        if not self._read(path).find(search):
            raise ToolError(not_found)

        async with self._tracker.track(path):
            current = self._read(path)
            matches = current.find(search)
            if not matches:
                raise ToolError(not_found)
            first = matches[0]
            matched = first.group()
            if "\r\n" in matched:
                newline = "\r\n"
            elif "\n" in matched:
                newline = "\n"
            else:
                newline = current.newline_at(first.start())
            write_bytes_atomic(
                path, current.splice(first.start(), first.end(), args.replace, newline), fsync=False
            )

        log.info("replace-in-file %s: %s", self._display(path), args.explanation or "-")
        return {
            "path": self._display(path),
            "occurrences": len(matches),
            "replaced": 1,
            "change": self._change_info(path),
        }

    async def _insert_at_line(self, args: s.InsertAtLineInput) -> dict[str, Any]:
        path = self._resolve(args.path)

        def check(lines: list[str]) -> None:
            if args.line > len(lines) + 1:
                raise ToolError(
                    f"Line {args.line} is beyond the end of {self._display(path)} "
                    f"({len(lines)} lines; use {len(lines) + 1} to append)"
                )

        check(self._read(path).lines())

        async with self._tracker.track(path):
            current = self._read(path)
            lines = current.lines()
            check(lines)
            offset = sum(len(line) for line in lines[: args.line - 1])
            newline = current.newline_at(offset)
            block = args.content.replace("\r\n", "\n")
            if not block.endswith("\n"):
                block += "\n"
            if offset == len(current.raw) and current.raw and not current.raw.endswith(("\n", "\r")):
                block = "\n" + block
            write_bytes_atomic(path, current.splice(offset, offset, block, newline), fsync=False)

        log.info("insert-at-line %s:%d: %s", self._display(path), args.line, args.explanation or "-")
        return {"path": self._display(path), "line": args.line, "change": self._change_info(path)}

    async def _append_to_file(self, args: s.AppendToFileInput) -> dict[str, Any]:
        path = self._resolve(args.path)
        self._require_file(path)

        async with self._tracker.track(path):
            current = self._read(path)
            end = len(current.raw)
            block = args.content.replace("\r\n", "\n")
            if current.raw and not current.raw.endswith(("\n", "\r")):
                block = "\n" + block
            write_bytes_atomic(path, current.splice(end, end, block, current.newline_at(end)), fsync=False)

        log.info("append-to-file %s: %s", self._display(path), args.explanation or "-")
        return {"path": self._display(path), "change": self._change_info(path)}

    async def _create_file(self, args: s.CreateFileInput) -> dict[str, Any]:
        path = self._resolve(args.path)
        if path.exists():
            raise ToolError(f"File already exists: {self._display(path)}. Use write-file to replace it.")

        async with self._tracker.track(path):
            if path.exists():
                raise ToolError(f"File already exists: {self._display(path)}")
            write_bytes_atomic(path, args.content.encode("utf-8"), fsync=False)

        log.info("create-file %s: %s", self._display(path), args.explanation or "-")
        return {"path": self._display(path), "change": self._change_info(path)}

    async def _delete_file(self, args: s.DeleteFileInput) -> dict[str, Any]:
        path = self._resolve(args.path)
        self._require_file(path)

        async with self._tracker.track(path):
            path.unlink()

        log.info("delete-file %s: %s", self._display(path), args.explanation or "-")
        return {"path": self._display(path), "change": self._change_info(path)}

    def _check_transfer(self, source: Path, destination: Path) -> None:
        self._require_file(source)
        if source == destination:
            raise ToolError("Source and destination are the same file")
        if destination.exists():
            raise ToolError(f"Destination already exists: {self._display(destination)}")

    async def _copy_file(self, args: s.CopyFileInput) -> dict[str, Any]:
        source = self._resolve(args.source)
        destination = self._resolve(args.destination)
        self._check_transfer(source, destination)

        async with self._tracker.track(destination):
            self._check_transfer(source, destination)
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, destination)

        log.info("copy-file %s -> %s", self._display(source), self._display(destination))
        return {
            "source": self._display(source),
            "destination": self._display(destination),
            "change": self._change_info(destination),
        }

    async def _move_file(self, args: s.MoveFileInput) -> dict[str, Any]:
        source = self._resolve(args.source)
        destination = self._resolve(args.destination)
        self._check_transfer(source, destination)

        async with self._tracker.track(source, destination):
            self._check_transfer(source, destination)
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(source, destination)

        log.info("move-file %s -> %s", self._display(source), self._display(destination))
        return {
            "source": self._display(source),
            "destination": self._display(destination),
            "changes": [c for c in (self._change_info(source), self._change_info(destination)) if c],
        }

    # ------------------------------------------------------------------
    # Shell
    # ------------------------------------------------------------------

    async def _run_command(self, args: s.RunCommandInput) -> dict[str, Any]:
        denied = self._guard.match(args.command)
        if denied is not None:
            log.warning("Blocked command %r (pattern %r)", args.command, denied)
            raise ToolError(f"Command blocked for safety: matches denied pattern {denied!r}")

        timeout = min(args.timeout or self._config.command_timeout, self._config.max_command_timeout)
        result = await self._shell.execute(
            args.command,
            cwd=str(self._root),
            timeout=timeout,
            stdout_limit=self._config.stdout_limit,
            stderr_limit=self._config.stderr_limit,
        )
        payload = result.to_dict()
        if result.status == "timeout":
            payload["error"] = f"Command timed out after {timeout:g}s and was killed"
        elif not result.success:
            payload["error"] = f"Command exited with code {result.exit_code}"
        return payload
