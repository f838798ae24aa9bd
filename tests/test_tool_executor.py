"""Tests for tool dispatch, schemas and error capture."""

from __future__ import annotations

import pytest

from editagent.tools import TOOL_SPECS, ToolCall, ToolName


class TestSchemas:
    def test_every_tool_is_registered(self):
        assert set(TOOL_SPECS) == set(ToolName)
        assert len(ToolName) == 19

    def test_function_schemas(self, executor):
        schemas = executor.schemas()
        names = [s["function"]["name"] for s in schemas]
        assert names == [t.value for t in ToolName]
        replace = next(s for s in schemas if s["function"]["name"] == "replace-in-file")
        params = replace["function"]["parameters"]
        assert set(params["required"]) == {"path", "search", "replace"}
        assert "title" not in params["properties"]["path"]

    def test_mutating_flags(self):
        mutating = {name.value for name, spec in TOOL_SPECS.items() if spec.mutating}
        assert mutating == {
            "write-file",
            "replace-in-file",
            "insert-at-line",
            "append-to-file",
            "create-file",
            "delete-file",
            "copy-file",
            "move-file",
        }


class TestExecute:
    @pytest.mark.asyncio
    async def test_unknown_tool(self, executor):
        result = await executor.execute(ToolCall("c1", "format-disk", {}))
        assert result.success is False
        assert result.result["error"] == "Unknown tool: format-disk"
        assert result.id == "c1"

    @pytest.mark.asyncio
    async def test_missing_argument(self, executor):
        result = await executor.execute(ToolCall("c1", "read-file", {}))
        assert result.success is False
        assert result.result["error"].startswith("Invalid arguments for read-file: path")

    @pytest.mark.asyncio
    async def test_extra_arguments_ignored(self, executor):
        result = await executor.execute(ToolCall("c1", "read-file", {"path": "utils.js", "encoding": "latin-1"}))
        assert result.success is True

    @pytest.mark.asyncio
    async def test_undecodable_arguments(self, executor):
        result = await executor.execute(ToolCall("c1", "read-file", {"_raw": "{not json"}))
        assert result.success is False

    @pytest.mark.asyncio
    async def test_handler_crash_is_captured(self, executor, monkeypatch):
        async def boom(args):
            raise RuntimeError("kaboom")

        monkeypatch.setitem(executor._handlers, ToolName.READ_FILE, boom)
        result = await executor.execute(ToolCall("c1", "read-file", {"path": "utils.js"}))
        assert result.success is False
        assert "kaboom" in result.result["error"]

    @pytest.mark.asyncio
    async def test_backup_failure_blocks_mutation(self, executor, tracker, project, monkeypatch):
        def fail(path, data, *, fsync=True):
            raise OSError(28, "No space left on device")

        monkeypatch.setattr("editagent.changes.tracker.write_bytes_atomic", fail)
        result = await executor.execute(
            ToolCall("c1", "write-file", {"path": "utils.js", "content": "changed"})
        )
        assert result.success is False
        assert "Failed to back up" in result.result["error"]
        assert (project / "utils.js").read_text() == "function foo() {}\n"
        assert tracker.get_pending() == []
