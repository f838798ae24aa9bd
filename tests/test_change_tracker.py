"""Tests for the pending-change ledger."""

from __future__ import annotations

import asyncio

import pytest

from editagent.changes import ChangeTracker, ChangeType
from editagent.config.schema import ChangesConfig
from editagent.events import EventChannel
from editagent.fsutil import write_bytes_atomic
from tests.utils import collect


async def mutate(tracker: ChangeTracker, path, data: bytes | None) -> None:
    """Write ``data`` to ``path`` (None deletes) under the tracker."""
    async with tracker.track(path):
        if data is None:
            path.unlink()
        else:
            write_bytes_atomic(path, data)


class TestRoundTrip:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "original",
        [b"", b"plain\n", b"no newline", b"crlf\r\nlines\r\n", "unicode é中\n".encode()],
    )
    async def test_reject_restores_exact_bytes(self, tracker, project, original):
        path = project / "file.txt"
        path.write_bytes(original)
        await mutate(tracker, path, b"something else entirely")

        outcome = await tracker.reject(path)
        assert outcome.success
        assert path.read_bytes() == original
        assert not (project / "file.txt.backup").exists()
        assert tracker.get_pending() == []

    @pytest.mark.asyncio
    async def test_reject_of_create_deletes_file(self, tracker, project):
        path = project / "new.txt"
        await mutate(tracker, path, b"fresh")
        assert tracker.get(path).type is ChangeType.CREATE

        assert (await tracker.reject(path)).success
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_reject_of_delete_recreates_file(self, tracker, project):
        path = project / "utils.js"
        await mutate(tracker, path, None)
        assert tracker.get(path).type is ChangeType.DELETE

        assert (await tracker.reject(path)).success
        assert path.read_text() == "function foo() {}\n"

    @pytest.mark.asyncio
    async def test_restore_keeps_file_mode(self, tracker, project):
        path = project / "script.sh"
        path.write_text("#!/bin/sh\n")
        path.chmod(0o755)
        await mutate(tracker, path, b"#!/bin/sh\necho changed\n")
        await tracker.reject(path)
        assert path.stat().st_mode & 0o777 == 0o755


class TestAccept:
    @pytest.mark.asyncio
    async def test_accept_keeps_mutation_and_drops_backup(self, tracker, project):
        path = project / "utils.js"
        await mutate(tracker, path, b"function bar() {}\n")
        change = tracker.get(path)

        outcome = await tracker.accept(change.id)
        assert outcome.success
        assert outcome.change_id == change.id
        assert path.read_bytes() == b"function bar() {}\n"
        assert not change.backup_path.exists()

    @pytest.mark.asyncio
    async def test_second_accept_is_a_no_op(self, tracker, project):
        path = project / "utils.js"
        await mutate(tracker, path, b"v2")
        assert (await tracker.accept(path)).success

        again = await tracker.accept(path)
        assert again.success is False
        assert "No pending change" in again.error
        assert path.read_bytes() == b"v2"


class TestSingleBackup:
    @pytest.mark.asyncio
    async def test_second_mutation_extends_entry(self, tracker, project):
        path = project / "utils.js"
        await mutate(tracker, path, b"v2")
        first = tracker.get(path)
        await mutate(tracker, path, b"v3")

        assert tracker.get_pending() == [first]
        assert sorted(p.name for p in project.glob("utils.js.backup*")) == ["utils.js.backup"]
        await tracker.reject(path)
        assert path.read_text() == "function foo() {}\n"

    @pytest.mark.asyncio
    async def test_create_then_delete_stays_create(self, tracker, project):
        path = project / "tmp.txt"
        await mutate(tracker, path, b"x")
        await mutate(tracker, path, None)
        assert tracker.get(path).type is ChangeType.CREATE
        assert (await tracker.reject(path)).success
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_modify_then_delete_becomes_delete(self, tracker, project):
        path = project / "utils.js"
        await mutate(tracker, path, b"v2")
        await mutate(tracker, path, None)
        assert tracker.get(path).type is ChangeType.DELETE

    @pytest.mark.asyncio
    async def test_existing_backup_name_is_not_clobbered(self, tracker, project):
        (project / "utils.js.backup").write_text("user's own file")
        path = project / "utils.js"
        await mutate(tracker, path, b"v2")
        assert tracker.get(path).backup_path.name == "utils.js.backup.1"
        assert (project / "utils.js.backup").read_text() == "user's own file"


class TestFailures:
    @pytest.mark.asyncio
    async def test_body_failure_removes_backup(self, tracker, project):
        path = project / "utils.js"
        with pytest.raises(RuntimeError):
            async with tracker.track(path):
                raise RuntimeError("tool failed")
        assert tracker.get_pending() == []
        assert not (project / "utils.js.backup").exists()

    @pytest.mark.asyncio
    async def test_vanished_backup_fails_only_that_entry(self, tracker, project):
        a = project / "utils.js"
        b = project / "src" / "app.py"
        await mutate(tracker, a, b"changed a")
        await mutate(tracker, b, b"changed b")
        tracker.get(a).backup_path.unlink()

        result = await tracker.reject_all()
        assert result.success is False
        [failure] = result.failures
        assert failure.file_path == str(a.resolve())
        assert "Backup missing" in failure.error
        assert b.read_text().startswith("import os")
        assert tracker.get_pending() == []

    @pytest.mark.asyncio
    async def test_unknown_target(self, tracker):
        outcome = await tracker.reject("does-not-exist")
        assert outcome.success is False


class TestDismiss:
    @pytest.mark.asyncio
    async def test_dismiss_keeps_file_and_removes_backup(self, tracker, project):
        path = project / "utils.js"
        await mutate(tracker, path, b"v2")
        backup = tracker.get(path).backup_path

        assert (await tracker.dismiss(path)).success
        assert path.read_bytes() == b"v2"
        assert not backup.exists()
        assert tracker.get_pending() == []

    @pytest.mark.asyncio
    async def test_dismiss_can_leave_backup(self, project):
        tracker = ChangeTracker(project, ChangesConfig(dismiss_removes_backups=False))
        path = project / "utils.js"
        await mutate(tracker, path, b"v2")
        backup = tracker.get(path).backup_path

        result = await tracker.dismiss_all()
        assert result.success
        assert backup.exists()

    def test_backup_files_recognized(self, tracker, project):
        assert tracker.is_backup_file(project / "a.js.backup")
        assert tracker.is_backup_file(project / "a.js.backup.2")
        assert not tracker.is_backup_file(project / "a.js")
        assert not tracker.is_backup_file(project / "v1.2")


class TestPublication:
    @pytest.mark.asyncio
    async def test_ledger_published_after_each_transition(self, project):
        channel = EventChannel(maxsize=100)
        tracker = ChangeTracker(project, channel=channel)
        subscription = channel.subscribe()

        await mutate(tracker, project / "utils.js", b"v2")
        await mutate(tracker, project / "other.txt", b"new")
        await tracker.accept_all()

        events = await collect(subscription)
        assert [e.type for e in events] == ["pending-changes"] * 4
        assert [len(e.changes) for e in events] == [1, 2, 1, 0]
        first = events[0].changes[0]
        assert set(first) == {"id", "type", "filePath", "backupPath", "timestamp"}
        assert first["type"] == "modify"
        assert "backupPath" not in events[1].changes[1]


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_resolution_waits_for_running_mutation(self, tracker, project):
        path = project / "utils.js"
        inside = asyncio.Event()
        release = asyncio.Event()

        async def slow_tool():
            async with tracker.track(path):
                inside.set()
                await release.wait()
                write_bytes_atomic(path, b"v2")

        task = asyncio.create_task(slow_tool())
        await inside.wait()
        resolver = asyncio.create_task(tracker.reject_all())
        await asyncio.sleep(0.01)
        assert not resolver.done()

        release.set()
        await task
        result = await resolver
        assert [o.success for o in result.outcomes] == [True]
        assert path.read_text() == "function foo() {}\n"

    @pytest.mark.asyncio
    async def test_stalled_subscriber_does_not_hold_ledger(self, project):
        channel = EventChannel(maxsize=1)
        tracker = ChangeTracker(project, channel=channel)
        channel.subscribe()  # never read

        await mutate(tracker, project / "utils.js", b"v2")
        stalled = asyncio.create_task(mutate(tracker, project / "other.txt", b"new"))
        await asyncio.sleep(0.01)
        assert not stalled.done()

        entered = asyncio.Event()

        async def next_tool():
            async with tracker.track(project / "third.txt"):
                entered.set()
                write_bytes_atomic(project / "third.txt", b"x")

        follower = asyncio.create_task(next_tool())
        await asyncio.wait_for(entered.wait(), timeout=1)
        await asyncio.sleep(0.01)
        assert len(tracker.get_pending()) == 3

        stalled.cancel()
        follower.cancel()
        await asyncio.gather(stalled, follower, return_exceptions=True)
