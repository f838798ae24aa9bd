"""Change tracker: the pending-change ledger for one project.

Every mutating tool runs inside ``tracker.track(path, ...)``. The tracker
writes the pre-mutation bytes to a sibling backup file (durably, before the
tool touches the target), records a PendingChange when the mutation
succeeds, and later resolves it:

    none -> pending -> accepted | rejected | dismissed

accepted:  backup deleted, mutation kept
rejected:  backup bytes written back to the file, backup deleted
           (a created file is deleted instead)
dismissed: ledger entry cleared, file untouched; the backup is removed when
           ``dismiss_removes_backups`` is set, otherwise it is left on disk

A path holds at most one live entry. A second mutation before resolution
extends the existing entry: its backup (the state before the first
unresolved mutation) is kept and no new backup is written.

Every transition publishes the full ledger on the event channel, in
transition order, after the ledger lock is released.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from editagent.changes.models import (
    ChangeOutcome,
    ChangeType,
    PendingChange,
    ResolutionResult,
)
from editagent.config.schema import ChangesConfig
from editagent.events import EventChannel, PendingChangesEvent
from editagent.fsutil import write_bytes_atomic
from editagent.logging import get_logger

log = get_logger("changes")


class BackupError(Exception):
    """The pre-mutation state of a file could not be captured."""


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class _Guard:
    key: Path
    existing: PendingChange | None
    existed_before: bool
    backup_path: Path | None = None


class ChangeTracker:
    """Owns the pending-change ledger and the backup files behind it.

    All ledger reads and writes go through this object under a single
    asyncio.Lock, so bulk resolution can run while a session is still
    executing tools.
    """

    def __init__(
        self,
        root: Path,
        config: ChangesConfig | None = None,
        channel: EventChannel | None = None,
    ) -> None:
        self._root = root.resolve()
        self._config = config or ChangesConfig()
        self._channel = channel
        self._entries: dict[Path, PendingChange] = {}
        self._lock = asyncio.Lock()
        self._publish_lock = asyncio.Lock()
        self._version = 0
        self._published = 0

    @property
    def root(self) -> Path:
        return self._root

    def is_backup_file(self, path: Path) -> bool:
        """True for files this tracker writes as backups."""
        suffix = self._config.backup_suffix
        if path.name.endswith(suffix):
            return True
        # Collision fallbacks look like "name.backup.1"
        stem, _, counter = path.name.rpartition(".")
        return counter.isdigit() and stem.endswith(suffix)

    def get_pending(self) -> list[PendingChange]:
        """Snapshot of the ledger in registration order."""
        return list(self._entries.values())

    def get(self, path: Path) -> PendingChange | None:
        return self._entries.get(self._key(path))

    def _key(self, path: Path) -> Path:
        if not path.is_absolute():
            path = self._root / path
        return path.resolve()

    def _backup_path_for(self, path: Path) -> Path:
        suffix = self._config.backup_suffix
        candidate = path.with_name(path.name + suffix)
        counter = 1
        while candidate.exists():
            candidate = path.with_name(f"{path.name}{suffix}.{counter}")
            counter += 1
        return candidate

    def _snapshot(self) -> tuple[int, list[dict]]:
        """Versioned copy of the ledger; taken under the ledger lock."""
        self._version += 1
        return self._version, [c.to_dict() for c in self._entries.values()]

    async def _publish(self, *snapshots: tuple[int, list[dict]]) -> None:
        # Runs outside the ledger lock: a slow subscriber delays only the
        # caller. Snapshots older than one already sent are dropped.
        if self._channel is None:
            return
        async with self._publish_lock:
            for version, changes in snapshots:
                if version <= self._published:
                    continue
                await self._channel.publish(PendingChangesEvent(changes=changes))
                self._published = version

    def _capture(self, key: Path) -> _Guard:
        existing = self._entries.get(key)
        if existing is not None:
            return _Guard(key, existing, existing.existed_before)

        guard = _Guard(key, None, key.exists())
        if guard.existed_before:
            if key.is_dir():
                raise BackupError(f"Cannot back up a directory: {key}")
            guard.backup_path = self._backup_path_for(key)
            try:
                write_bytes_atomic(guard.backup_path, key.read_bytes())
            except OSError as e:
                guard.backup_path.unlink(missing_ok=True)
                raise BackupError(f"Failed to back up {key}: {e}") from e
            log.debug("Backed up %s to %s", key, guard.backup_path)
        return guard

    def _commit(self, guard: _Guard) -> None:
        key = guard.key
        if not guard.existed_before:
            change_type = ChangeType.CREATE
        elif key.exists():
            change_type = ChangeType.MODIFY
        else:
            change_type = ChangeType.DELETE

        if guard.existing is not None:
            guard.existing.type = change_type
            guard.existing.timestamp = _now_ms()
            log.info("Extended pending change %s (%s %s)", guard.existing.id, change_type.value, key)
            return

        entry = PendingChange(
            id=uuid.uuid4().hex[:12],
            type=change_type,
            file_path=key,
            backup_path=guard.backup_path,
            timestamp=_now_ms(),
            existed_before=guard.existed_before,
        )
        self._entries[key] = entry
        log.info("Registered pending change %s (%s %s)", entry.id, change_type.value, key)

    @asynccontextmanager
    async def track(self, *paths: Path) -> AsyncIterator[list[PendingChange | None]]:
        """Guard a mutation of one or more paths.

        Yields, per path, the live entry being extended or None for a fresh
        one. When the body runs every needed backup is on disk. If the body
        raises, freshly written backups are removed and the ledger is left
        unchanged.

        Raises:
            BackupError: A backup could not be written; the body never runs.
        """
        async with self._lock:
            guards: list[_Guard] = []
            try:
                for path in paths:
                    guards.append(self._capture(self._key(path)))
                yield [g.existing for g in guards]
            except BaseException:
                for guard in guards:
                    if guard.backup_path is not None:
                        guard.backup_path.unlink(missing_ok=True)
                raise

            for guard in guards:
                self._commit(guard)
            snapshot = self._snapshot()
        await self._publish(snapshot)

    def _find(self, target: str | Path) -> PendingChange | None:
        if isinstance(target, str):
            for entry in self._entries.values():
                if entry.id == target:
                    return entry
        return self._entries.get(self._key(Path(target)))

    def _accept(self, entry: PendingChange) -> ChangeOutcome:
        del self._entries[entry.file_path]
        if entry.backup_path is not None:
            try:
                entry.backup_path.unlink(missing_ok=True)
            except OSError as e:
                return ChangeOutcome(
                    str(entry.file_path), False, entry.id, f"Failed to remove backup: {e}"
                )
        log.info("Accepted %s (%s)", entry.file_path, entry.type.value)
        return ChangeOutcome(str(entry.file_path), True, entry.id)

    def _reject(self, entry: PendingChange) -> ChangeOutcome:
        # Removed up front: a failed restore must not be retried against a
        # half-restored file.
        del self._entries[entry.file_path]
        path = entry.file_path

        try:
            if entry.backup_path is None:
                if path.is_file() or path.is_symlink():
                    path.unlink()
            else:
                try:
                    data = entry.backup_path.read_bytes()
                except FileNotFoundError:
                    log.warning("Backup for %s vanished: %s", path, entry.backup_path)
                    return ChangeOutcome(
                        str(path), False, entry.id, f"Backup missing: {entry.backup_path}"
                    )
                write_bytes_atomic(path, data)
                entry.backup_path.unlink(missing_ok=True)
        except OSError as e:
            log.warning("Failed to restore %s: %s", path, e)
            return ChangeOutcome(str(path), False, entry.id, f"Failed to restore: {e}")

        log.info("Rejected %s (%s)", path, entry.type.value)
        return ChangeOutcome(str(path), True, entry.id)

    def _dismiss(self, entry: PendingChange) -> ChangeOutcome:
        del self._entries[entry.file_path]
        if self._config.dismiss_removes_backups and entry.backup_path is not None:
            try:
                entry.backup_path.unlink(missing_ok=True)
            except OSError as e:
                log.warning("Could not remove backup %s: %s", entry.backup_path, e)
        log.info("Dismissed %s", entry.file_path)
        return ChangeOutcome(str(entry.file_path), True, entry.id)

    async def _resolve_one(
        self, target: str | Path, action: Callable[[PendingChange], ChangeOutcome]
    ) -> ChangeOutcome:
        async with self._lock:
            entry = self._find(target)
            if entry is None:
                return ChangeOutcome(str(target), False, error=f"No pending change for {target}")
            outcome = action(entry)
            snapshot = self._snapshot()
        await self._publish(snapshot)
        return outcome

    async def _resolve_all(
        self, action: Callable[[PendingChange], ChangeOutcome]
    ) -> ResolutionResult:
        result = ResolutionResult()
        snapshots = []
        async with self._lock:
            for entry in list(self._entries.values()):
                try:
                    outcome = action(entry)
                except Exception as e:
                    log.exception("Unexpected failure resolving %s", entry.file_path)
                    self._entries.pop(entry.file_path, None)
                    outcome = ChangeOutcome(str(entry.file_path), False, entry.id, str(e))
                result.outcomes.append(outcome)
                snapshots.append(self._snapshot())
        await self._publish(*snapshots)
        return result

    async def accept(self, target: str | Path) -> ChangeOutcome:
        """Make one change permanent. ``target`` is a change id or a path."""
        return await self._resolve_one(target, self._accept)

    async def reject(self, target: str | Path) -> ChangeOutcome:
        """Restore one file to its state before the change."""
        return await self._resolve_one(target, self._reject)

    async def dismiss(self, target: str | Path) -> ChangeOutcome:
        """Forget one change without touching the file."""
        return await self._resolve_one(target, self._dismiss)

    async def accept_all(self) -> ResolutionResult:
        return await self._resolve_all(self._accept)

    async def reject_all(self) -> ResolutionResult:
        return await self._resolve_all(self._reject)

    async def dismiss_all(self) -> ResolutionResult:
        return await self._resolve_all(self._dismiss)
