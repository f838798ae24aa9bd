"""Pending change records and resolution outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class ChangeType(str, Enum):
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"


@dataclass
class PendingChange:
    """An unresolved filesystem mutation.

    Attributes:
        id: Unique change identifier.
        type: create, modify, or delete, relative to the pre-state.
        file_path: Absolute path of the mutated file.
        backup_path: Side file holding the pre-mutation bytes; None for creates.
        timestamp: Milliseconds since the epoch of the latest mutation.
        existed_before: Whether the file existed before the first mutation.
    """

    id: str
    type: ChangeType
    file_path: Path
    backup_path: Path | None
    timestamp: int
    existed_before: bool = True

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "filePath": str(self.file_path),
            "timestamp": self.timestamp,
        }
        if self.backup_path is not None:
            data["backupPath"] = str(self.backup_path)
        return data


@dataclass
class ChangeOutcome:
    """Result of resolving one pending change."""

    file_path: str
    success: bool
    change_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"filePath": self.file_path, "success": self.success}
        if self.change_id:
            data["id"] = self.change_id
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class ResolutionResult:
    """Aggregate result of a bulk accept, reject, or dismiss."""

    outcomes: list[ChangeOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(o.success for o in self.outcomes)

    @property
    def failures(self) -> list[ChangeOutcome]:
        return [o for o in self.outcomes if not o.success]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }
