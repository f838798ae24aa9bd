"""Project file walking and text search helpers used by the read tools."""

from __future__ import annotations

import os
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

PREVIEW_CHARS = 100
_BINARY_SNIFF = 8192


@dataclass
class LineMatch:
    line: int
    text: str

    def to_dict(self) -> dict[str, object]:
        return {"line": self.line, "text": self.text}


@dataclass
class FileMatches:
    file: str
    matches: list[LineMatch] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "file": self.file,
            "lines": [m.line for m in self.matches],
            "preview": self.matches[0].text if self.matches else "",
            "matches": [m.to_dict() for m in self.matches],
        }


def preview(line: str, limit: int = PREVIEW_CHARS) -> str:
    line = line.strip()
    if len(line) > limit:
        return line[:limit] + "..."
    return line


def looks_binary(path: Path) -> bool:
    try:
        with open(path, "rb") as f:
            return b"\0" in f.read(_BINARY_SNIFF)
    except OSError:
        return True


def normalize_extensions(extensions: list[str] | None) -> set[str] | None:
    if not extensions:
        return None
    return {e.lower() if e.startswith(".") else f".{e.lower()}" for e in extensions}


def walk_files(
    base: Path,
    ignore_dirs: set[str],
    skip_file: Callable[[Path], bool] | None = None,
    extensions: set[str] | None = None,
) -> Iterator[Path]:
    """Yield files under ``base`` in sorted order.

    Directories in ``ignore_dirs`` and hidden directories are pruned.
    """
    for dirpath, dirnames, filenames in os.walk(base):
        dirnames[:] = sorted(d for d in dirnames if d not in ignore_dirs and not d.startswith("."))
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if extensions is not None and path.suffix.lower() not in extensions:
                continue
            if skip_file is not None and skip_file(path):
                continue
            yield path


def find_in_lines(
    lines: list[str],
    query: str,
    case_sensitive: bool = False,
    limit: int | None = None,
) -> list[LineMatch]:
    needle = query if case_sensitive else query.lower()
    found: list[LineMatch] = []
    for number, line in enumerate(lines, start=1):
        haystack = line if case_sensitive else line.lower()
        if needle in haystack:
            found.append(LineMatch(number, preview(line)))
            if limit is not None and len(found) >= limit:
                break
    return found


_FLAG_MAP = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


def compile_pattern(pattern: str, flags: str = "") -> re.Pattern[str]:
    """Compile ``pattern`` with letter flags.

    Raises:
        ValueError: Unknown flag letter.
        re.error: Invalid pattern.
    """
    value = 0
    for letter in flags.replace("g", ""):
        if letter not in _FLAG_MAP:
            raise ValueError(f"Unknown regex flag: {letter!r}")
        value |= _FLAG_MAP[letter]
    return re.compile(pattern, value)


def context_block(lines: list[str], index: int, radius: int) -> str:
    """Lines around ``index`` (0-based), numbered, the hit marked with '>'."""
    start = max(0, index - radius)
    end = min(len(lines), index + radius + 1)
    width = len(str(end))
    out = []
    for i in range(start, end):
        marker = ">" if i == index else " "
        out.append(f"{marker}{i + 1:>{width}}: {lines[i]}")
    return "\n".join(out)
