"""Root pytest configuration for all tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from editagent.changes import ChangeTracker
from editagent.config import clear_secret_cache, reset_config
from editagent.config.schema import ToolsConfig
from editagent.events import EventChannel
from editagent.tools import ToolExecutor

pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(scope="session")
def anyio_backend():
    """Set anyio backend to asyncio."""
    return "asyncio"


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep user config, data dirs and API keys out of every test."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))
    for var in ("EDITAGENT_LOG", "EDITAGENT_MODEL", "EDITAGENT_PROVIDER"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_config()
    clear_secret_cache()
    yield
    reset_config()
    clear_secret_cache()


@pytest.fixture
def project(tmp_path) -> Path:
    """A small project tree."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "utils.js").write_text("function foo() {}\n", encoding="utf-8")
    (root / "src").mkdir()
    (root / "src" / "app.py").write_text(
        "import os\n\n\ndef main():\n    print('hello')\n", encoding="utf-8"
    )
    return root


@pytest.fixture
def channel() -> EventChannel:
    return EventChannel(maxsize=1000)


@pytest.fixture
def tracker(project, channel) -> ChangeTracker:
    return ChangeTracker(project, channel=channel)


@pytest.fixture
def executor(project, tracker) -> ToolExecutor:
    return ToolExecutor(project, tracker, ToolsConfig())
