"""Pytest configuration and fixtures for development server tests."""

import sys
from collections.abc import Generator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

SERVER_ENV_VARS = (
    "NODE_ENV",
    "BS_PORT",
    "PORT",
    "BS_OPEN",
    "BS_NOTIFY",
    "BS_TUNNEL",
    "BS_MINIFY",
    "BUILD_SETTLE",
    "BUILD_TIMEOUT",
    "BUILD_SILENT",
)


@pytest.fixture
def clean_env(monkeypatch) -> Generator[pytest.MonkeyPatch, None, None]:
    """Remove every environment variable the server reads."""
    for name in SERVER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield monkeypatch


@pytest.fixture
def spec_tree(tmp_path) -> Path:
    """A small specification repository layout."""
    (tmp_path / "spec" / "latest").mkdir(parents=True)
    (tmp_path / "spec" / "1.1").mkdir(parents=True)
    (tmp_path / "archive").mkdir()
    (tmp_path / "node_modules" / "pkg").mkdir(parents=True)

    (tmp_path / "index.html").write_text("<html><body><h1>Home</h1></body></html>")
    (tmp_path / "style.css").write_text("body { color: black; }")
    (tmp_path / "spec" / "latest" / "index.bs").write_text("<h1>Spec</h1>")
    (tmp_path / "spec" / "latest" / "index.html").write_text("<html><body>Spec</body></html>")
    (tmp_path / "node_modules" / "pkg" / "index.js").write_text("module.exports = {};")
    return tmp_path


@pytest.fixture
def fake_service() -> MagicMock:
    """A stand-in for the live-reload service."""
    service = MagicMock()
    service.reload = AsyncMock(return_value=1)
    service.notify = AsyncMock(return_value=1)
    return service


@pytest.fixture
def python_make():
    """Build a make_command that runs a Python snippet instead of make."""

    def _command(script: str) -> tuple[str, ...]:
        return (sys.executable, "-c", script)

    return _command
