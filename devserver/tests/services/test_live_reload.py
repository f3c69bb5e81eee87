"""Tests for the live-reload service."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from devserver.services.live_reload import LiveReloadService
from devserver.watchers.file_watcher import FileEvent
from devserver.websocket.websocket_manager import ReloadManager


@pytest.fixture
def manager() -> MagicMock:
    manager = MagicMock(spec=ReloadManager)
    manager.broadcast_reload = AsyncMock(return_value=2)
    manager.broadcast_notify = AsyncMock(return_value=2)
    manager.get_stats.return_value = {"current_connections": 2}
    return manager


@pytest.mark.asyncio
async def test_reload_broadcasts(tmp_path, manager, caplog):
    caplog.set_level("INFO")
    service = LiveReloadService(tmp_path, manager)

    assert await service.reload() == 2
    assert await service.reload("style.css") == 2

    assert manager.broadcast_reload.await_args_list[0].args == (None,)
    assert manager.broadcast_reload.await_args_list[1].args == ("style.css",)
    assert "Reloading browsers for style.css" in caplog.text


@pytest.mark.asyncio
async def test_notify_forwards_level(tmp_path, manager):
    service = LiveReloadService(tmp_path, manager)
    await service.notify("Build failed", level="error")
    manager.broadcast_notify.assert_awaited_once_with("Build failed", "error")


@pytest.mark.asyncio
async def test_change_on_watched_file_reloads(spec_tree, manager):
    service = LiveReloadService(spec_tree, manager)
    service.watch(["*.css"]).on("change", service.reload)

    await service.watcher.dispatch(FileEvent("style.css", "change", 1.0))
    await service.watcher.dispatch(FileEvent("index.html", "change", 1.0))

    manager.broadcast_reload.assert_awaited_once_with("style.css")


@pytest.mark.asyncio
async def test_start_stop_and_status(tmp_path, manager):
    service = LiveReloadService(tmp_path, manager)
    assert service.root == tmp_path.resolve()

    await service.start()
    try:
        assert service.is_running
        status = service.get_status()
        assert status["watcher"]["is_watching"] is True
        assert status["connections"] == {"current_connections": 2}
    finally:
        await service.stop()

    assert not service.is_running


def test_default_manager_is_created(tmp_path):
    service = LiveReloadService(tmp_path)
    assert isinstance(service.manager, ReloadManager)
