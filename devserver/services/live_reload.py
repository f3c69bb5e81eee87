"""
Live-reload service.

Combines the file watcher and the reload broadcaster behind the small
``watch``/``reload`` surface the watch coordinator and the application use.
"""

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from devserver.watchers.file_watcher import FileWatcher, WatchCallback, WatchRegistration
from devserver.websocket.websocket_manager import ReloadManager

logger = logging.getLogger(__name__)


class LiveReloadService:
    """Watches files under a root and reloads connected browsers."""

    def __init__(self, root: Path | str = ".", manager: ReloadManager | None = None) -> None:
        self.manager = manager or ReloadManager()
        self.watcher = FileWatcher(root)

    @property
    def root(self) -> Path:
        return self.watcher.root

    @property
    def is_running(self) -> bool:
        return self.watcher.is_watching

    def watch(
        self, patterns: str | Iterable[str], callback: WatchCallback | None = None, *, ignore_initial: bool = True
    ) -> WatchRegistration:
        """
        Watch patterns relative to the root.

        Args:
            patterns: Glob or globs; ``!`` excludes
            callback: Receives ``(event_name, path)`` for every matching event
            ignore_initial: When False, existing files emit ``add`` on start

        Returns:
            Registration; use ``.on("change", handler)`` for a single event name
        """
        return self.watcher.watch(patterns, callback, ignore_initial=ignore_initial)

    async def reload(self, path: str | None = None) -> int:
        """Reload browsers, injecting stylesheets in place when ``path`` is CSS."""
        if path:
            logger.info(f"Reloading browsers for {path}")
        else:
            logger.info("Reloading browsers")
        return await self.manager.broadcast_reload(path)

    async def notify(self, message: str, level: str = "info") -> int:
        """Show a notification in connected browsers."""
        return await self.manager.broadcast_notify(message, level)

    async def start(self) -> None:
        await self.watcher.start_watching()

    async def stop(self) -> None:
        await self.watcher.stop_watching()

    def get_status(self) -> dict[str, Any]:
        return {
            "watcher": self.watcher.get_status(),
            "connections": self.manager.get_stats(),
        }
