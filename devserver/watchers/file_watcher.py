"""
File Watcher for the live-reload development server

This module wraps a watchdog observer over the served root and dispatches
glob-filtered events to watch registrations on the asyncio event loop.
Events use the names browser tooling expects: ``add``, ``change`` and
``unlink``.
"""

import asyncio
import inspect
import logging
import os
import time
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from devserver.watchers.patterns import GlobSet

# watchdog event type -> event name passed to callbacks
EVENT_NAMES = {
    "created": "add",
    "modified": "change",
    "deleted": "unlink",
}

WatchCallback = Callable[[str, str], Any]
EventHandler = Callable[[str], Any]

# Seconds within which an unlink followed by an add of the same path is a change
ATOMIC_WINDOW = 0.1


@dataclass
class FileEvent:
    """A file system event relative to the watched root."""

    path: str
    event_type: str
    timestamp: float

    def __post_init__(self) -> None:
        if self.timestamp <= 0:
            raise ValueError("Timestamp must be positive")


class WatchRegistration:
    """A set of patterns with the callbacks subscribed to them."""

    def __init__(
        self, patterns: str | Iterable[str], callback: WatchCallback | None = None, ignore_initial: bool = True
    ) -> None:
        self.globs = GlobSet(patterns)
        self.callback = callback
        self.ignore_initial = ignore_initial
        self._handlers: dict[str, list[EventHandler]] = {}
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def patterns(self) -> tuple[str, ...]:
        return self.globs.patterns

    def on(self, event_name: str, handler: EventHandler) -> "WatchRegistration":
        """Subscribe a handler to one event name. Returns self for chaining."""
        self._handlers.setdefault(event_name, []).append(handler)
        return self

    def matches(self, path: str) -> bool:
        return self.globs.matches(path)

    async def dispatch(self, event: FileEvent) -> None:
        """Invoke the callback and handlers for an event, logging any error."""
        calls: list[tuple[Callable[..., Any], tuple[str, ...]]] = []
        if self.callback is not None:
            calls.append((self.callback, (event.event_type, event.path)))
        for handler in self._handlers.get(event.event_type, []):
            calls.append((handler, (event.path,)))

        for func, args in calls:
            try:
                result = func(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self.logger.error(f"Error in watch callback for {event.path} ({event.event_type}): {e}")


class FileWatchEventHandler(FileSystemEventHandler):  # type: ignore[misc]
    """
    Handles file system events for the watcher.

    Atomic saves are reported as ``change``: a file moved onto a path that
    already held a file, or created within ``ATOMIC_WINDOW`` seconds of the
    same path being removed.
    """

    def __init__(self, watcher: "FileWatcher"):
        super().__init__()
        self.watcher = watcher
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

        # Only touched from the observer thread once the observer runs
        self.known_paths: set[str] = set()
        self._recent_unlinks: dict[str, float] = {}

    def _attach_future_logging(self, future: Any, context: str) -> None:
        """Attach a done-callback that logs exceptions from the future."""

        def _on_done(f: Any) -> None:
            try:
                f.result()
            except Exception as exc:  # noqa: BLE001 - we want to log any exception
                self.logger.error(f"Unhandled exception in background task ({context}): {exc}")

        future.add_done_callback(_on_done)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle_file_event(event.src_path, "modified")

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle_file_event(event.src_path, "created")

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle_file_event(event.src_path, "deleted")

    def on_moved(self, event: FileSystemEvent) -> None:
        """Report a move as the removal of the source and the arrival of the destination."""
        if not event.is_directory:
            self._handle_file_event(event.src_path, "deleted")
            self._handle_file_event(event.dest_path, "created")

    def _event_name(self, relative: str, event_type: str) -> str:
        now = time.monotonic()

        if event_type == "deleted":
            self.known_paths.discard(relative)
            self._recent_unlinks = {p: t for p, t in self._recent_unlinks.items() if now - t <= ATOMIC_WINDOW}
            self._recent_unlinks[relative] = now
            return "unlink"

        unlinked_at = self._recent_unlinks.pop(relative, None)
        replaced = relative in self.known_paths or (unlinked_at is not None and now - unlinked_at <= ATOMIC_WINDOW)
        self.known_paths.add(relative)

        if event_type == "created" and replaced:
            return "change"
        return EVENT_NAMES[event_type]

    def _handle_file_event(self, raw_path: str | bytes, event_type: str) -> None:
        try:
            relative = self.watcher.relative_path(Path(os.fsdecode(raw_path)))
            if relative is None or self.watcher.loop is None:
                return

            event_name = self._event_name(relative, event_type)
            file_event = FileEvent(path=relative, event_type=event_name, timestamp=time.time())
            self.logger.debug(f"File {file_event.event_type}: {relative}")

            fut = asyncio.run_coroutine_threadsafe(self.watcher.dispatch(file_event), self.watcher.loop)
            self._attach_future_logging(fut, "dispatch")
        except Exception as e:
            self.logger.error(f"Error handling file event: {e}")


class FileWatcher:
    """
    Watches the served root and fans events out to registrations.

    One recursive observer covers the whole root; each registration filters
    by its own patterns.
    """

    def __init__(self, root: Path | str = ".", max_recent_events: int = 100) -> None:
        if max_recent_events <= 0:
            raise ValueError("Max recent events must be positive")

        self.root = Path(root).resolve()
        self.logger = logging.getLogger(__name__)

        self.observer = Observer()
        self.event_handler = FileWatchEventHandler(self)
        self.loop: asyncio.AbstractEventLoop | None = None

        self.registrations: list[WatchRegistration] = []

        self.is_watching = False
        self.start_time: float | None = None
        self.stats = {
            "total_events": 0,
            "dispatched_events": 0,
        }
        self.recent_events: deque[FileEvent] = deque(maxlen=max_recent_events)

    def relative_path(self, file_path: Path) -> str | None:
        """Return the POSIX path relative to the root, or None when outside it."""
        try:
            return file_path.resolve().relative_to(self.root).as_posix()
        except ValueError:
            return None

    def watch(
        self, patterns: str | Iterable[str], callback: WatchCallback | None = None, *, ignore_initial: bool = True
    ) -> WatchRegistration:
        """
        Register patterns to watch.

        Args:
            patterns: Glob or globs relative to the root (``!`` excludes)
            callback: Called with ``(event_name, path)`` for every matching event
            ignore_initial: When False, existing files emit ``add`` on start

        Returns:
            The registration, for subscribing per-event handlers with ``on``
        """
        registration = WatchRegistration(patterns, callback, ignore_initial)
        self.registrations.append(registration)
        self.logger.debug(f"Watching {list(registration.patterns)}")

        if self.is_watching and not ignore_initial and self.loop is not None:
            fut = asyncio.run_coroutine_threadsafe(self._emit_initial([registration]), self.loop)
            self.event_handler._attach_future_logging(fut, "emit_initial")

        return registration

    async def dispatch(self, event: FileEvent) -> int:
        """
        Deliver an event to every matching registration.

        Returns:
            Number of registrations the event was delivered to
        """
        self.stats["total_events"] += 1
        self.recent_events.append(event)

        delivered = 0
        for registration in list(self.registrations):
            if registration.matches(event.path):
                await registration.dispatch(event)
                delivered += 1

        if delivered:
            self.stats["dispatched_events"] += 1
        return delivered

    def _scan_files(self) -> list[str]:
        """Relative paths of the files currently under the root."""
        return sorted(p.relative_to(self.root).as_posix() for p in self.root.rglob("*") if p.is_file())

    async def _emit_initial(self, registrations: list[WatchRegistration], existing: list[str] | None = None) -> None:
        """Emit ``add`` for files that already exist."""
        for relative in self._scan_files() if existing is None else existing:
            event = FileEvent(path=relative, event_type="add", timestamp=time.time())
            for registration in registrations:
                if registration.matches(relative):
                    await registration.dispatch(event)

    async def start_watching(self) -> None:
        """Start the observer on the running event loop."""
        if self.is_watching:
            self.logger.warning("File watcher is already running")
            return

        try:
            self.logger.info(f"Starting file watcher for {self.root}")

            # Record the running loop for cross-thread scheduling
            self.loop = asyncio.get_running_loop()

            existing = self._scan_files()
            self.event_handler.known_paths = set(existing)

            self.observer.schedule(self.event_handler, str(self.root), recursive=True)
            self.observer.start()

            self.is_watching = True
            self.start_time = time.time()

            initial = [r for r in self.registrations if not r.ignore_initial]
            if initial:
                await self._emit_initial(initial, existing)

            self.logger.info(f"File watcher started with {len(self.registrations)} registrations")

        except Exception as e:
            self.logger.error(f"Failed to start file watcher: {e}")
            await self.stop_watching()
            raise

    async def stop_watching(self) -> None:
        """Stop the observer."""
        if not self.is_watching and not self.observer.is_alive():
            return

        self.logger.info("Stopping file watcher...")

        try:
            if self.observer.is_alive():
                self.observer.stop()
                self.observer.join(timeout=5.0)

            uptime = time.time() - self.start_time if self.start_time else 0
            self.logger.info(f"File watcher stopped. Uptime: {uptime:.1f}s")

        except Exception as e:
            self.logger.error(f"Error stopping file watcher: {e}")

        finally:
            self.is_watching = False

    def get_status(self) -> dict[str, Any]:
        """Get current watcher status and statistics."""
        uptime = time.time() - self.start_time if self.start_time else 0

        return {
            "is_watching": self.is_watching,
            "root": str(self.root),
            "uptime_seconds": uptime,
            "registrations": [list(r.patterns) for r in self.registrations],
            "statistics": self.stats.copy(),
            "recent_events": [
                {"path": e.path, "event_type": e.event_type, "timestamp": e.timestamp}
                for e in list(self.recent_events)[-10:]
            ],
        }

    async def __aenter__(self) -> "FileWatcher":
        await self.start_watching()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop_watching()
