"""
File watching for the live-reload development server.

This package provides the watchdog-based file watcher, glob matching for
watch registrations, and the coordinator that rebuilds specification sources.
"""

from devserver.watchers.file_watcher import FileWatcher, WatchRegistration

__all__ = ["FileWatcher", "WatchRegistration"]
