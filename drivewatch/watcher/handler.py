"""
Watchdog event handler for the recursive watcher.

Translates raw watchdog events into watcher callbacks. Holds no state of its
own; registry changes and filtering happen in RecursiveWatcher.
"""
import os
from typing import TYPE_CHECKING, List, Type

from watchdog.events import (
    DirCreatedEvent,
    DirDeletedEvent,
    DirMovedEvent,
    FileClosedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)

if TYPE_CHECKING:
    from .recursive import RecursiveWatcher

# Only what the watcher acts on; keeps the inotify mask small.
WATCHED_EVENT_TYPES: List[Type[FileSystemEvent]] = [
    DirCreatedEvent,
    DirDeletedEvent,
    DirMovedEvent,
    FileMovedEvent,
    FileClosedEvent,
]


class TreeEventHandler(FileSystemEventHandler):
    """Routes watchdog events of one observed tree to its RecursiveWatcher."""

    def __init__(self, watcher: "RecursiveWatcher"):
        super().__init__()
        self._watcher = watcher

    @staticmethod
    def _path(value) -> str:
        return os.fsdecode(value) if value else ""

    def dispatch(self, event: FileSystemEvent) -> None:
        # Per-entry events watchdog derives for a moved tree; the watcher
        # scans such trees itself.
        if event.is_synthetic:
            return
        super().dispatch(event)

    def on_created(self, event: FileSystemEvent) -> None:
        # A created file is still growing; it is finalized on close.
        if event.is_directory:
            self._watcher.handle_directory_created(self._path(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        src_path = self._path(event.src_path)
        dest_path = self._path(event.dest_path)
        if event.is_directory:
            self._watcher.handle_directory_moved(src_path, dest_path)
        elif dest_path:
            self._watcher.handle_file_candidate(dest_path)

    def on_closed(self, event: FileSystemEvent) -> None:
        self._watcher.handle_file_candidate(self._path(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            self._watcher.handle_directory_removed(self._path(event.src_path))
