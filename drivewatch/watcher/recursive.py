"""
RecursiveWatcher - one recursive watchdog watch over a directory tree.

Flow:
1. start(root) schedules a single recursive watch on root and records root and
   every listable subdirectory in the registry (symlinked directories are not
   followed)
2. A created or moved-in directory joins the registry; files already inside it
   are picked up by a catch-up scan once they settle
3. Write-closed or renamed files inside registered directories pass the
   eligibility filter and a short debounce, then come out of the stream as
   FILE_FINALIZED
4. stop() releases the watches, cancels pending catch-ups and closes the stream

The registry is a set of logical subscriptions: inotify keeps one instance per
scheduled watch, so directories share the root's watch instead of getting one
each. Only a tree moved in from outside the root gets a watch of its own,
because inotify does not follow it.
"""
import logging
import os
import threading
import time
from typing import Callable, Dict, List, Optional, Set, Tuple

from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch

from drivewatch.models import WatchEvent
from .classifier import PathClassifier
from .handler import WATCHED_EVENT_TYPES, TreeEventHandler
from .stream import WatchEventStream

logger = logging.getLogger(__name__)

_RECENT_PRUNE_THRESHOLD = 1024

# path -> (size, mtime_ns) at scan time
FileSnapshot = Dict[str, Tuple[int, int]]


def create_observer() -> BaseObserver:
    """
    The platform observer. With inotify it also reports moves that cross the
    edge of the watched tree, so a directory moved in from elsewhere is told
    apart from a new one.
    """
    if Observer.__name__ == "InotifyObserver":
        return Observer(generate_full_events=True)
    return Observer()


class RecursiveWatcher:
    """
    Observes a directory tree and emits normalized watch events.

    The registry (watched directories plus the watchdog watches behind them) is
    shared between the watchdog dispatcher thread, catch-up timers and the
    caller of stop(); all of them go through ``_lock``.

    Usage:
        watcher = RecursiveWatcher()
        stream = watcher.start("/watch")   # inside a running event loop
        async for event in stream:
            ...
        watcher.stop()
    """

    def __init__(
        self,
        classifier: Optional[PathClassifier] = None,
        debounce_seconds: float = 1.0,
        observer_factory: Callable[[], BaseObserver] = create_observer,
        join_timeout: float = 5.0,
        settle_seconds: float = 0.5,
    ):
        self._classifier = classifier or PathClassifier()
        self._debounce_seconds = debounce_seconds
        self._observer_factory = observer_factory
        self._join_timeout = join_timeout
        self._settle_seconds = settle_seconds
        self._handler = TreeEventHandler(self)
        self._lock = threading.RLock()
        self._observer: Optional[BaseObserver] = None
        self._stream: Optional[WatchEventStream] = None
        self._directories: Set[str] = set()
        self._root_watch: Optional[ObservedWatch] = None
        self._moved_in_watches: Dict[str, ObservedWatch] = {}
        self._recent: Dict[str, float] = {}
        self._timers: List[threading.Timer] = []
        self._generation = 0
        self._root: Optional[str] = None
        self._active = False

    @property
    def root_path(self) -> Optional[str]:
        return self._root

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def watched_directories(self) -> List[str]:
        """Snapshot of directories whose events are currently delivered."""
        with self._lock:
            return sorted(self._directories)

    def start(self, root_path) -> WatchEventStream:
        """
        Start observing ``root_path``. Must run inside an event loop.

        A missing root, one that is not a directory, or one that cannot be
        watched at all gives an inert watch: no observers and an already
        closed stream.
        """
        self.stop()

        root = os.path.realpath(os.fspath(root_path))
        self._root = root
        if not self._classifier.is_directory(root):
            logger.warning("Watch root is not a directory, watching nothing: %s", root)
            return WatchEventStream.empty()

        observer = self._observer_factory()
        observer.start()
        try:
            watch = self._schedule(observer, root)
        except OSError as exc:
            logger.error("Cannot watch %s, watching nothing: %s", root, exc)
            observer.stop()
            observer.join(timeout=self._join_timeout)
            return WatchEventStream.empty()

        stream = WatchEventStream()
        with self._lock:
            self._generation += 1
            self._observer = observer
            self._root_watch = watch
            self._stream = stream
            self._recent.clear()
            self._active = True
            self._attach_tree(root)
            count = len(self._directories)

        logger.info("Watching %s (%d directories)", root, count)
        return stream

    def stop(self) -> None:
        """Release every watch and close the stream. Safe to call repeatedly."""
        with self._lock:
            observer = self._observer
            stream = self._stream
            was_active = self._active
            released = len(self._directories)
            timers = self._timers
            self._generation += 1
            self._active = False
            self._observer = None
            self._stream = None
            self._root_watch = None
            self._directories.clear()
            self._moved_in_watches.clear()
            self._recent.clear()
            self._timers = []

        for timer in timers:
            timer.cancel()

        if observer is not None:
            observer.unschedule_all()
            observer.stop()
            if threading.current_thread() is not observer:
                observer.join(timeout=self._join_timeout)

        if stream is not None:
            stream.close()

        if was_active:
            logger.info("Stopped watching %s (%d directories released)", self._root, released)

    def forget(self, path: str) -> None:
        """Drop the debounce record of ``path`` so its next finalize is not merged away."""
        with self._lock:
            self._recent.pop(path, None)

    # Callbacks from TreeEventHandler (watchdog dispatcher thread)

    def handle_directory_created(self, path: str) -> None:
        with self._lock:
            if not self._active or not self._within_root(path):
                return
            if not self._is_registered_parent(path):
                return
            if not self._classifier.is_directory(path):
                return
            # Rescan even when the parent's scan already registered it: the
            # parent may have been listed before this directory had its watch.
            found: FileSnapshot = {}
            self._attach_tree(path, found)
            self._schedule_catch_up(found)
            stream = self._stream
        stream.push(WatchEvent.directory_created(path))

    def handle_directory_moved(self, src_path: str, dest_path: str) -> None:
        with self._lock:
            if not self._active:
                return
            carried_watch = False
            if src_path:
                carried_watch = self._detach_tree(src_path)
            if not dest_path or not self._within_root(dest_path):
                return
            if not self._is_registered_parent(dest_path):
                return
            if not self._classifier.is_directory(dest_path):
                return
            # No source means the tree came from outside the root.
            if not src_path or carried_watch:
                if not self._watch_moved_in(dest_path):
                    return
            found: FileSnapshot = {}
            self._attach_tree(dest_path, found)
            self._schedule_catch_up(found)
            stream = self._stream
        stream.push(WatchEvent.directory_created(dest_path))

    def handle_directory_removed(self, path: str) -> None:
        with self._lock:
            if not self._active:
                return
            self._detach_tree(path)
            if path == self._root:
                logger.warning("Watch root was removed: %s", path)

    def handle_file_candidate(self, path: str) -> None:
        if not self._classifier.is_upload_eligible(path):
            logger.debug("Ignoring transient file: %s", path)
            return
        if not os.path.isfile(path):
            return

        with self._lock:
            if not self._active or not self._is_registered_parent(path):
                return
            now = time.monotonic()
            last_seen = self._recent.get(path)
            if last_seen is not None and now - last_seen < self._debounce_seconds:
                logger.debug("Debounced repeated finalize: %s", path)
                return
            self._recent[path] = now
            if len(self._recent) > _RECENT_PRUNE_THRESHOLD:
                self._prune_recent(now)
            stream = self._stream
        stream.push(WatchEvent.file_finalized(path))

    # Registry helpers, called with _lock held

    def _within_root(self, path: str) -> bool:
        root = self._root
        return bool(root) and (path == root or path.startswith(root.rstrip(os.sep) + os.sep))

    def _is_registered_parent(self, path: str) -> bool:
        return os.path.dirname(path) in self._directories

    def _schedule(self, observer: BaseObserver, directory: str) -> ObservedWatch:
        return observer.schedule(
            self._handler,
            directory,
            recursive=True,
            event_filter=WATCHED_EVENT_TYPES,
        )

    def _watch_moved_in(self, directory: str) -> bool:
        try:
            watch = self._schedule(self._observer, directory)
        except OSError as exc:
            logger.warning("Cannot watch %s, skipping: %s", directory, exc)
            return False
        self._moved_in_watches[directory] = watch
        logger.debug("Scheduled watch for moved-in tree: %s", directory)
        return True

    def _attach_tree(self, directory: str, found: Optional[FileSnapshot] = None) -> None:
        """Register ``directory`` and its subdirectories; collect regular files into ``found``."""
        pending = [directory]
        while pending:
            current = pending.pop()
            try:
                with os.scandir(current) as entries:
                    subdirectories, files = [], {}
                    for entry in entries:
                        if entry.is_dir(follow_symlinks=False):
                            subdirectories.append(entry.path)
                        elif found is not None and entry.is_file(follow_symlinks=False):
                            snapshot = self._snapshot(entry)
                            if snapshot is not None:
                                files[entry.path] = snapshot
            except OSError as exc:
                logger.warning("Cannot watch %s, skipping: %s", current, exc)
                continue
            self._directories.add(current)
            logger.debug("Attached directory: %s", current)
            pending.extend(subdirectories)
            if found is not None:
                found.update(files)

    @staticmethod
    def _snapshot(entry: os.DirEntry) -> Optional[Tuple[int, int]]:
        try:
            stat = entry.stat(follow_symlinks=False)
        except OSError:
            # gone between listing and stat
            return None
        return stat.st_size, stat.st_mtime_ns

    def _detach_tree(self, directory: str) -> bool:
        """Drop ``directory`` and everything below it. True if a watch went with it."""
        prefix = directory.rstrip(os.sep) + os.sep
        for path in [p for p in self._directories if p == directory or p.startswith(prefix)]:
            self._directories.discard(path)
            logger.debug("Detached directory: %s", path)

        moved = [p for p in self._moved_in_watches if p == directory or p.startswith(prefix)]
        for path in moved:
            watch = self._moved_in_watches.pop(path)
            try:
                self._observer.unschedule(watch)
            except KeyError:
                logger.debug("Watch already gone: %s", path)
        return bool(moved)

    def _schedule_catch_up(self, found: FileSnapshot) -> None:
        if not found:
            return
        self._timers = [t for t in self._timers if t.is_alive()]
        timer = threading.Timer(
            self._settle_seconds,
            self._catch_up,
            args=(self._generation, time.monotonic(), found),
        )
        timer.daemon = True
        self._timers.append(timer)
        timer.start()

    def _prune_recent(self, now: float) -> None:
        expired = [p for p, seen in self._recent.items() if now - seen >= self._debounce_seconds]
        for path in expired:
            del self._recent[path]

    # Catch-up timer thread

    def _catch_up(self, generation: int, scanned_at: float, found: FileSnapshot) -> None:
        """
        Finalize files that were already in a new directory before its watch.

        A file that changed since the scan was written under the watch, so its
        own close event finalizes it; one finalized meanwhile is left alone.
        """
        for path, snapshot in found.items():
            with self._lock:
                if generation != self._generation:
                    return
                if self._recent.get(path, 0.0) >= scanned_at:
                    continue
            try:
                stat = os.stat(path)
            except OSError:
                continue
            if (stat.st_size, stat.st_mtime_ns) != snapshot:
                logger.debug("Still changing, waiting for its close event: %s", path)
                continue
            self.handle_file_candidate(path)
