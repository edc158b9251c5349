"""
WatchSessionController - start/stop lifecycle of a watch session.

State machine: IDLE → WATCHING → IDLE. Starting while watching tears the
previous session down first; stopping while idle does nothing.
"""
import asyncio
import logging
import os
from enum import Enum
from typing import Callable, Optional

from drivewatch.errors import ConfigurationError
from drivewatch.models import StatusEvent, WatchConfig, WatchSession
from drivewatch.protocols import ISettingsStore, IUploader
from drivewatch.services.dedup import DedupTracker
from drivewatch.utils.events import StatusBus
from drivewatch.watcher.recursive import RecursiveWatcher
from .worker import UploadWorker

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    WATCHING = "watching"


class WatchSessionController:
    """
    Wires a RecursiveWatcher into an UploadWorker for one root at a time.

    Usage:
        controller = WatchSessionController(uploader, status=StatusBus(notifier))
        await controller.start_session("/watch")
        ...
        await controller.stop_session()
    """

    def __init__(
        self,
        uploader: IUploader,
        status: Optional[StatusBus] = None,
        settings: Optional[ISettingsStore] = None,
        tracker: Optional[DedupTracker] = None,
        config: Optional[WatchConfig] = None,
        watcher_factory: Optional[Callable[[], RecursiveWatcher]] = None,
    ):
        self._uploader = uploader
        self._status = status or StatusBus()
        self._settings = settings
        self._config = config or WatchConfig()
        self._tracker = tracker or DedupTracker(self._config.ledger_path)
        self._watcher_factory = watcher_factory or (
            lambda: RecursiveWatcher(debounce_seconds=self._config.debounce_seconds)
        )
        self._lock = asyncio.Lock()
        self._state = SessionState.IDLE
        self._session: Optional[WatchSession] = None
        self._watcher: Optional[RecursiveWatcher] = None
        self._worker: Optional[UploadWorker] = None
        self._ledger_loaded = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.stop_session()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Optional[WatchSession]:
        return self._session

    @property
    def is_watching(self) -> bool:
        return self._state == SessionState.WATCHING

    @property
    def tracker(self) -> DedupTracker:
        return self._tracker

    @property
    def watcher(self) -> Optional[RecursiveWatcher]:
        return self._watcher

    @property
    def worker(self) -> Optional[UploadWorker]:
        return self._worker

    async def start_session(self, root_path: Optional[str] = None) -> WatchSession:
        """
        Start watching ``root_path`` (or the saved root when omitted).

        A root that does not exist or is not a directory gives an inert
        session: watching state, no observers.

        Raises:
            ConfigurationError: no root given and none saved
        """
        async with self._lock:
            if self._state == SessionState.WATCHING:
                await self._stop_locked()

            root = self._resolve_root(root_path)
            if not self._ledger_loaded:
                await self._tracker.load()
                self._ledger_loaded = True

            watcher = self._watcher_factory()
            stream = watcher.start(root)
            worker = UploadWorker(
                self._uploader,
                self._tracker,
                status=self._status,
                max_concurrency=self._config.max_concurrency,
                on_release=watcher.forget,
            )
            worker.consume(stream)

            inert = not watcher.watched_directories
            self._watcher = watcher
            self._worker = worker
            self._session = WatchSession(root_path=watcher.root_path or root, inert=inert)
            self._state = SessionState.WATCHING

            if self._settings is not None:
                self._settings.save_root(root)
                self._settings.set_watch_enabled(True)

            if inert:
                logger.warning("Session for %s is inactive: not a watchable directory", root)
                self._status.publish(StatusEvent.watching(f"Watching: {root} (inactive: not a directory)"))
            else:
                logger.info("Session started for %s", root)
                self._status.publish(StatusEvent.watching(f"Watching: {root}"))
            return self._session

    async def stop_session(self) -> None:
        """Stop the current session. No-op when idle."""
        async with self._lock:
            if self._state == SessionState.IDLE:
                return
            await self._stop_locked()
            if self._settings is not None:
                self._settings.set_watch_enabled(False)

    async def resume_if_enabled(self) -> Optional[WatchSession]:
        """Restart the saved session if settings say watching was on."""
        if self._settings is None:
            return None
        saved = self._settings.load()
        if not saved.watch_enabled or not saved.root_path:
            return None
        logger.info("Resuming saved watch session for %s", saved.root_path)
        return await self.start_session(saved.root_path)

    def _resolve_root(self, root_path: Optional[str]) -> str:
        if root_path:
            return os.path.abspath(os.path.expanduser(os.fspath(root_path)))
        saved = self._settings.load().root_path if self._settings is not None else None
        if not saved:
            raise ConfigurationError("no watch root given and none saved")
        return saved

    async def _stop_locked(self) -> None:
        watcher, worker, session = self._watcher, self._worker, self._session
        self._watcher = None
        self._worker = None
        self._session = None
        self._state = SessionState.IDLE

        if watcher is not None:
            # Joins watchdog threads; keep the loop free meanwhile.
            await asyncio.to_thread(watcher.stop)
        if worker is not None:
            await worker.close()
        await self._tracker.save()
        await self._status.drain()
        if session is not None:
            logger.info("Session stopped for %s", session.root_path)
