"""
UploadWorker - consumes FILE_FINALIZED events and uploads admitted files.

Flow per event:
1. DedupTracker.try_admit → skip if already in flight or done
2. Publish Uploading(name)
3. Upload (bounded by a semaphore, default one at a time)
4. Success → mark_done + Completed(name); failure → release + Failed(name, reason)
"""
import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from drivewatch.models import (
    StatusEvent,
    UploadOutcome,
    WatchedFile,
    WatchEvent,
    WatchEventKind,
)
from drivewatch.protocols import IUploader
from drivewatch.services.dedup import DedupTracker
from drivewatch.services.hashing import blake3_file
from drivewatch.use_cases.upload_file import UploadFileUseCase
from drivewatch.utils.events import StatusBus
from drivewatch.watcher.stream import WatchEventStream

logger = logging.getLogger(__name__)


class UploadWorker:
    """
    Upload side of a watch session.

    Event consumption never waits for an upload: each admitted file gets its
    own task, and ``max_concurrency`` bounds how many of them transfer at once.
    """

    def __init__(
        self,
        uploader: IUploader,
        tracker: DedupTracker,
        status: Optional[StatusBus] = None,
        max_concurrency: int = 1,
        upload_file: Optional[UploadFileUseCase] = None,
        on_release: Optional[Callable[[str], None]] = None,
    ):
        self._uploader = uploader
        self._tracker = tracker
        self._status = status or StatusBus()
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._upload_file = upload_file or UploadFileUseCase()
        self._on_release = on_release
        self._tasks: Dict[asyncio.Task, str] = {}
        self._consumer: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def pending(self) -> int:
        """Uploads admitted but not finished."""
        return len(self._tasks)

    @property
    def is_closed(self) -> bool:
        return self._closed

    def consume(self, stream: WatchEventStream) -> asyncio.Task:
        """Start consuming ``stream`` in the background."""
        self._consumer = asyncio.create_task(self.run(stream))
        return self._consumer

    async def run(self, stream: WatchEventStream) -> None:
        async for event in stream:
            if self._closed:
                break
            self.on_event(event)

    def on_event(self, event: WatchEvent) -> Optional[asyncio.Task]:
        """Admit a finalized file and schedule its upload. Returns the task, if any."""
        if self._closed:
            return None
        if event.kind != WatchEventKind.FILE_FINALIZED:
            logger.debug("Ignoring %s for %s", event.kind.value, event.path)
            return None

        watched = WatchedFile.from_path(event.path)
        if not self._tracker.try_admit(watched.path):
            logger.debug("Already uploaded or in flight, skipping: %s", watched.path)
            return None

        task = asyncio.create_task(self._process(watched))
        self._tasks[task] = watched.path
        task.add_done_callback(self._forget)
        return task

    async def _process(self, watched: WatchedFile) -> UploadOutcome:
        try:
            async with self._semaphore:
                return await self.upload_file(watched)
        except asyncio.CancelledError:
            self._tracker.release(watched.path)
            raise

    def _forget(self, task: asyncio.Task) -> None:
        self._tasks.pop(task, None)

    def _release_failed(self, path: str) -> None:
        """Make a failed path uploadable again, including its next finalize event."""
        self._tracker.release(path)
        if self._on_release is not None:
            self._on_release(path)

    async def upload_file(self, watched: WatchedFile) -> UploadOutcome:
        """Upload an already admitted file and settle its tracker state."""
        self._status.publish(StatusEvent.uploading(watched.name))
        try:
            fingerprint = await self._fingerprint(watched.path)
            outcome = await self._upload_file.execute(self._uploader, watched.path, watched.name)
        except asyncio.CancelledError:
            self._tracker.release(watched.path)
            raise

        if not outcome.success:
            self._release_failed(watched.path)
            self._status.publish(StatusEvent.failed(watched.name, outcome.reason or "unknown error"))
            return outcome

        self._tracker.mark_done(
            watched.path,
            remote_id=outcome.remote_id,
            remote_link=outcome.remote_link,
            **fingerprint,
        )
        self._status.publish(StatusEvent.completed(watched.name, outcome.remote_link))
        await self._tracker.save()
        return outcome

    @staticmethod
    async def _fingerprint(path: str) -> Dict[str, Any]:
        try:
            return {
                "blake3_hash": await blake3_file(Path(path)),
                "file_size": os.path.getsize(path),
            }
        except OSError as exc:
            logger.debug("Could not fingerprint %s: %s", path, exc)
            return {}

    async def join(self) -> None:
        """Wait for every scheduled upload to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Stop consuming and cancel in-flight uploads; waits for them to unwind."""
        self._closed = True
        paths = list(self._tasks.values())
        tasks = list(self._tasks)
        if self._consumer is not None:
            tasks.append(self._consumer)
        cancelled = 0
        for task in tasks:
            if not task.done():
                task.cancel()
                cancelled += 1
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        # Tasks cancelled before their first step never reached _process.
        for path in paths:
            self._tracker.release(path)
        if cancelled:
            logger.debug("Cancelled %d worker tasks", cancelled)
        self._consumer = None
