"""Manual upload of user-selected files."""
import logging
import os
from dataclasses import replace
from typing import Callable, Iterable, List, Optional

from drivewatch.models import ManualUploadResult, ManualUploadState, StatusEvent, UploadOutcome
from drivewatch.protocols import IUploader
from drivewatch.use_cases.upload_file import UploadFileUseCase
from drivewatch.utils.events import StatusBus

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ManualUploadState], None]


class ManualUploadHandler:
    """
    Uploads a selection of files one after another.

    ``state`` reflects the batch in progress; the optional progress callback
    receives a snapshot before and after each file.

    Usage:
        handler = ManualUploadHandler(uploader)
        result = await handler.upload_files([Path("a.pdf"), Path("b.jpg")])
    """

    def __init__(
        self,
        uploader: IUploader,
        status: Optional[StatusBus] = None,
        upload_file: Optional[UploadFileUseCase] = None,
    ):
        self._uploader = uploader
        self._status = status or StatusBus()
        self._upload_file = upload_file or UploadFileUseCase()
        self._state = ManualUploadState()

    @property
    def state(self) -> ManualUploadState:
        return self._state

    def reset_state(self) -> None:
        self._state = ManualUploadState()

    async def upload_files(
        self,
        paths: Iterable,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ManualUploadResult:
        selected = self._dedupe(paths)
        total = len(selected)
        results: List[UploadOutcome] = []
        if not selected:
            return ManualUploadResult(total_files=0, uploaded_files=0, failed_files=0, results=[])

        self._update(
            progress_callback,
            is_uploading=True,
            current_index=0,
            total_files=total,
            progress=0.0,
            results=[],
            error_message=None,
        )

        for index, path in enumerate(selected):
            self._update(progress_callback, current_index=index + 1, progress=index / total)
            outcome = await self._upload_one(path)
            results.append(outcome)
            self._update(progress_callback, progress=(index + 1) / total, results=list(results))

        failed = sum(1 for r in results if not r.success)
        error_message = f"{failed} of {total} uploads failed" if failed else None
        self._update(
            progress_callback,
            is_uploading=False,
            progress=1.0,
            error_message=error_message,
        )
        logger.info("Manual upload finished: %d uploaded, %d failed", total - failed, failed)
        return ManualUploadResult(
            total_files=total,
            uploaded_files=total - failed,
            failed_files=failed,
            results=results,
        )

    async def _upload_one(self, path: str) -> UploadOutcome:
        name = os.path.basename(path)
        if not os.path.isfile(path):
            reason = "not a file" if os.path.exists(path) else "file not found"
            self._status.publish(StatusEvent.failed(name, reason))
            return UploadOutcome.fail(name, path, reason)

        self._status.publish(StatusEvent.uploading(name))
        outcome = await self._upload_file.execute(self._uploader, path, name)
        if outcome.success:
            self._status.publish(StatusEvent.completed(name, outcome.remote_link))
        else:
            self._status.publish(StatusEvent.failed(name, outcome.reason or "unknown error"))
        return outcome

    def _update(self, progress_callback: Optional[ProgressCallback], **changes) -> None:
        self._state = replace(self._state, **changes)
        if progress_callback is None:
            return
        try:
            progress_callback(self._state)
        except Exception as e:
            logger.error(f"Error in manual upload progress callback: {e}")

    @staticmethod
    def _dedupe(paths: Iterable) -> List[str]:
        seen = set()
        selected = []
        for path in paths:
            absolute = os.path.abspath(os.fspath(path))
            if absolute not in seen:
                seen.add(absolute)
                selected.append(absolute)
        return selected
