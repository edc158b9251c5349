"""Use case for pushing one local file through an uploader."""
from __future__ import annotations

import logging
import os
from typing import Optional

from drivewatch.models import UploadOutcome
from drivewatch.protocols import IUploader
from drivewatch.services.mime import mime_type_for

logger = logging.getLogger(__name__)


def _describe_exception(exc: Exception) -> str:
    message = str(exc).strip()
    if message:
        return message
    return f"{type(exc).__name__}: {repr(exc)}"


class UploadFileUseCase:
    """
    Open ``path``, infer the MIME type and hand the bytes to the uploader.

    Every ``Exception`` becomes a failed outcome; cancellation propagates.
    """

    async def execute(
        self,
        uploader: IUploader,
        path: str,
        name: Optional[str] = None,
    ) -> UploadOutcome:
        display_name = name or os.path.basename(path)
        mime_type = mime_type_for(display_name)
        try:
            with open(path, "rb") as stream:
                remote = await uploader.upload(stream, display_name, mime_type)
        except Exception as exc:
            reason = _describe_exception(exc)
            logger.warning("Upload failed for %s: %s", path, reason)
            return UploadOutcome.fail(display_name, path, reason)

        if remote is None or not getattr(remote, "remote_id", None):
            logger.warning("Uploader returned no remote id for %s", path)
            return UploadOutcome.fail(display_name, path, "Uploader returned no remote id")

        logger.info("Uploaded %s (%s) -> %s", display_name, mime_type, remote.remote_id)
        return UploadOutcome.ok(display_name, path, remote.remote_id, remote.remote_link)
