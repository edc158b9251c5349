"""
drivewatch - Watch a folder tree and upload finished files to cloud storage.

Usage:
    from drivewatch import HTTPUploader, WatchSessionController, StatusBus

    async with HTTPUploader(api_url, token=token) as uploader:
        controller = WatchSessionController(uploader, status=StatusBus(print))
        await controller.start_session("/home/me/Scans")
        ...
        await controller.stop_session()

    # Upload a selection of files right away
    handler = ManualUploadHandler(uploader)
    result = await handler.upload_files([Path("report.pdf")])
"""
__version__ = "0.1.0"

from .errors import (
    ConfigurationError,
    DriveWatchError,
    TransientUploadError,
    UploadRejectedError,
)
from .models import (
    ManualUploadResult,
    ManualUploadState,
    RemoteFile,
    StatusEvent,
    StatusKind,
    UploadOutcome,
    UploadStatus,
    WatchConfig,
    WatchedFile,
    WatchEvent,
    WatchEventKind,
    WatchSession,
    WatchSettings,
)
from .orchestrator import ManualUploadHandler, SessionState, UploadWorker, WatchSessionController
from .services import DedupTracker, HTTPUploader, JsonSettingsStore
from .utils.events import StatusBus
from .watcher import PathClassifier, RecursiveWatcher, WatchEventStream

__all__ = [
    # Main
    "WatchSessionController",
    "SessionState",
    "ManualUploadHandler",
    "UploadWorker",
    # Watching
    "PathClassifier",
    "RecursiveWatcher",
    "WatchEventStream",
    # Services
    "DedupTracker",
    "HTTPUploader",
    "JsonSettingsStore",
    "StatusBus",
    # Models
    "ManualUploadResult",
    "ManualUploadState",
    "RemoteFile",
    "StatusEvent",
    "StatusKind",
    "UploadOutcome",
    "UploadStatus",
    "WatchConfig",
    "WatchedFile",
    "WatchEvent",
    "WatchEventKind",
    "WatchSession",
    "WatchSettings",
    # Errors
    "DriveWatchError",
    "ConfigurationError",
    "TransientUploadError",
    "UploadRejectedError",
]
