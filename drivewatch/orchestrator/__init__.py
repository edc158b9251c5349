from .manual import ManualUploadHandler
from .session import SessionState, WatchSessionController
from .worker import UploadWorker

__all__ = ["ManualUploadHandler", "SessionState", "WatchSessionController", "UploadWorker"]
