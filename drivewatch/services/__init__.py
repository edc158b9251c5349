"""Services for drivewatch."""
from .dedup import DedupTracker, TrackState
from .hashing import blake3_file
from .http_uploader import HTTPUploader
from .mime import mime_type_for
from .settings import JsonSettingsStore

__all__ = [
    "DedupTracker",
    "TrackState",
    "blake3_file",
    "HTTPUploader",
    "mime_type_for",
    "JsonSettingsStore",
]
