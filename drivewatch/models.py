"""
Models for drivewatch.

Immutable dataclasses for everything that crosses a component boundary.
"""
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional


class UploadStatus(Enum):
    """Upload operation status."""
    SUCCESS = "success"
    FAILED = "failed"


class WatchEventKind(Enum):
    """Normalized filesystem event kinds."""
    DIRECTORY_CREATED = "directory_created"
    FILE_FINALIZED = "file_finalized"


class StatusKind(Enum):
    """Status transitions reported to notifiers."""
    WATCHING = "watching"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class WatchEvent:
    """A normalized event coming out of the recursive watcher."""
    kind: WatchEventKind
    path: str

    @classmethod
    def directory_created(cls, path: str) -> "WatchEvent":
        return cls(WatchEventKind.DIRECTORY_CREATED, path)

    @classmethod
    def file_finalized(cls, path: str) -> "WatchEvent":
        return cls(WatchEventKind.FILE_FINALIZED, path)


@dataclass(frozen=True)
class WatchedFile:
    """A finalized file waiting to be uploaded. Identity is the canonical path."""
    path: str
    directory: str
    discovered_at: datetime = field(default_factory=datetime.now, compare=False)

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    @classmethod
    def from_path(cls, path: str) -> "WatchedFile":
        canonical = str(Path(path).resolve())
        return cls(path=canonical, directory=os.path.dirname(canonical))


@dataclass(frozen=True)
class RemoteFile:
    """What an uploader hands back for a stored object."""
    remote_id: str
    remote_link: Optional[str] = None


@dataclass(frozen=True)
class UploadOutcome:
    """Immutable result of an upload attempt."""
    name: str
    path: str
    status: UploadStatus = UploadStatus.SUCCESS
    remote_id: Optional[str] = None
    remote_link: Optional[str] = None
    reason: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == UploadStatus.SUCCESS

    @classmethod
    def ok(cls, name: str, path: str, remote_id: str, remote_link: Optional[str] = None):
        return cls(
            name=name,
            path=path,
            status=UploadStatus.SUCCESS,
            remote_id=remote_id,
            remote_link=remote_link,
        )

    @classmethod
    def fail(cls, name: str, path: str, reason: str):
        return cls(name=name, path=path, status=UploadStatus.FAILED, reason=reason)


@dataclass(frozen=True)
class StatusEvent:
    """Status transition delivered to notifiers."""
    kind: StatusKind
    name: str
    detail: Optional[str] = None

    @classmethod
    def watching(cls, description: str) -> "StatusEvent":
        return cls(StatusKind.WATCHING, description)

    @classmethod
    def uploading(cls, name: str) -> "StatusEvent":
        return cls(StatusKind.UPLOADING, name)

    @classmethod
    def completed(cls, name: str, remote_link: Optional[str] = None) -> "StatusEvent":
        return cls(StatusKind.COMPLETED, name, remote_link)

    @classmethod
    def failed(cls, name: str, reason: str) -> "StatusEvent":
        return cls(StatusKind.FAILED, name, reason)

    def describe(self) -> str:
        if self.kind == StatusKind.WATCHING:
            return self.name
        if self.kind == StatusKind.UPLOADING:
            return f"Uploading: {self.name}"
        if self.kind == StatusKind.COMPLETED:
            return f"Upload complete: {self.name}"
        return f"Upload failed: {self.name}: {self.detail}"


@dataclass(frozen=True)
class WatchConfig:
    """Immutable configuration for watch sessions."""
    debounce_seconds: float = 1.0
    max_concurrency: int = 1
    ledger_path: Optional[Path] = None
    settings_path: Optional[Path] = None

    def __post_init__(self):
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if self.debounce_seconds < 0:
            raise ValueError("debounce_seconds cannot be negative")


@dataclass(frozen=True)
class WatchSettings:
    """Persisted user choices: which root to watch and whether watching is on."""
    root_path: Optional[str] = None
    watch_enabled: bool = False


@dataclass(frozen=True)
class WatchSession:
    """One start-to-stop lifecycle rooted at a single path."""
    root_path: str
    active: bool = True
    inert: bool = False
    started_at: datetime = field(default_factory=datetime.now)


@dataclass
class ManualUploadState:
    """Progress of a manual (user-selected) upload batch."""
    is_uploading: bool = False
    current_index: int = 0
    total_files: int = 0
    progress: float = 0.0
    results: List[UploadOutcome] = field(default_factory=list)
    error_message: Optional[str] = None


@dataclass(frozen=True)
class ManualUploadResult:
    """Summary of a manual upload batch."""
    total_files: int
    uploaded_files: int
    failed_files: int
    results: List[UploadOutcome]

    @property
    def success(self) -> bool:
        return self.failed_files == 0
