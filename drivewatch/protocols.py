"""
Protocols (Interfaces) for the collaborators drivewatch talks to.

Following Interface Segregation Principle - small, focused interfaces.
"""
from typing import Any, BinaryIO, Optional, Protocol, runtime_checkable

from .models import RemoteFile, StatusEvent, WatchSettings


@runtime_checkable
class IUploader(Protocol):
    """Interface for the cloud object store."""

    async def upload(self, stream: BinaryIO, name: str, mime_type: str) -> RemoteFile:
        """Create a remote file from ``stream``. Raises on failure."""
        ...


@runtime_checkable
class INotifier(Protocol):
    """Interface for status observers. Return value is ignored."""

    def notify(self, event: StatusEvent) -> Any:
        """Receive a status transition (may be sync or a coroutine function)."""
        ...


@runtime_checkable
class ISettingsStore(Protocol):
    """Interface for persisted watch settings."""

    def load(self) -> WatchSettings:
        ...

    def save_root(self, root_path: Optional[str]) -> None:
        ...

    def set_watch_enabled(self, enabled: bool) -> None:
        ...

    def clear(self) -> None:
        ...
