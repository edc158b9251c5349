"""Error taxonomy for drivewatch."""


class DriveWatchError(Exception):
    """Base class for drivewatch errors."""


class ConfigurationError(DriveWatchError):
    """Raised when a session or the CLI cannot be configured."""


class TransientUploadError(DriveWatchError):
    """Upload failed for a reason that may go away (network, 5xx, I/O)."""


class UploadRejectedError(DriveWatchError):
    """Remote store refused the upload (4xx)."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(f"upload rejected ({status_code}): {detail}")
        self.status_code = status_code
        self.detail = detail
