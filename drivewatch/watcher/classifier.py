"""Path classification: which directories to observe, which files to upload."""
import os
from typing import Tuple, Union

PathLike = Union[str, "os.PathLike[str]"]

# Placeholder suffixes written by editors and downloaders before the final rename.
TRANSIENT_SUFFIXES: Tuple[str, ...] = (".tmp", ".temp", ".part", ".crdownload")


class PathClassifier:
    """Decides whether a path is a watchable directory or an upload-eligible file."""

    def __init__(self, transient_suffixes: Tuple[str, ...] = TRANSIENT_SUFFIXES):
        self._transient_suffixes = tuple(s.lower() for s in transient_suffixes)

    @staticmethod
    def is_directory(path: PathLike) -> bool:
        """True for an existing, non-symlinked directory."""
        return os.path.isdir(path) and not os.path.islink(path)

    def is_upload_eligible(self, filename: PathLike) -> bool:
        """
        Check if a file name denotes a finished artifact.

        Hidden files and the known placeholder suffixes are transient;
        everything else is eligible.
        """
        name = os.path.basename(os.fspath(filename)).lower()
        if not name or name.startswith("."):
            return False
        return not name.endswith(self._transient_suffixes)
