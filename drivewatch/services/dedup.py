"""
DedupTracker - Admission control for uploads, plus a local ledger of
files already uploaded.

A tracked path is either in flight or done. Failed uploads are released so a
later finalize event for the same path can try again. Only done entries are
written to the ledger file.
"""
import json
import logging
import os
import threading
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_DIR = Path.home() / ".config" / "drivewatch"
DEFAULT_LEDGER_FILE = "uploaded.json"


class TrackState(Enum):
    IN_FLIGHT = "in_flight"
    DONE = "done"


def canonical_path(path) -> str:
    """Identity key for a file (absolute, symlinks resolved)."""
    return str(Path(path).resolve())


class DedupTracker:
    """
    Tracks in-flight and uploaded paths.

    ``try_admit`` is an atomic check-and-reserve: of two concurrent callers
    for the same path exactly one gets True.

    Usage:
        tracker = DedupTracker(ledger_path)
        await tracker.load()
        if tracker.try_admit(path):
            try:
                ...upload...
                tracker.mark_done(path, remote_id="abc")
            except Exception:
                tracker.release(path)
        await tracker.save()
    """

    def __init__(self, ledger_path: Optional[Path] = None):
        """
        Args:
            ledger_path: JSON file for done entries. None keeps everything in memory.
        """
        self._ledger_path = Path(ledger_path) if ledger_path else None
        self._states: Dict[str, TrackState] = {}
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._dirty = False

    @property
    def ledger_path(self) -> Optional[Path]:
        return self._ledger_path

    def try_admit(self, path) -> bool:
        """Reserve ``path`` for upload. False if it is in flight or done."""
        key = canonical_path(path)
        with self._lock:
            if key in self._states:
                return False
            self._states[key] = TrackState.IN_FLIGHT
            return True

    def release(self, path) -> None:
        """Drop an in-flight reservation so the path can be admitted again."""
        key = canonical_path(path)
        with self._lock:
            if self._states.get(key) == TrackState.IN_FLIGHT:
                del self._states[key]

    def mark_done(self, path, **details: Any) -> None:
        """Keep ``path`` permanently (until reset). Details go to the ledger."""
        key = canonical_path(path)
        entry = {k: v for k, v in details.items() if v is not None}
        entry["uploaded_at"] = datetime.now().isoformat()
        with self._lock:
            self._states[key] = TrackState.DONE
            self._entries[key] = entry
            self._dirty = True

    def is_done(self, path) -> bool:
        with self._lock:
            return self._states.get(canonical_path(path)) == TrackState.DONE

    def state_of(self, path) -> Optional[TrackState]:
        with self._lock:
            return self._states.get(canonical_path(path))

    @property
    def in_flight(self) -> List[str]:
        with self._lock:
            return [p for p, s in self._states.items() if s == TrackState.IN_FLIGHT]

    def history(self) -> Dict[str, Dict[str, Any]]:
        """Copy of the done entries, keyed by path."""
        with self._lock:
            return {path: dict(entry) for path, entry in self._entries.items()}

    def reset(self) -> None:
        """Forget every done entry. In-flight reservations are kept."""
        with self._lock:
            for path in list(self._entries):
                if self._states.get(path) == TrackState.DONE:
                    del self._states[path]
            self._entries.clear()
            self._dirty = True
        logger.info("DedupTracker: Cleared upload ledger")

    def cleanup_missing(self) -> int:
        """
        Remove done entries whose files no longer exist.

        Returns:
            Number of entries removed
        """
        with self._lock:
            missing = [p for p in self._entries if not os.path.exists(p)]
            for path in missing:
                del self._entries[path]
                if self._states.get(path) == TrackState.DONE:
                    del self._states[path]
            if missing:
                self._dirty = True
        if missing:
            logger.info("DedupTracker: Cleaned up %d missing entries", len(missing))
        return len(missing)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            in_flight = sum(1 for s in self._states.values() if s == TrackState.IN_FLIGHT)
            return {
                "done": len(self._states) - in_flight,
                "in_flight": in_flight,
                "dirty": int(self._dirty),
            }

    async def load(self) -> None:
        """Load done entries from the ledger file."""
        if self._ledger_path is None:
            return
        try:
            if not self._ledger_path.exists():
                logger.debug("DedupTracker: No ledger at %s, starting fresh", self._ledger_path)
                return
            with open(self._ledger_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning("DedupTracker: Failed to parse ledger: %s - starting fresh", e)
            return
        except OSError as e:
            logger.warning("DedupTracker: Failed to read ledger: %s - starting fresh", e)
            return

        if not isinstance(data, dict):
            logger.warning("DedupTracker: Ledger is not a mapping - starting fresh")
            return

        with self._lock:
            for path, entry in data.items():
                self._entries[path] = entry if isinstance(entry, dict) else {}
                if self._states.get(path) != TrackState.IN_FLIGHT:
                    self._states[path] = TrackState.DONE
        logger.info("DedupTracker: Loaded %d entries from %s", len(data), self._ledger_path)

    async def save(self) -> None:
        """Write done entries to the ledger file if anything changed."""
        if self._ledger_path is None:
            return
        with self._lock:
            if not self._dirty:
                return
            snapshot = {path: dict(entry) for path, entry in self._entries.items()}
            self._dirty = False

        try:
            self._ledger_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._ledger_path.with_suffix(self._ledger_path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(snapshot, f, indent=2)
            os.replace(tmp_path, self._ledger_path)
            logger.debug("DedupTracker: Saved %d entries to %s", len(snapshot), self._ledger_path)
        except OSError as e:
            with self._lock:
                self._dirty = True
            logger.error("DedupTracker: Failed to save ledger: %s", e)
