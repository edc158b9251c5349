"""JSON-file settings store: watched root and the watch-enabled flag."""
import json
import logging
import os
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from drivewatch.models import WatchSettings

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = "settings.json"


class JsonSettingsStore:
    """
    Persists WatchSettings to a small JSON file.

    Implements ISettingsStore protocol.
    """

    def __init__(self, path: Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> WatchSettings:
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return WatchSettings()
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Settings: Failed to read %s: %s - using defaults", self._path, e)
            return WatchSettings()

        if not isinstance(data, dict):
            return WatchSettings()
        return WatchSettings(
            root_path=data.get("root_path") or None,
            watch_enabled=bool(data.get("watch_enabled", False)),
        )

    def save_root(self, root_path: Optional[str]) -> None:
        current = self.load()
        self._write(WatchSettings(root_path=root_path, watch_enabled=current.watch_enabled))

    def set_watch_enabled(self, enabled: bool) -> None:
        current = self.load()
        self._write(WatchSettings(root_path=current.root_path, watch_enabled=enabled))

    def clear(self) -> None:
        self._write(WatchSettings())

    def _write(self, settings: WatchSettings) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(asdict(settings), f, indent=2)
        os.replace(tmp_path, self._path)
        logger.debug("Settings: Saved %s", self._path)
