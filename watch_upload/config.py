"""Configuration management for Watch Upload.

Stores and retrieves application settings and the task configurations
(default task plus hotkey-bound tasks) from a JSON config file in the
platform-appropriate application data directory.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any

from watch_upload.platform_utils import (
    get_config_dir as _platform_config_dir,
)
from watch_upload.platform_utils import (
    get_log_path as _platform_log_path,
)
from watch_upload.settings import HotkeySettings, TaskConfiguration, TaskSources

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: dict[str, Any] = {
    "log_level": "INFO",
    # ---- stability ----
    "stable_time_seconds": 1,  # file size must be unchanged this long
    "poll_interval_seconds": 1,  # how often pending files are re-checked
    # ---- log rotation ----
    "max_log_size_mb": 10,  # rotate log when it exceeds this size
    "log_backup_count": 3,  # number of rotated log files to keep
    # ---- task configurations ----
    "default_task": {},
    "hotkeys": [],  # list of {"hotkey": str, "task": {...}}
}


def get_config_dir() -> Path:
    """Return the platform-appropriate application config directory."""
    return _platform_config_dir()


def get_config_path() -> Path:
    """Return the path to the configuration file."""
    return get_config_dir() / "config.json"


def get_log_path() -> Path:
    """Return the path to the log file."""
    return _platform_log_path()


class Config:
    """Thread-safe configuration manager backed by a JSON file."""

    def __init__(self, path: Path | None = None):
        """Load config from *path*, falling back to the platform default."""
        self._path = path or get_config_path()
        self._data: dict[str, Any] = dict(DEFAULT_CONFIG)
        self._lock = threading.Lock()
        self.load()

    @property
    def path(self) -> Path:
        return self._path

    # ---- persistence ----

    def load(self) -> None:
        """Load configuration from disk, applying defaults for missing keys."""
        if self._path.exists():
            try:
                with open(self._path, encoding="utf-8") as fh:
                    stored = json.load(fh)
                # Merge stored values over defaults so new keys get defaults
                with self._lock:
                    self._data = {**DEFAULT_CONFIG, **stored}
                logger.info("Configuration loaded from %s", self._path)
            except (json.JSONDecodeError, OSError) as exc:
                logger.warning("Could not read config (%s); using defaults.", exc)
                with self._lock:
                    self._data = dict(DEFAULT_CONFIG)
        else:
            with self._lock:
                self._data = dict(DEFAULT_CONFIG)
            self.save()
            logger.info("Created default configuration at %s", self._path)

    def save(self) -> None:
        """Persist the current configuration to disk."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._lock:
                payload = json.dumps(self._data, indent=2)
            with open(self._path, "w", encoding="utf-8") as fh:
                fh.write(payload)
            logger.info("Configuration saved.")
        except OSError as exc:
            logger.error("Failed to save configuration: %s", exc)

    # ---- accessors ----

    @property
    def log_level(self) -> str:
        """Return the current logging level name."""
        return self._data.get("log_level", "INFO")

    @log_level.setter
    def log_level(self, value: str) -> None:
        """Set the logging level name."""
        self._data["log_level"] = value

    @property
    def stable_time(self) -> float:
        """Return the stability threshold in seconds."""
        return float(self._data.get("stable_time_seconds", 1))

    @stable_time.setter
    def stable_time(self, value: float) -> None:
        """Set the stability threshold (minimum 0 s)."""
        self._data["stable_time_seconds"] = max(0.0, float(value))

    @property
    def poll_interval(self) -> float:
        """Return how often pending files are re-checked, in seconds."""
        return float(self._data.get("poll_interval_seconds", 1))

    @poll_interval.setter
    def poll_interval(self, value: float) -> None:
        """Set the re-check interval (minimum 0.1 s)."""
        self._data["poll_interval_seconds"] = max(0.1, float(value))

    # ---- log rotation ----

    @property
    def max_log_size_mb(self) -> int:
        """Return the maximum log file size in MB before rotation."""
        return int(self._data.get("max_log_size_mb", 10))

    @max_log_size_mb.setter
    def max_log_size_mb(self, value: int) -> None:
        """Set the maximum log file size in MB (minimum 1)."""
        self._data["max_log_size_mb"] = max(1, int(value))

    @property
    def log_backup_count(self) -> int:
        """Return the number of rotated log backups to keep."""
        return int(self._data.get("log_backup_count", 3))

    @log_backup_count.setter
    def log_backup_count(self, value: int) -> None:
        """Set the number of rotated log backups to keep."""
        self._data["log_backup_count"] = max(0, int(value))

    # ---- task configurations ----

    def task_sources(self) -> TaskSources:
        """Build the live ``TaskSources`` from the stored task dictionaries.

        Watch-folder ids repeated across the stored entries are regenerated,
        so every loaded settings object has an id of its own.
        """
        with self._lock:
            default = dict(self._data.get("default_task") or {})
            hotkeys = list(self._data.get("hotkeys") or [])
        default.setdefault("name", "Default")
        sources = TaskSources(
            default_task_settings=TaskConfiguration.from_dict(default),
            hotkeys=[HotkeySettings.from_dict(h) for h in hotkeys],
        )
        sources.ensure_unique_ids()
        return sources

    def store_task_sources(self, sources: TaskSources) -> None:
        """Write *sources* back into the config (call ``save()`` to persist)."""
        default = sources.default_task_settings.to_dict()
        hotkeys = [h.to_dict() for h in sources.hotkeys]
        with self._lock:
            self._data["default_task"] = default
            self._data["hotkeys"] = hotkeys

    # ---- convenience ----

    def is_configured(self) -> bool:
        """Return True when at least one watch folder is configured."""
        with self._lock:
            tasks = [self._data.get("default_task") or {}] + [
                h.get("task") or {} for h in self._data.get("hotkeys") or []
            ]
        return any(t.get("watch_folder_list") for t in tasks)
