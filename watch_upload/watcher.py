"""File system watching for Watch Upload.

Each ``WatchFolder`` owns one watchdog subscription on a directory.  New
files go through a stability tracker (size unchanged for a while) before
a single "file ready" call is made into the trigger pipeline.
"""

from __future__ import annotations

import enum
import fnmatch
import logging
import os
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from watchdog.events import (
    FileCreatedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from watch_upload.errors import SubscriptionError
from watch_upload.settings import TaskConfiguration, WatchFolderSettings

logger = logging.getLogger(__name__)

# Glob filters that accept every file name
_MATCH_ALL = ("", "*", "*.*")


class _StabilityTracker:
    """Tracks files until they have been stable (unchanged) for a given duration."""

    def __init__(
        self,
        stable_seconds: float,
        on_stable: Callable[[Path], None],
        poll_interval: float = 1.0,
    ):
        self._stable_seconds = stable_seconds
        self._poll_interval = poll_interval
        self._on_stable = on_stable
        # file_path -> (last_change_time, last_size)
        self._pending = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def stable_seconds(self) -> float:
        return self._stable_seconds

    def start(self) -> None:
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._poll, daemon=True, name="StabilityTracker"
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        with self._lock:
            self._pending.clear()

    def track(self, path: Path) -> None:
        """Register a new file for stability tracking."""
        if self._stop.is_set():
            return
        try:
            stat = path.stat()
        except OSError:
            return
        with self._lock:
            self._pending[path] = (time.monotonic(), stat.st_size)
        logger.debug("Tracking %s (size=%d)", path, stat.st_size)

    def touch(self, path: Path) -> None:
        """Restart the clock for *path* if it is already being tracked."""
        with self._lock:
            if path not in self._pending:
                return
        self.track(path)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def check(self) -> list[Path]:
        """Run one stability pass and return the files that settled."""
        stable = []  # type: list[Path]
        now = time.monotonic()
        with self._lock:
            for path, (last_seen, last_size) in list(self._pending.items()):
                try:
                    current_size = path.stat().st_size
                except OSError:
                    # File vanished (moved away or deleted): drop it
                    del self._pending[path]
                    continue
                if current_size != last_size:
                    self._pending[path] = (now, current_size)
                elif now - last_seen >= self._stable_seconds:
                    stable.append(path)
            for p in stable:
                del self._pending[p]
        return stable

    def _poll(self) -> None:
        """Periodically check if tracked files have stabilised."""
        while not self._stop.is_set():
            for p in self.check():
                if self._stop.is_set():
                    break
                logger.debug("File stable: %s", p)
                try:
                    self._on_stable(p)
                except Exception:
                    logger.exception("Error in on_stable callback for %s", p)
            self._stop.wait(timeout=self._poll_interval)


class NewFileHandler(FileSystemEventHandler):
    """Watchdog handler that feeds newly created files into the stability tracker."""

    def __init__(
        self,
        tracker: _StabilityTracker,
        name_filter: str = "*.*",
        extensions: list[str] | None = None,
        exclude_patterns: list[str] | None = None,
    ):
        super().__init__()
        self._tracker = tracker
        self._filter = (name_filter or "").strip()
        self._extensions = [e.lower().lstrip(".") for e in extensions or []]
        self._exclude_patterns = exclude_patterns or []

    def should_track(self, path: str) -> bool:
        name = os.path.basename(path)
        if self._filter not in _MATCH_ALL and not fnmatch.fnmatch(
            name.lower(), self._filter.lower()
        ):
            return False
        for pattern in self._exclude_patterns:
            if fnmatch.fnmatch(name.lower(), pattern.lower()):
                logger.debug("Excluding %s (matches %s)", name, pattern)
                return False
        if not self._extensions:
            return True
        ext = os.path.splitext(name)[1].lower().lstrip(".")
        return ext in self._extensions

    def on_created(self, event: FileCreatedEvent) -> None:  # type: ignore[override]
        """Handle a new file creation event."""
        if event.is_directory:
            return
        path = os.path.abspath(os.fsdecode(event.src_path))
        if self.should_track(path):
            self._tracker.track(Path(path))

    def on_moved(self, event: FileMovedEvent) -> None:  # type: ignore[override]
        """A file renamed into place counts as created under its new name."""
        if event.is_directory:
            return
        path = os.path.abspath(os.fsdecode(event.dest_path))
        if self.should_track(path):
            self._tracker.track(Path(path))

    def on_modified(self, event: FileModifiedEvent) -> None:  # type: ignore[override]
        """A write to a pending file restarts its stability clock."""
        if event.is_directory:
            return
        self._tracker.touch(Path(os.path.abspath(os.fsdecode(event.src_path))))


class WatchState(enum.Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"


class WatchFolder:
    """One watched directory and its subscription state.

    The entity holds the settings' id and the owning task, and reads the
    settings through the owner, so edits made to the owner's list are what
    ``enable()`` sees.  ``on_file_ready`` is called with the absolute path
    of each settled file, on its own thread.

    Usage:
        folder = WatchFolder(settings.id, task, pipeline.fire)
        folder.enable()
        ...
        folder.dispose()
    """

    def __init__(
        self,
        settings_id: str,
        owner: TaskConfiguration,
        on_file_ready: Callable[[Path], None],
        stable_seconds: float = 1.0,
        poll_interval: float = 1.0,
        observer_factory: Callable[[], Any] = Observer,
    ):
        self.settings_id = settings_id
        self.owner = owner
        self._on_file_ready = on_file_ready
        self._stable_seconds = stable_seconds
        self._poll_interval = poll_interval
        self._observer_factory = observer_factory
        self._observer: Any | None = None
        self._tracker: _StabilityTracker | None = None
        self._lock = threading.Lock()

    @property
    def settings(self) -> WatchFolderSettings | None:
        return self.owner.get_watch_folder(self.settings_id)

    @property
    def state(self) -> WatchState:
        return WatchState.ACTIVE if self._observer is not None else WatchState.INACTIVE

    @property
    def is_active(self) -> bool:
        return self._observer is not None

    @property
    def pending_count(self) -> int:
        tracker = self._tracker
        return tracker.pending_count if tracker else 0

    # ---- lifecycle ----

    def enable(self) -> bool:
        """Start watching.  Returns whether the folder is now active.

        A subscription failure is logged and leaves the folder inactive.
        """
        with self._lock:
            if self._observer is not None:
                return True
            try:
                self._subscribe()
            except SubscriptionError as exc:
                logger.error("%s", exc)
                return False
            return True

    def dispose(self) -> None:
        """Stop watching.  Safe to call repeatedly or on a never-enabled folder."""
        with self._lock:
            observer, self._observer = self._observer, None
            tracker, self._tracker = self._tracker, None
        if tracker is not None:
            tracker.stop()
        if observer is None:
            return
        try:
            observer.stop()
            observer.join(timeout=5)
        except Exception:
            logger.exception("Error stopping watcher for %s", self.settings_id)
        logger.info("Stopped watching %s", self.settings_id)

    # ---- internals ----

    def _subscribe(self) -> None:
        settings = self.settings
        if settings is None:
            raise SubscriptionError(
                self.settings_id, "settings no longer belong to their task"
            )
        folder = settings.folder_path
        if not folder or not os.path.isdir(folder):
            raise SubscriptionError(folder or "<empty>", "folder does not exist")

        tracker = _StabilityTracker(
            self._stable_seconds,
            lambda p: self._emit(p, tracker),
            self._poll_interval,
        )
        handler = NewFileHandler(
            tracker,
            settings.filter,
            settings.extensions,
            settings.exclude_patterns,
        )
        observer = self._observer_factory()
        try:
            observer.schedule(
                handler, folder, recursive=settings.include_subdirectories
            )
            observer.start()
        except OSError as exc:
            try:
                observer.stop()
            except Exception:
                logger.debug("Observer cleanup failed.", exc_info=True)
            raise SubscriptionError(folder, str(exc)) from exc
        self._observer = observer
        self._tracker = tracker
        tracker.start()
        logger.info(
            "Watching '%s' (filter=%s, recursive=%s)",
            folder,
            settings.filter,
            settings.include_subdirectories,
        )

    def _emit(self, path: Path, tracker: _StabilityTracker) -> None:
        """Hand a settled file to the trigger callback on its own thread."""
        if tracker is not self._tracker:
            logger.debug("Dropping late event for disposed folder: %s", path)
            return
        threading.Thread(
            target=self._deliver,
            args=(path,),
            daemon=True,
            name=f"Trigger-{path.name}",
        ).start()

    def _deliver(self, path: Path) -> None:
        try:
            self._on_file_ready(path)
        except Exception:
            logger.exception("Error in file-ready callback for %s", path)
