"""Watch folder registry for Watch Upload.

``WatchFolderManager`` keeps one ``WatchFolder`` per watch-folder settings
object across the default task and every hotkey task, and keeps each
folder's subscription in line with its task's ``watch_folder_enabled``
flag.  All structural changes go through a single lock; file events never
take it.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from watchdog.observers import Observer

from watch_upload.pipeline import CollisionResolver, Dispatcher, TriggerPipeline
from watch_upload.settings import (
    TaskConfiguration,
    TaskSources,
    WatchFolderSettings,
)
from watch_upload.watcher import WatchFolder

logger = logging.getLogger(__name__)


class WatchFolderManager:
    """
    Registry of active watch folders.

    Parameters
    ----------
    sources : TaskSources
        Default task and hotkey tasks to read watch folders from.
    dispatcher : callable
        Upload entry point, ``dispatcher(path, snapshot)``.
    stable_seconds, poll_interval : float
        Stability tracker settings passed to every watch folder.
    on_error : callable, optional
        Called with ``(origin_path, exception)`` when an event fails.
    observer_factory : callable
        Builds the watchdog observer for each folder.
    """

    def __init__(
        self,
        sources: TaskSources,
        dispatcher: Dispatcher,
        stable_seconds: float = 1.0,
        poll_interval: float = 1.0,
        on_error: Callable[[Path, Exception], None] | None = None,
        observer_factory: Callable[[], Any] = Observer,
    ):
        self._sources = sources
        self._dispatcher = dispatcher
        self._stable_seconds = stable_seconds
        self._poll_interval = poll_interval
        self._on_error = on_error
        self._observer_factory = observer_factory
        self._resolver = CollisionResolver()
        # settings id -> WatchFolder, in registration order
        self._folders: dict[str, WatchFolder] = {}
        self._lock = threading.RLock()

    @property
    def sources(self) -> TaskSources:
        return self._sources

    # ---- lookup ----

    def _registered(self, settings: WatchFolderSettings) -> WatchFolder | None:
        """The folder registered for this exact settings object, if any."""
        folder = self._folders.get(settings.id)
        if folder is None:
            return None
        current = folder.settings
        if current is not None and current is not settings:
            # Another object that happens to carry the same id
            return None
        return folder

    def find(self, settings: WatchFolderSettings) -> WatchFolder | None:
        with self._lock:
            return self._registered(settings)

    def __contains__(self, settings: WatchFolderSettings) -> bool:
        return self.find(settings) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._folders)

    @property
    def watch_folders(self) -> list[WatchFolder]:
        with self._lock:
            return list(self._folders.values())

    @property
    def active_count(self) -> int:
        return sum(1 for f in self.watch_folders if f.is_active)

    # ---- registry operations ----

    def sync(self, sources: TaskSources | None = None) -> None:
        """Rebuild every watch folder from the configuration sources.

        Existing folders are torn down first since task objects may have been
        replaced since the last sync.  Pass *sources* to switch to a new set.
        """
        with self._lock:
            if sources is not None:
                self._sources = sources
            self.teardown()
            self._sources.ensure_unique_ids()
            for task in self._sources.tasks():
                for settings in list(task.watch_folder_list):
                    self.add(settings, task)
            logger.info(
                "Watch folders synced: %d registered, %d active.",
                len(self._folders), self.active_count,
            )

    def add(self, settings: WatchFolderSettings, owner: TaskConfiguration) -> WatchFolder:
        """Register *settings* under *owner* and enable it if the task says so.

        Adding settings that are already registered does nothing and returns
        the existing folder, even when *owner* differs: the first
        registration wins.  Settings missing from ``owner.watch_folder_list``
        are appended to it.  A distinct settings object whose id is already
        registered is given a fresh id first.
        """
        with self._lock:
            existing = self._registered(settings)
            if existing is None and settings.id in self._folders:
                old_id = settings.id
                settings.renew_id()
                logger.debug("Settings id %s already in use; reassigned %s",
                             old_id, settings.id)
            if existing is not None:
                if existing.owner is not owner:
                    logger.debug(
                        "Watch folder %s already registered under task %s; "
                        "ignoring task %s",
                        settings.folder_path, existing.owner.name, owner.name,
                    )
                return existing

            owner.add_watch_folder(settings)

            pipeline = TriggerPipeline(
                settings.id,
                owner,
                self._dispatcher,
                default_task=self._sources.default_task_settings,
                resolver=self._resolver,
                on_error=self._on_error,
            )
            folder = WatchFolder(
                settings.id,
                owner,
                pipeline.fire,
                stable_seconds=self._stable_seconds,
                poll_interval=self._poll_interval,
                observer_factory=self._observer_factory,
            )
            self._folders[settings.id] = folder

            if owner.watch_folder_enabled:
                folder.enable()
            return folder

    def remove(self, settings: WatchFolderSettings) -> None:
        """Unregister *settings* and drop it from its task.  Unknown settings are ignored."""
        with self._lock:
            folder = self._registered(settings)
            if folder is None:
                return
            del self._folders[settings.id]
            folder.dispose()
            folder.owner.remove_watch_folder(settings)
            logger.info("Removed watch folder %s", settings.folder_path)

    def update_state(self, settings: WatchFolderSettings) -> None:
        """Enable or dispose the folder for *settings* to match its task's flag."""
        with self._lock:
            folder = self._registered(settings)
            if folder is None:
                return
            if folder.owner.watch_folder_enabled:
                folder.enable()
            else:
                folder.dispose()

    def teardown(self) -> None:
        """Dispose every registered folder and empty the registry."""
        with self._lock:
            folders = list(self._folders.values())
            self._folders.clear()
            for folder in folders:
                folder.dispose()

    close = teardown

    def __enter__(self) -> WatchFolderManager:
        return self

    def __exit__(self, *exc_info) -> None:
        self.teardown()
