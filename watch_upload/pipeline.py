"""
Trigger pipeline for Watch Upload.

Runs once per settled file: snapshot the owning task, work out where the
file should live (moving it into the staging folder when the watch folder
asks for that), then hand the final path and the snapshot to the upload
dispatcher.
"""

import logging
import os
import shutil
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from watch_upload.errors import MoveError, StagingError
from watch_upload.platform_utils import get_default_screenshots_folder
from watch_upload.settings import (
    COLLISION_OVERWRITE,
    COLLISION_SKIP,
    DEFAULT_RENAME_PATTERN,
    TaskConfiguration,
    TaskSnapshot,
    make_snapshot,
)

logger = logging.getLogger(__name__)

Dispatcher = Callable[[Path, TaskSnapshot], None]


def _expand_rename_pattern(
    pattern: str,
    name: str,
    ext: str,
    counter: int,
) -> str:
    """
    Expand token-based rename pattern.

    Supported tokens:
      {name}    : filename without extension
      {ext}     : extension without leading dot
      {n}       : collision counter (1, 2, 3, …)
      {date}    : current date YYYY-MM-DD
      {time}    : current time HH-MM-SS
      {datetime}: combined YYYY-MM-DD_HH-MM-SS
      {ts}      : integer Unix timestamp
    """
    now = datetime.now()
    expanded = pattern.format(
        name=name,
        ext=ext,
        n=counter,
        date=now.strftime("%Y-%m-%d"),
        time=now.strftime("%H-%M-%S"),
        datetime=now.strftime("%Y-%m-%d_%H-%M-%S"),
        ts=int(now.timestamp()),
    )
    if not ext:
        expanded = expanded.rstrip(".")
    return expanded


def resolve_staging_folder(snapshot: TaskSnapshot, now: datetime | None = None) -> Path:
    """Return the folder files are moved into before upload.

    The custom path wins when enabled, then the task's screenshots folder,
    then the platform default.  ``save_image_sub_folder_pattern`` is an
    strftime pattern (``%Y-%m``) appended as a sub-folder.
    """
    if snapshot.use_custom_screenshots_path and snapshot.custom_screenshots_path:
        root = snapshot.custom_screenshots_path
    elif snapshot.screenshots_folder:
        root = snapshot.screenshots_folder
    else:
        root = str(get_default_screenshots_folder())
    folder = Path(os.path.expandvars(os.path.expanduser(root)))

    pattern = snapshot.save_image_sub_folder_pattern.strip()
    if pattern:
        sub = (now or datetime.now()).strftime(pattern).strip("/\\")
        if sub:
            folder = folder / sub
    return folder


@dataclass(frozen=True, eq=False)
class Reservation:
    """A destination handed out by ``CollisionResolver``.

    Only the reservation object returned by ``resolve()`` can release its
    path, so a stale or repeated release never frees another event's hold.
    """

    path: Path


class CollisionResolver:
    """
    Chooses the final destination path for a file name.

    Every path handed out stays reserved until its ``Reservation`` is
    released, whatever the policy.  A reserved path counts as taken, so two
    files with the same name resolved at the same time never get the same
    destination.

    Policies when the name is taken:
      rename    : next free name from the rename pattern
      overwrite : replace the file on disk; if another in-flight event holds
                  the name, fall back to rename
      skip      : return None
    """

    def __init__(self) -> None:
        self._reserved: dict[Path, Reservation] = {}
        self._lock = threading.Lock()

    def _taken(self, path: Path) -> bool:
        return path in self._reserved or path.exists()

    def _reserve(self, path: Path) -> Reservation:
        reservation = Reservation(path)
        self._reserved[path] = reservation
        return reservation

    def resolve(
        self,
        dest_folder: Path,
        file_name: str,
        snapshot: TaskSnapshot,
    ) -> Reservation | None:
        """Reserve a destination, or return None if the file should be skipped."""
        dest = Path(dest_folder) / file_name
        mode = snapshot.file_exists_action

        with self._lock:
            if dest not in self._reserved:
                if not dest.exists() or mode == COLLISION_OVERWRITE:
                    return self._reserve(dest)

            if mode == COLLISION_SKIP:
                return None

            # rename: expand pattern with incrementing counter
            pattern = snapshot.rename_pattern or DEFAULT_RENAME_PATTERN
            stem = dest.stem
            ext = dest.suffix.lstrip(".")
            for n in range(1, 10_000):
                candidate = dest.parent / _expand_rename_pattern(pattern, stem, ext, n)
                if not self._taken(candidate):
                    return self._reserve(candidate)

            # Exhausted counter space: fall back to a nanosecond timestamp
            suffix = f".{ext}" if ext else ""
            return self._reserve(dest.parent / f"{stem}_{time.time_ns()}{suffix}")

    def release(self, reservation: Reservation) -> None:
        """Drop *reservation* once the file is in place (or the move failed)."""
        with self._lock:
            if self._reserved.get(reservation.path) is reservation:
                del self._reserved[reservation.path]

    @property
    def reserved_count(self) -> int:
        with self._lock:
            return len(self._reserved)


def ensure_directory(path: Path) -> None:
    """Create *path* and its parents, raising StagingError on failure."""
    try:
        Path(path).mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StagingError(str(path), str(exc)) from exc


def move_file(source: Path, destination: Path) -> None:
    """Move *source* to *destination*, raising MoveError on failure.

    A failed move leaves the source where it was.
    """
    existed = Path(destination).exists()
    try:
        shutil.move(str(source), str(destination))
    except OSError as exc:
        if not existed and Path(source).exists() and Path(destination).exists():
            # Cross-device copy got partway: drop the partial copy
            try:
                os.remove(destination)
            except OSError:
                logger.warning("Could not remove partial copy %s", destination)
        raise MoveError(str(source), str(destination), str(exc)) from exc


class TriggerPipeline:
    """
    The per-event work for one watch folder.

    Parameters
    ----------
    settings_id : str
        Id of the watch folder settings, read live from *owner* on each run.
    owner : TaskConfiguration
        The task the watch folder belongs to, snapshotted on each run.
    dispatcher : callable
        ``dispatcher(path, snapshot)``; expected to return without waiting
        for the upload to finish.
    default_task : TaskConfiguration, optional
        Source of options for owners with ``use_default_settings``.
    resolver : CollisionResolver, optional
        Shared resolver; pass the same one to every pipeline that can move
        into the same staging folder.
    on_error : callable, optional
        Called with ``(origin_path, exception)`` when ``fire()`` catches a
        failure.
    """

    def __init__(
        self,
        settings_id: str,
        owner: TaskConfiguration,
        dispatcher: Dispatcher,
        default_task: TaskConfiguration | None = None,
        resolver: CollisionResolver | None = None,
        on_error: Callable[[Path, Exception], None] | None = None,
    ):
        self.settings_id = settings_id
        self.owner = owner
        self._dispatcher = dispatcher
        self._default_task = default_task
        self._resolver = resolver or CollisionResolver()
        self._on_error = on_error

    def run(self, origin_path: Path) -> Path | None:
        """Process one settled file and return the dispatched path.

        Returns None when the event was dropped (settings removed from the
        task, or a collision under the ``skip`` policy).  Raises
        ``StagingError``/``MoveError`` when the file could not be moved; in
        that case nothing is dispatched.
        """
        origin_path = Path(origin_path)
        settings = self.owner.get_watch_folder(self.settings_id)
        if settings is None:
            logger.debug("Watch folder %s was removed; dropping %s",
                         self.settings_id, origin_path)
            return None

        snapshot = make_snapshot(self.owner, self._default_task)
        dest_path = origin_path

        if settings.move_files_to_screenshots_folder:
            folder = resolve_staging_folder(snapshot)
            reservation = self._resolver.resolve(folder, origin_path.name, snapshot)
            if reservation is None:
                logger.info("Skipping (collision): %s already exists in %s",
                            origin_path.name, folder)
                return None
            dest = reservation.path
            try:
                ensure_directory(dest.parent)
                move_file(origin_path, dest)
            finally:
                self._resolver.release(reservation)
            logger.info("Moved %s -> %s", origin_path, dest)
            dest_path = dest

        logger.info("Dispatching %s (task=%s)", dest_path, snapshot.task_name)
        self._dispatcher(dest_path, snapshot)
        return dest_path

    def fire(self, origin_path: Path) -> None:
        """Run the pipeline, reporting any failure instead of raising it."""
        try:
            self.run(origin_path)
        except Exception as exc:
            logger.error("Watch folder event failed for %s: %s", origin_path, exc)
            if self._on_error:
                try:
                    self._on_error(Path(origin_path), exc)
                except Exception:
                    logger.exception("Error in on_error callback")
