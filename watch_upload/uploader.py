"""
Upload dispatcher for Watch Upload.

``upload()`` delivers one file to the folder named by the snapshot's
``upload_destination`` (local or a mounted share): reserve a name there,
copy, check the copy, and retry on failure.  ``FolderUploader`` runs each
upload on its own thread so the trigger pipeline never waits for it.
"""

import enum
import hashlib
import logging
import shutil
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from watch_upload.errors import UploadError, WatchUploadError
from watch_upload.pipeline import CollisionResolver
from watch_upload.settings import TaskSnapshot

logger = logging.getLogger(__name__)

_HASH_CHUNK = 256 * 1024


def _sha256(filepath: Path) -> str:
    h = hashlib.sha256()
    with open(filepath, "rb") as fh:
        while chunk := fh.read(_HASH_CHUNK):
            h.update(chunk)
    return h.hexdigest()


class UploadStatus(enum.Enum):
    UPLOADED = "uploaded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class UploadResult:
    """Outcome of one ``upload()`` call."""

    source: Path
    status: UploadStatus
    destination: Path | None = None
    verified: bool = False
    error: str = ""


def copy_file(source: Path, destination: Path, verify: bool = True) -> bool:
    """Copy *source* to *destination* and check the copy.

    With *verify* the SHA-256 digests must match, otherwise only the sizes
    are compared.  Returns whether the digest check ran.  A mismatch raises
    ``UploadError``; I/O failures propagate as ``OSError``.
    """
    shutil.copy2(str(source), str(destination))
    if verify:
        if _sha256(source) != _sha256(destination):
            raise UploadError(str(source), str(destination), "SHA-256 mismatch")
        return True
    if destination.stat().st_size != source.stat().st_size:
        raise UploadError(str(source), str(destination), "size mismatch")
    return False


def upload(
    source: Path,
    snapshot: TaskSnapshot,
    resolver: CollisionResolver,
) -> UploadResult:
    """Deliver *source* using *snapshot*'s upload options.

    Expected failures (no destination, vanished source, copy or check
    errors after the last retry) come back as a ``FAILED`` result.
    """
    source = Path(source)
    if not snapshot.upload_destination:
        logger.warning("No upload destination for task %s; %s not uploaded",
                       snapshot.task_name, source)
        return UploadResult(source, UploadStatus.FAILED,
                            error="No upload destination configured")
    if not source.is_file():
        logger.warning("Source file vanished before upload: %s", source)
        return UploadResult(source, UploadStatus.FAILED,
                            error="Source file no longer exists")

    root = Path(snapshot.upload_destination)
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.error("Cannot create upload destination %s: %s", root, exc)
        return UploadResult(source, UploadStatus.FAILED, error=str(exc))

    reservation = resolver.resolve(root, source.name, snapshot)
    if reservation is None:
        logger.info("Skipping upload (collision): %s", root / source.name)
        return UploadResult(source, UploadStatus.SKIPPED, root / source.name,
                            error="File already exists at the destination")

    dest = reservation.path
    attempts = 1 + max(0, snapshot.retry_count)
    try:
        for attempt in range(1, attempts + 1):
            try:
                verified = copy_file(source, dest, snapshot.verify_uploads)
            except (OSError, WatchUploadError) as exc:
                logger.warning("Upload attempt %d/%d for %s failed: %s",
                               attempt, attempts, source, exc)
                if attempt == attempts:
                    return UploadResult(source, UploadStatus.FAILED, dest,
                                        error=str(exc))
                time.sleep(snapshot.retry_delay)
            else:
                logger.info("Uploaded %s -> %s", source, dest)
                return UploadResult(source, UploadStatus.UPLOADED, dest,
                                    verified=verified)
    finally:
        resolver.release(reservation)


class FolderUploader:
    """
    Fire-and-forget upload dispatcher.

    ``upload_file`` matches the pipeline's dispatcher signature.  Each call
    starts a daemon thread that runs ``upload()`` and then hands the
    ``UploadResult`` to *on_upload_complete*.  Uploads still running when
    the process exits are lost.
    """

    def __init__(
        self,
        on_upload_complete: Callable[[UploadResult], None] | None = None,
        resolver: CollisionResolver | None = None,
    ):
        self._on_upload_complete = on_upload_complete
        self._resolver = resolver or CollisionResolver()
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()

    def upload_file(self, path: Path, snapshot: TaskSnapshot) -> None:
        thread = threading.Thread(
            target=self._run,
            args=(Path(path), snapshot),
            daemon=True,
            name=f"Upload-{Path(path).name}",
        )
        with self._lock:
            self._threads = [t for t in self._threads if t.is_alive()]
            self._threads.append(thread)
            thread.start()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until started uploads finish.  Returns False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._lock:
            threads = list(self._threads)
        for t in threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            t.join(remaining)
            if t.is_alive():
                return False
        return True

    def _run(self, path: Path, snapshot: TaskSnapshot) -> None:
        try:
            result = upload(path, snapshot, self._resolver)
        except Exception as exc:
            logger.exception("Unexpected error uploading %s", path)
            result = UploadResult(path, UploadStatus.FAILED, error=str(exc))
        if self._on_upload_complete:
            try:
                self._on_upload_complete(result)
            except Exception:
                logger.exception("Error in on_upload_complete callback")
