"""
Headless runner for Watch Upload.

Loads the configuration, registers every watch folder, and keeps running
until SIGINT/SIGTERM.  On platforms with SIGHUP, sending it reloads the
config file and re-syncs the watch folders.

    python -m watch_upload            Run in the foreground (Ctrl-C to stop)
    python -m watch_upload --config path/to/config.json
"""

import logging
import logging.handlers
import signal
import sys
import threading
from pathlib import Path

from watch_upload import __app_name__, __version__
from watch_upload.config import Config, get_log_path
from watch_upload.manager import WatchFolderManager
from watch_upload.uploader import FolderUploader, UploadResult, UploadStatus

logger = logging.getLogger(__name__)


def setup_logging(config: Config, log_path: Path | None = None) -> None:
    """Configure rotating file log and stderr handler."""
    log_path = log_path or get_log_path()
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    # Rotating file handler
    max_bytes = config.max_log_size_mb * 1024 * 1024
    fh = logging.handlers.RotatingFileHandler(
        str(log_path),
        maxBytes=max_bytes,
        backupCount=config.log_backup_count,
        encoding="utf-8",
    )
    fh.setLevel(level)
    fh.setFormatter(fmt)
    root_logger.addHandler(fh)

    # Stderr handler
    sh = logging.StreamHandler(sys.stderr)
    sh.setLevel(level)
    sh.setFormatter(fmt)
    root_logger.addHandler(sh)


class WatchService:
    """Wires config, watch folder manager and uploader together."""

    def __init__(self, config: Config):
        self.config = config
        self.uploader = FolderUploader(on_upload_complete=self._on_upload_complete)
        self.manager = WatchFolderManager(
            config.task_sources(),
            self.uploader.upload_file,
            stable_seconds=config.stable_time,
            poll_interval=config.poll_interval,
            on_error=self._on_event_error,
        )
        self._stop = threading.Event()

    def start(self) -> None:
        """Register every configured watch folder."""
        if not self.config.is_configured():
            logger.warning("No watch folders configured in %s", self.config.path)
        self.manager.sync()

    def reload(self) -> None:
        """Re-read the config file and rebuild the watch folders."""
        logger.info("Reloading configuration.")
        self.config.load()
        self.manager.sync(self.config.task_sources())

    def stop(self) -> None:
        """Unregister all watch folders; in-flight uploads are left to finish."""
        self.manager.teardown()
        self._stop.set()

    def run_forever(self) -> None:
        """Block until ``stop()`` is called."""
        while not self._stop.is_set():
            self._stop.wait(timeout=1)

    def _on_upload_complete(self, result: UploadResult) -> None:
        name = (result.destination or result.source).name
        if result.status is UploadStatus.SKIPPED:
            logger.info("Upload skipped: %s", name)
        elif result.status is UploadStatus.UPLOADED:
            suffix = " (verified)" if result.verified else ""
            logger.info("Uploaded: %s%s", name, suffix)
        else:
            logger.warning("Upload failed for %s: %s", name, result.error or "unknown error")

    def _on_event_error(self, origin: Path, exc: Exception) -> None:
        logger.warning("File left in place: %s (%s)", origin, exc)


def run_foreground(config_path: Path | None = None) -> int:
    """Run the service in the foreground until SIGINT/SIGTERM."""
    cfg = Config(config_path)
    setup_logging(cfg)
    logger.info("%s %s starting.", __app_name__, __version__)

    service = WatchService(cfg)

    def _handler(sig, frame):
        logger.info("Shutdown requested.")
        service.stop()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)
    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, lambda sig, frame: service.reload())

    service.start()
    print(f"{__app_name__} running (press Ctrl-C to stop)…")
    service.run_forever()
    print(f"{__app_name__} stopped.")
    return 0
