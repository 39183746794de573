"""
Cross-platform utilities for Watch Upload.

Centralises all OS-detection logic so every other module can import
a single canonical set of helpers rather than scattering ``sys.platform``
checks throughout the codebase.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

# ---- platform flags ----------------------------------------------------

IS_WINDOWS: bool = sys.platform == "win32"
IS_MACOS: bool = sys.platform == "darwin"
IS_LINUX: bool = sys.platform.startswith("linux")

_APP_DIR_NAME = "WatchUpload"

# ---- directories -------------------------------------------------------


def get_config_dir() -> Path:
    """
    Return the application config directory, created if needed.

    - Windows : ``%APPDATA%\\WatchUpload``
    - macOS   : ``~/Library/Application Support/WatchUpload``
    - Linux   : ``$XDG_CONFIG_HOME/WatchUpload`` (default ``~/.config``)
    """
    if IS_WINDOWS:
        base = os.environ.get("APPDATA", str(Path.home()))
    elif IS_MACOS:
        base = str(Path.home() / "Library" / "Application Support")
    else:
        base = os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))

    config_dir = Path(base) / _APP_DIR_NAME
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_log_path() -> Path:
    """Return the path to the log file (inside the config directory)."""
    return get_config_dir() / "watch_upload.log"


def get_pictures_dir() -> Path:
    """
    Return the user's pictures directory, the fallback staging root.

    Linux honours ``$XDG_PICTURES_DIR`` when it is exported.
    """
    if IS_LINUX:
        xdg = os.environ.get("XDG_PICTURES_DIR")
        if xdg:
            return Path(xdg)
    return Path.home() / "Pictures"


def get_default_screenshots_folder() -> Path:
    """Return the staging root used when a task configures none."""
    return get_pictures_dir() / _APP_DIR_NAME / "Screenshots"
