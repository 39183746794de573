"""Pytest configuration and fixtures."""

import sys
import threading
import time
from pathlib import Path
from unittest.mock import Mock

import pytest

# Make the package importable without installing it
sys.path.insert(0, str(Path(__file__).parent.parent))

from watch_upload.settings import TaskConfiguration, TaskSources, WatchFolderSettings  # noqa: E402


class FakeObserver:
    """Stands in for watchdog's Observer; records what was scheduled."""

    def __init__(self):
        self.handler = None
        self.path = None
        self.recursive = None
        self.started = False
        self.stopped = False

    def schedule(self, handler, path, recursive=False):
        self.handler = handler
        self.path = path
        self.recursive = recursive

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def join(self, timeout=None):
        pass

    def is_alive(self):
        return self.started and not self.stopped


class ObserverFactory:
    """Callable observer factory that remembers every observer it built."""

    def __init__(self):
        self.created = []

    def __call__(self):
        observer = FakeObserver()
        self.created.append(observer)
        return observer

    @property
    def running(self):
        return [o for o in self.created if o.is_alive()]


class RecordingDispatcher:
    """Dispatcher that records calls and lets tests wait for them."""

    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()
        self._event = threading.Event()

    def __call__(self, path, snapshot):
        with self._lock:
            self.calls.append((Path(path), snapshot))
        self._event.set()

    def wait(self, count=1, timeout=5.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            with self._lock:
                if len(self.calls) >= count:
                    return True
            self._event.wait(0.02)
            self._event.clear()
        with self._lock:
            return len(self.calls) >= count


@pytest.fixture
def observers():
    return ObserverFactory()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def mock_dispatcher():
    return Mock()


@pytest.fixture
def watch_dir(tmp_path):
    d = tmp_path / "watch"
    d.mkdir()
    return d


@pytest.fixture
def staging_dir(tmp_path):
    return tmp_path / "staging"


@pytest.fixture
def make_task():
    def _make(name="Default", enabled=True, folders=(), **kwargs):
        task = TaskConfiguration(name=name, watch_folder_enabled=enabled, **kwargs)
        for f in folders:
            task.watch_folder_list.append(f)
        return task
    return _make


@pytest.fixture
def make_settings(watch_dir):
    def _make(folder=None, move=False, **kwargs):
        return WatchFolderSettings(
            folder_path=str(folder or watch_dir),
            move_files_to_screenshots_folder=move,
            **kwargs,
        )
    return _make


@pytest.fixture
def sources(make_task):
    return TaskSources(default_task_settings=make_task())
