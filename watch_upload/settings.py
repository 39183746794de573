"""Task and watch-folder settings for Watch Upload.

A ``TaskConfiguration`` owns an ordered list of ``WatchFolderSettings``.
Settings are identity-bearing: two entries pointing at the same folder are
still distinct, and the manager tells them apart by their generated ``id``.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field, fields
from typing import Any

# Collision resolution strategies
COLLISION_OVERWRITE = "overwrite"
COLLISION_RENAME = "rename"
COLLISION_SKIP = "skip"
COLLISION_MODES = (COLLISION_OVERWRITE, COLLISION_RENAME, COLLISION_SKIP)

# Available tokens for the rename pattern
# {name}    : original filename without extension
# {ext}     : original extension (without dot)
# {n}       : incrementing number (1, 2, 3, …)
# {date}    : date stamp YYYY-MM-DD
# {time}    : time stamp HH-MM-SS
# {datetime}: combined YYYY-MM-DD_HH-MM-SS
# {ts}      : Unix timestamp (integer)
DEFAULT_RENAME_PATTERN = "{name}({n}).{ext}"


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass(eq=False)
class WatchFolderSettings:
    """One watched directory and how its new files are handled."""

    folder_path: str = ""
    filter: str = "*.*"
    include_subdirectories: bool = False
    move_files_to_screenshots_folder: bool = False
    extensions: list[str] = field(default_factory=list)
    exclude_patterns: list[str] = field(default_factory=list)
    id: str = field(default_factory=_new_id)

    def renew_id(self) -> str:
        """Replace the id with a fresh one and return it."""
        self.id = _new_id()
        return self.id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "folder_path": self.folder_path,
            "filter": self.filter,
            "include_subdirectories": self.include_subdirectories,
            "move_files_to_screenshots_folder": self.move_files_to_screenshots_folder,
            "extensions": list(self.extensions),
            "exclude_patterns": list(self.exclude_patterns),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WatchFolderSettings:
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        if not kwargs.get("id"):
            kwargs.pop("id", None)
        return cls(**kwargs)


# Fields copied into a TaskSnapshot.  When a hotkey task uses default
# settings these are taken from the default task instead.
_SNAPSHOT_FIELDS = (
    "use_custom_screenshots_path",
    "custom_screenshots_path",
    "screenshots_folder",
    "save_image_sub_folder_pattern",
    "file_exists_action",
    "rename_pattern",
    "upload_destination",
    "verify_uploads",
    "retry_count",
    "retry_delay",
)


@dataclass(eq=False)
class TaskConfiguration:
    """A task bundle: watch folders plus staging, collision and upload options.

    The configuration owner may edit any field at any time.  Edits to the
    watch-folder list should go through the methods below, which hold the
    instance lock so that readers on notification threads see a consistent
    list.
    """

    name: str = "Default"
    watch_folder_list: list[WatchFolderSettings] = field(default_factory=list)
    watch_folder_enabled: bool = False
    use_default_settings: bool = False
    # ---- staging ----
    use_custom_screenshots_path: bool = False
    custom_screenshots_path: str = ""
    screenshots_folder: str = ""
    save_image_sub_folder_pattern: str = ""
    # ---- collision ----
    file_exists_action: str = COLLISION_RENAME
    rename_pattern: str = DEFAULT_RENAME_PATTERN
    # ---- upload ----
    upload_destination: str = ""
    verify_uploads: bool = True
    retry_count: int = 0
    retry_delay: int = 5
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    # ---- watch-folder list ----

    def contains_watch_folder(self, settings: WatchFolderSettings) -> bool:
        with self._lock:
            return any(s is settings for s in self.watch_folder_list)

    def add_watch_folder(self, settings: WatchFolderSettings) -> bool:
        """Append *settings* unless this exact object is already listed."""
        with self._lock:
            if self.contains_watch_folder(settings):
                return False
            self.watch_folder_list.append(settings)
            return True

    def remove_watch_folder(self, settings: WatchFolderSettings) -> bool:
        with self._lock:
            for i, s in enumerate(self.watch_folder_list):
                if s is settings:
                    del self.watch_folder_list[i]
                    return True
            return False

    def get_watch_folder(self, settings_id: str) -> WatchFolderSettings | None:
        """Return the listed settings with *settings_id*, or None."""
        with self._lock:
            for s in self.watch_folder_list:
                if s.id == settings_id:
                    return s
            return None

    # ---- serialisation ----

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            data = {
                "name": self.name,
                "watch_folder_enabled": self.watch_folder_enabled,
                "use_default_settings": self.use_default_settings,
                "watch_folder_list": [s.to_dict() for s in self.watch_folder_list],
            }
            for name in _SNAPSHOT_FIELDS:
                data[name] = getattr(self, name)
            return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskConfiguration:
        task = cls(
            name=data.get("name", "Default"),
            watch_folder_enabled=bool(data.get("watch_folder_enabled", False)),
            use_default_settings=bool(data.get("use_default_settings", False)),
            watch_folder_list=[
                WatchFolderSettings.from_dict(d)
                for d in data.get("watch_folder_list", [])
            ],
        )
        for name in _SNAPSHOT_FIELDS:
            if name in data:
                setattr(task, name, data[name])
        if task.file_exists_action not in COLLISION_MODES:
            task.file_exists_action = COLLISION_RENAME
        return task


@dataclass(eq=False)
class HotkeySettings:
    """A hotkey-bound task.  Binding the key itself happens elsewhere."""

    hotkey: str = ""
    task_settings: TaskConfiguration = field(default_factory=TaskConfiguration)

    def to_dict(self) -> dict[str, Any]:
        return {"hotkey": self.hotkey, "task": self.task_settings.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HotkeySettings:
        return cls(
            hotkey=data.get("hotkey", ""),
            task_settings=TaskConfiguration.from_dict(data.get("task", {})),
        )


@dataclass
class TaskSources:
    """Every configuration source the manager reads, in sync order."""

    default_task_settings: TaskConfiguration = field(default_factory=TaskConfiguration)
    hotkeys: list[HotkeySettings] = field(default_factory=list)

    def tasks(self) -> list[TaskConfiguration]:
        """Default task first, then hotkey tasks in list order."""
        return [self.default_task_settings] + [h.task_settings for h in self.hotkeys]

    def ensure_unique_ids(self) -> int:
        """Give a fresh id to every settings object whose id is already taken.

        The same entry listed under two tasks, or a ``copy.copy`` of a
        settings object, would otherwise share an id with a distinct object.
        The first object seen keeps its id.  Returns how many were changed.
        """
        owners: dict[str, WatchFolderSettings] = {}
        changed = 0
        for task in self.tasks():
            with task._lock:
                entries = list(task.watch_folder_list)
            for settings in entries:
                holder = owners.setdefault(settings.id, settings)
                if holder is not settings:
                    owners[settings.renew_id()] = settings
                    changed += 1
        return changed


@dataclass(frozen=True)
class TaskSnapshot:
    """Immutable point-in-time copy of the options a trigger run needs."""

    task_name: str
    use_custom_screenshots_path: bool
    custom_screenshots_path: str
    screenshots_folder: str
    save_image_sub_folder_pattern: str
    file_exists_action: str
    rename_pattern: str
    upload_destination: str
    verify_uploads: bool
    retry_count: int
    retry_delay: int


def make_snapshot(
    owner: TaskConfiguration,
    default: TaskConfiguration | None = None,
) -> TaskSnapshot:
    """Copy *owner*'s current options into a ``TaskSnapshot``.

    When *owner* has ``use_default_settings`` set and a *default* task is
    given, the options are read from *default*; the task name still comes
    from *owner*.
    """
    source = owner
    if owner.use_default_settings and default is not None and default is not owner:
        source = default
    with source._lock:
        values = {name: getattr(source, name) for name in _SNAPSHOT_FIELDS}
    return TaskSnapshot(task_name=owner.name, **values)
