"""Tests for configuration and settings"""
import json

import pytest

from watch_upload.config import DEFAULT_CONFIG, Config
from watch_upload.settings import (
    COLLISION_OVERWRITE,
    COLLISION_RENAME,
    HotkeySettings,
    TaskConfiguration,
    TaskSources,
    WatchFolderSettings,
    make_snapshot,
)


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "conf" / "config.json"


class TestConfig:
    """Test suite for Config"""

    def test_missing_file_creates_defaults(self, config_path):
        cfg = Config(config_path)
        assert config_path.exists()
        assert cfg.log_level == DEFAULT_CONFIG["log_level"]
        assert not cfg.is_configured()

    def test_corrupt_file_falls_back_to_defaults(self, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text("{not json", encoding="utf-8")
        cfg = Config(config_path)
        assert cfg.stable_time == DEFAULT_CONFIG["stable_time_seconds"]

    def test_stored_values_merge_over_defaults(self, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text(json.dumps({"log_level": "DEBUG"}), encoding="utf-8")
        cfg = Config(config_path)
        assert cfg.log_level == "DEBUG"
        assert cfg.log_backup_count == DEFAULT_CONFIG["log_backup_count"]

    def test_setters_clamp(self, config_path):
        cfg = Config(config_path)
        cfg.stable_time = -5
        cfg.poll_interval = 0
        cfg.max_log_size_mb = 0
        cfg.log_backup_count = -1
        assert cfg.stable_time == 0
        assert cfg.poll_interval == 0.1
        assert cfg.max_log_size_mb == 1
        assert cfg.log_backup_count == 0

    def test_task_sources_round_trip(self, config_path, tmp_path):
        cfg = Config(config_path)
        folder = WatchFolderSettings(
            folder_path=str(tmp_path), move_files_to_screenshots_folder=True
        )
        sources = TaskSources(
            default_task_settings=TaskConfiguration(
                watch_folder_list=[folder], watch_folder_enabled=True
            ),
            hotkeys=[
                HotkeySettings(
                    "ctrl+shift+u",
                    TaskConfiguration(name="Upload", file_exists_action=COLLISION_OVERWRITE),
                )
            ],
        )
        cfg.store_task_sources(sources)
        cfg.save()

        loaded = Config(config_path).task_sources()

        default = loaded.default_task_settings
        assert default.watch_folder_enabled
        assert [s.id for s in default.watch_folder_list] == [folder.id]
        assert default.watch_folder_list[0].move_files_to_screenshots_folder
        assert loaded.hotkeys[0].hotkey == "ctrl+shift+u"
        assert loaded.hotkeys[0].task_settings.file_exists_action == COLLISION_OVERWRITE
        assert Config(config_path).is_configured()

    def test_shared_stored_id_is_split_on_load(self, config_path, tmp_path):
        entry = {"id": "abc123", "folder_path": str(tmp_path)}
        config_path.parent.mkdir(parents=True)
        config_path.write_text(json.dumps({
            "default_task": {"watch_folder_list": [entry]},
            "hotkeys": [{"hotkey": "f9", "task": {"watch_folder_list": [entry]}}],
        }))

        loaded = Config(config_path).task_sources()

        first = loaded.default_task_settings.watch_folder_list[0]
        second = loaded.hotkeys[0].task_settings.watch_folder_list[0]
        assert first.id == "abc123"
        assert second.id != first.id

    def test_task_sources_are_fresh_objects(self, config_path):
        cfg = Config(config_path)
        first = cfg.task_sources()
        second = cfg.task_sources()
        assert first.default_task_settings is not second.default_task_settings


class TestSettings:
    """Test suite for task and watch-folder settings"""

    def test_settings_identity_not_value(self):
        a = WatchFolderSettings(folder_path="/same")
        b = WatchFolderSettings(folder_path="/same")
        assert a != b
        assert a.id != b.id
        assert a == a

    def test_add_watch_folder_by_identity(self):
        task = TaskConfiguration()
        a = WatchFolderSettings(folder_path="/same")
        b = WatchFolderSettings(folder_path="/same")
        assert task.add_watch_folder(a)
        assert not task.add_watch_folder(a)
        assert task.add_watch_folder(b)
        assert task.watch_folder_list == [a, b]

    def test_remove_watch_folder_by_identity(self):
        a = WatchFolderSettings(folder_path="/same")
        b = WatchFolderSettings(folder_path="/same")
        task = TaskConfiguration(watch_folder_list=[a, b])
        assert task.remove_watch_folder(b)
        assert task.watch_folder_list == [a]
        assert not task.remove_watch_folder(b)

    def test_from_dict_rejects_unknown_collision_mode(self):
        task = TaskConfiguration.from_dict({"file_exists_action": "ask"})
        assert task.file_exists_action == COLLISION_RENAME

    def test_from_dict_generates_missing_id(self):
        settings = WatchFolderSettings.from_dict({"folder_path": "/x", "id": ""})
        assert settings.id

    def test_ensure_unique_ids(self):
        a = WatchFolderSettings.from_dict({"id": "abc123", "folder_path": "/x"})
        b = WatchFolderSettings.from_dict({"id": "abc123", "folder_path": "/x"})
        shared = WatchFolderSettings(folder_path="/y")
        default = TaskConfiguration(watch_folder_list=[a, shared])
        other = TaskConfiguration(name="Other", watch_folder_list=[b, shared])
        sources = TaskSources(default, [HotkeySettings("f9", other)])

        assert sources.ensure_unique_ids() == 1
        assert a.id == "abc123"
        assert b.id != "abc123"
        assert other.get_watch_folder(b.id) is b
        assert sources.ensure_unique_ids() == 0

    def test_sources_order(self):
        default = TaskConfiguration(name="Default")
        one = TaskConfiguration(name="One")
        two = TaskConfiguration(name="Two")
        sources = TaskSources(default, [HotkeySettings("a", one), HotkeySettings("b", two)])
        assert sources.tasks() == [default, one, two]

    def test_snapshot_ignores_default_when_not_requested(self):
        default = TaskConfiguration(upload_destination="/default")
        own = TaskConfiguration(name="Own", upload_destination="/own")
        assert make_snapshot(own, default).upload_destination == "/own"
