# ABOUTME: Tests for canonical store loading and saving
# ABOUTME: Covers defaults, env override, corruption handling and atomic save
import json

import pytest

from ccswitch.config import (
    CONFIG_DIR,
    CONFIG_DIR_ENV,
    ensure_config_dir,
    get_config_dir,
    get_config_path,
    load_config,
    save_config,
)
from ccswitch.errors import ConfigCorruptedError
from ccswitch.models import MultiAppConfig, Provider
from ccswitch.utils.backup import create_backup, get_backup_dir


class TestConfigPaths:
    def test_default_dir(self, monkeypatch):
        monkeypatch.delenv(CONFIG_DIR_ENV, raising=False)
        assert get_config_dir() == CONFIG_DIR
        assert CONFIG_DIR.name == ".cc-switch"

    def test_env_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv(CONFIG_DIR_ENV, str(tmp_path))
        assert get_config_path() == tmp_path / "config.json"

    def test_ensure_config_dir(self, tmp_path):
        target = tmp_path / "a" / "b"
        assert ensure_config_dir(target) == target
        assert target.is_dir()


class TestLoadConfig:
    """Tests for load_config function."""

    def test_missing_file_is_empty_store(self, tmp_path):
        config = load_config(tmp_path / "config.json")
        assert config == MultiAppConfig()

    def test_save_then_load(self, tmp_path):
        path = tmp_path / "config.json"
        config = MultiAppConfig()
        config.app("gemini").providers["g"] = Provider(id="g", name="Google")
        config.app("gemini").current = "g"

        save_config(path, config)

        assert load_config(path) == config
        assert json.loads(path.read_text())["gemini"]["current"] == "g"

    def test_corrupted_file_fails_fast(self, tmp_path):
        """Test that a corrupt store raises and is left untouched."""
        path = tmp_path / "config.json"
        path.write_text("{broken")

        with pytest.raises(ConfigCorruptedError) as exc_info:
            load_config(path)

        assert exc_info.value.latest_backup is None
        assert path.read_text() == "{broken"

    def test_corrupted_file_points_at_backup(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text('{"claude": {"providers": {"x": {"usageScript": 5}}}}')
        backup = create_backup(b"{}", get_backup_dir(tmp_path))

        with pytest.raises(ConfigCorruptedError) as exc_info:
            load_config(path)

        assert exc_info.value.latest_backup == backup
        assert backup.name in str(exc_info.value)
