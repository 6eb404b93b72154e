# Tests for tool-level settings
import json

from ccswitch.settings import Settings, load_settings, save_settings


def test_missing_file_gives_defaults(tmp_path):
    settings = load_settings(tmp_path / "settings.json")
    assert settings == Settings()
    assert settings.live_sync == "auto"


def test_save_and_load(tmp_path):
    path = tmp_path / "settings.json"
    save_settings(path, Settings(live_sync="never", codex_config_dir="/opt/codex"))

    loaded = load_settings(path)

    assert loaded.live_sync == "never"
    assert loaded.codex_config_dir == "/opt/codex"


def test_unknown_keys_ignored(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"language": "zh", "showInTray": True}))

    assert load_settings(path).language == "zh"


def test_invalid_file_falls_back(tmp_path, caplog):
    path = tmp_path / "settings.json"
    path.write_text("{oops")

    assert load_settings(path) == Settings()
    assert "Ignoring unreadable settings file" in caplog.text


def test_unknown_policy_falls_back_to_auto(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"live_sync": "sometimes"}))

    assert load_settings(path).live_sync == "auto"


def test_config_dir_overrides(tmp_path):
    settings = Settings(claude_config_dir=str(tmp_path / "claude"))

    dirs = settings.config_dirs()

    assert dirs["claude"] == tmp_path / "claude"
    assert dirs["codex"] is None
    assert settings.config_dir_for("gemini") is None
