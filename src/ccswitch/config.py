# Canonical store loading and saving for ccswitch
import json
import logging
import os
from pathlib import Path

from ccswitch.errors import ConfigCorruptedError, ValidationFailedError
from ccswitch.models import MultiAppConfig
from ccswitch.utils.atomic import atomic_write
from ccswitch.utils.backup import get_backup_dir, latest_backup
from ccswitch.utils.codec import encode_json

logger = logging.getLogger(__name__)

# ABOUTME: Environment variable overriding the config directory (used by tests and CI)
CONFIG_DIR_ENV = "CC_SWITCH_CONFIG_DIR"

# ABOUTME: Default config directory in user's home
CONFIG_DIR = Path.home() / ".cc-switch"

# ABOUTME: Canonical store and tool settings file names inside the config directory
CONFIG_FILE_NAME = "config.json"
SETTINGS_FILE_NAME = "settings.json"


def get_config_dir() -> Path:
    """Return the ccswitch config directory.

    ABOUTME: Returns $CC_SWITCH_CONFIG_DIR if set, else ~/.cc-switch
    ABOUTME: Directory may not exist yet - use ensure_config_dir() first
    """
    override = os.environ.get(CONFIG_DIR_ENV)
    return Path(override).expanduser() if override else CONFIG_DIR


def get_config_path(config_dir: Path | None = None) -> Path:
    """Return the path to the canonical store (config.json)."""
    return (config_dir or get_config_dir()) / CONFIG_FILE_NAME


def get_settings_path(config_dir: Path | None = None) -> Path:
    """Return the path to the tool settings file (settings.json)."""
    return (config_dir or get_config_dir()) / SETTINGS_FILE_NAME


def ensure_config_dir(config_dir: Path | None = None) -> Path:
    """Create config directory if it doesn't exist.

    Returns:
        Path to config directory (guaranteed to exist)
    """
    directory = config_dir or get_config_dir()
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def load_config(path: Path) -> MultiAppConfig:
    """Load the canonical store.

    ABOUTME: A missing file is a fresh install and yields an empty store
    ABOUTME: Fail-fast on parse errors, never repairs or discards the file

    Args:
        path: Path to config.json

    Returns:
        Parsed MultiAppConfig

    Raises:
        ConfigCorruptedError: If the file is not valid JSON or has a malformed entry;
            carries the newest backup so the caller can offer a restore
    """
    if not path.exists():
        logger.debug(f"No config at {path}, starting empty")
        return MultiAppConfig()

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return MultiAppConfig.from_dict(data)
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationFailedError) as e:
        backup = latest_backup(get_backup_dir(path.parent))
        raise ConfigCorruptedError(path, f"Cannot load config: {e}", latest_backup=backup) from e


def dump_config(config: MultiAppConfig) -> bytes:
    """Serialize the canonical store exactly as it is written to disk and to backups."""
    return encode_json(config.to_dict())


def save_config(path: Path, config: MultiAppConfig) -> None:
    """Persist the canonical store atomically.

    Raises:
        IoFailureError: If the file cannot be written; the old file stays intact
    """
    atomic_write(path, dump_config(config))
