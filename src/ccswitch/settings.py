# Tool-level preferences for ccswitch
import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Literal

from ccswitch.utils.atomic import atomic_write
from ccswitch.utils.codec import encode_json

logger = logging.getLogger(__name__)

# ABOUTME: How mutations treat an application whose config directory is missing
# auto = skip with a warning, always = create it, never = canonical store only
LiveSyncPolicy = Literal["auto", "always", "never"]
LIVE_SYNC_POLICIES: tuple[LiveSyncPolicy, ...] = ("auto", "always", "never")


@dataclass
class Settings:
    """Preferences loaded from settings.json.

    ABOUTME: Unknown keys in the file are ignored
    ABOUTME: *_config_dir override where each application keeps its live files
    """
    language: str = "en"
    live_sync: LiveSyncPolicy = "auto"
    claude_config_dir: str | None = None
    codex_config_dir: str | None = None
    gemini_config_dir: str | None = None
    skip_claude_onboarding: bool = False

    def config_dir_for(self, app: str) -> Path | None:
        """Override directory for app, with ~ expanded, or None."""
        value = getattr(self, f"{app}_config_dir", None)
        return Path(value).expanduser() if value else None

    def config_dirs(self) -> dict[str, Path | None]:
        return {app: self.config_dir_for(app) for app in ("claude", "codex", "gemini")}


def load_settings(path: Path) -> Settings:
    """Load settings, falling back to defaults.

    ABOUTME: A missing file means defaults
    ABOUTME: An unreadable or invalid file logs a warning and means defaults
    """
    if not path.exists():
        return Settings()

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable settings file {path}: {e}")
        return Settings()

    if not isinstance(data, dict):
        logger.warning(f"Ignoring settings file {path}: expected a JSON object")
        return Settings()

    known = {f.name for f in fields(Settings)}
    settings = Settings(**{k: v for k, v in data.items() if k in known})
    if settings.live_sync not in LIVE_SYNC_POLICIES:
        logger.warning(
            f"Unknown live_sync policy '{settings.live_sync}' in {path}, using 'auto'"
        )
        settings.live_sync = "auto"
    return settings


def save_settings(path: Path, settings: Settings) -> None:
    """Write settings atomically."""
    atomic_write(path, encode_json(asdict(settings)))
