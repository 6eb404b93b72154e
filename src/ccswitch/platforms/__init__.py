# Platform adapter registry
from pathlib import Path

from ccswitch.models import AppType, PlatformAdapter
from ccswitch.platforms.claude import ClaudeAdapter
from ccswitch.platforms.codex import CodexAdapter
from ccswitch.platforms.gemini import GeminiAdapter

# Registry of all available platform adapters
ALL_PLATFORMS: dict[AppType, type[PlatformAdapter]] = {
    "claude": ClaudeAdapter,
    "codex": CodexAdapter,
    "gemini": GeminiAdapter,
}

__all__ = [
    "PlatformAdapter",
    "ClaudeAdapter",
    "CodexAdapter",
    "GeminiAdapter",
    "ALL_PLATFORMS",
    "get_all_platforms",
]


def get_all_platforms(
    config_dirs: dict[str, Path | None] | None = None,
) -> dict[AppType, PlatformAdapter]:
    """Instantiate one adapter per application.

    ABOUTME: config_dirs overrides an app's config directory (None keeps the default)
    ABOUTME: Returns a dict keyed by app for direct lookup
    """
    overrides = config_dirs or {}
    return {
        app: platform_cls(config_dir=overrides.get(app))  # type: ignore[call-arg]
        for app, platform_cls in ALL_PLATFORMS.items()
    }
