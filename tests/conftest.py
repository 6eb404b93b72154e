# ABOUTME: Shared fixtures for ccswitch tests
# ABOUTME: Every fixture keeps live files and the canonical store inside tmp_path
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import pytest

from ccswitch.models import MultiAppConfig
from ccswitch.platforms.claude import ClaudeAdapter
from ccswitch.platforms.codex import CodexAdapter
from ccswitch.platforms.gemini import GeminiAdapter
from ccswitch.settings import Settings
from ccswitch.store import AppState

FIXED_NOW = datetime(2026, 1, 8, 14, 30, 22)


@pytest.fixture
def adapters(tmp_path: Path) -> dict:
    """One adapter per app, rooted in tmp_path."""
    return {
        "claude": ClaudeAdapter(tmp_path / ".claude"),
        "codex": CodexAdapter(tmp_path / ".codex"),
        "gemini": GeminiAdapter(tmp_path / ".gemini"),
    }


@pytest.fixture
def make_state(tmp_path: Path, adapters: dict) -> Callable[..., AppState]:
    """Factory building an AppState over tmp_path.

    Pass initialized=("claude", ...) to create those apps' config directories.
    """

    def factory(
        config: MultiAppConfig | None = None,
        initialized: tuple[str, ...] = ("claude", "codex", "gemini"),
        settings: Settings | None = None,
    ) -> AppState:
        for app in initialized:
            adapters[app].config_dir.mkdir(parents=True, exist_ok=True)
        return AppState(
            config or MultiAppConfig(),
            tmp_path / ".cc-switch" / "config.json",
            settings=settings,
            adapters=adapters,
            clock=lambda: FIXED_NOW,
        )

    return factory


@pytest.fixture
def state(make_state: Callable[..., AppState]) -> AppState:
    """AppState with every app initialized and an empty store."""
    return make_state()
