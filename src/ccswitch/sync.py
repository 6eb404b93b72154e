# Live-file fan-out for ccswitch
import logging
from dataclasses import dataclass, field

from ccswitch.models import APP_TYPES, MultiAppConfig
from ccswitch.platforms.base import stage_prompt
from ccswitch.platforms.claude import ClaudeAdapter
from ccswitch.store import AppState
from ccswitch.utils.atomic import LiveTransaction

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Report from a live sync.

    ABOUTME: Tracks which apps had live files staged and any warnings
    ABOUTME: Warnings are non-fatal (uninitialized app, unsupported transport)
    """
    apps_synced: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_app(self, app: str) -> None:
        if app not in self.apps_synced:
            self.apps_synced.append(app)

    def add_warning(self, warning: str) -> None:
        """Record a warning and log it."""
        logger.warning(warning)
        self.warnings.append(warning)

    def extend(self, other: "SyncReport") -> None:
        for app in other.apps_synced:
            self.add_app(app)
        self.warnings.extend(other.warnings)


def should_sync(state: AppState, app: str, report: SyncReport) -> bool:
    """Apply the live_sync policy for app.

    ABOUTME: never  -> only the canonical store changes
    ABOUTME: always -> write live files, creating the config directory
    ABOUTME: auto   -> write only if the app's config directory exists, else warn
    """
    policy = state.settings.live_sync
    if policy == "never":
        logger.debug(f"Live sync disabled; not writing {app} live files")
        return False

    adapter = state.adapter(app)
    if policy == "always" or adapter.is_initialized():
        return True

    report.add_warning(
        f"{app} is not initialized ({adapter.config_dir} not found); live files not updated"
    )
    return False


def mcp_removals(previous: MultiAppConfig, current: MultiAppConfig, app: str) -> set[str]:
    """Ids whose enable flag for app went from true to false (or were deleted).

    ABOUTME: Servers never enabled for app are not returned, so native
    ABOUTME: entries the user manages by hand are never removed
    """
    removed: set[str] = set()
    for sid, server in previous.mcp_servers.items():
        if not server.is_enabled_for(app):
            continue
        after = current.mcp_servers.get(sid)
        if after is None or not after.is_enabled_for(app):
            removed.add(sid)
    return removed


def stage_mcp(
    state: AppState,
    tx: LiveTransaction,
    previous: MultiAppConfig,
    current: MultiAppConfig,
    app: str,
    report: SyncReport,
) -> None:
    """Stage app's native MCP map for current, removing servers disabled since previous."""
    adapter = state.adapter(app)
    removed = mcp_removals(previous, current, app)
    warnings = adapter.write_mcp(tx, current.mcp_servers_for(app), removed)
    for warning in warnings:
        report.add_warning(warning)


def stage_prompt_file(
    state: AppState,
    tx: LiveTransaction,
    previous: MultiAppConfig,
    current: MultiAppConfig,
    app: str,
) -> None:
    """Write the active prompt, or remove the file if the previous store had one active."""
    app_config = current.app(app)
    path = state.adapter(app).prompt_path
    preset = app_config.prompts.get(app_config.active_prompt_id or "")
    if preset is not None:
        stage_prompt(tx, path, preset.content)
    elif previous.app(app).active_prompt_id:
        stage_prompt(tx, path, None)


def stage_app(
    state: AppState,
    tx: LiveTransaction,
    previous: MultiAppConfig,
    current: MultiAppConfig,
    app: str,
    report: SyncReport,
) -> None:
    """Stage every live file of app from current.

    ABOUTME: Current provider, enabled MCP servers, active prompt, onboarding flag
    ABOUTME: No backfill: the live provider files are overwritten from current, after
    ABOUTME: removing the keys of the provider that was current in previous
    """
    adapter = state.adapter(app)
    app_config = current.app(app)
    current_id = app_config.resolved_current()
    if current_id:
        provider = app_config.providers[current_id]
        before = previous.app(app)
        outgoing = before.providers.get(before.resolved_current())
        adapter.write_provider(tx, provider, app_config.common_config_snippet, outgoing)
    stage_mcp(state, tx, previous, current, app, report)
    stage_prompt_file(state, tx, previous, current, app)
    if isinstance(adapter, ClaudeAdapter) and state.settings.skip_claude_onboarding:
        adapter.stage_onboarding(tx, True)
    report.add_app(app)


def sync_all_live(
    state: AppState,
    tx: LiveTransaction,
    previous: MultiAppConfig,
    current: MultiAppConfig,
) -> SyncReport:
    """Stage the full live fan-out for every application the policy allows.

    ABOUTME: Equivalent to replaying every current provider, enabled MCP server
    ABOUTME: and active prompt against the adapters
    """
    report = SyncReport()
    for app in APP_TYPES:
        if should_sync(state, app, report):
            stage_app(state, tx, previous, current, app, report)
    return report


def commit_with_live(state: AppState, tx: LiveTransaction, config: MultiAppConfig) -> None:
    """Apply staged live writes, then persist and swap in config.

    ABOUTME: Live files are written first; if persisting the canonical store
    ABOUTME: then fails, the live files are rolled back to their prior bytes

    Raises:
        IoFailureError: If any write fails; nothing is left half-applied
    """
    tx.commit()
    try:
        state.commit(config)
    except BaseException:
        tx.rollback()
        raise
