# Provider operations and the switch orchestrator for ccswitch
import copy
import logging
from dataclasses import dataclass, field
from enum import Enum

from ccswitch.errors import LiveFileUnavailableError, NotFoundError, ValidationFailedError
from ccswitch.models import Document, MultiAppConfig, Provider, check_app
from ccswitch.store import AppState
from ccswitch.sync import SyncReport, commit_with_live, should_sync, stage_mcp
from ccswitch.utils.atomic import LiveTransaction
from ccswitch.utils.validation import MAX_AUTO_QUERY_INTERVAL

logger = logging.getLogger(__name__)

# ABOUTME: Id given to the provider captured by import_from_live
IMPORTED_PROVIDER_ID = "default"


class SwitchState(Enum):
    """States of a provider switch request."""
    IDLE = "idle"
    VALIDATING = "validating"
    SYNCING = "syncing"
    COMMITTED = "committed"
    REJECTED = "rejected"


@dataclass
class SwitchResult:
    """Outcome of a committed switch.

    ABOUTME: live_synced is False when the live_sync policy skipped the app
    """
    app: str
    provider_id: str
    previous_id: str
    state: SwitchState
    report: SyncReport = field(default_factory=SyncReport)

    @property
    def live_synced(self) -> bool:
        return self.app in self.report.apps_synced


class ProviderSwitch:
    """Move an application's current-provider pointer and fan it out to live files.

    ABOUTME: IDLE -> VALIDATING -> SYNCING -> COMMITTED, or -> REJECTED
    ABOUTME: The canonical store only changes after every live write succeeded,
    ABOUTME: and live writes are rolled back if persisting the store fails

    Examples:
        >>> result = ProviderSwitch(state, "claude", "work").run()
        >>> result.state
        <SwitchState.COMMITTED: 'committed'>
    """

    def __init__(self, state: AppState, app: str, provider_id: str) -> None:
        self._state = state
        self.app = check_app(app)
        self.provider_id = provider_id
        self.status = SwitchState.IDLE

    def run(self) -> SwitchResult:
        """Execute the switch under the exclusive lock.

        Raises:
            NotFoundError: If the provider doesn't exist (no side effects)
            IoFailureError: If a live write or the store persist fails
            FormatError: If an existing live file cannot be parsed
        """
        with self._state.write() as state:
            self.status = SwitchState.VALIDATING
            if self.provider_id not in state.config.app(self.app).providers:
                self.status = SwitchState.REJECTED
                raise NotFoundError("provider", self.provider_id, self.app)

            self.status = SwitchState.SYNCING
            try:
                result = self._sync(state)
            except BaseException:
                self.status = SwitchState.REJECTED
                raise

            self.status = SwitchState.COMMITTED
            result.state = self.status
            logger.info(f"Switched {self.app} provider to '{self.provider_id}'")
            return result

    def _sync(self, state: AppState) -> SwitchResult:
        previous = state.config
        working = previous.copy()
        app_config = working.app(self.app)
        previous_id = app_config.resolved_current()

        tx = LiveTransaction()
        report = SyncReport()
        if should_sync(state, self.app, report):
            self._backfill(state, working, previous_id, tx)
            adapter = state.adapter(self.app)
            target = app_config.providers[self.provider_id]
            outgoing = app_config.providers.get(previous_id)
            adapter.write_provider(tx, target, app_config.common_config_snippet, outgoing)
            stage_mcp(state, tx, previous, working, self.app, report)
            report.add_app(self.app)

        app_config.current = self.provider_id
        commit_with_live(state, tx, working)
        return SwitchResult(
            app=self.app,
            provider_id=self.provider_id,
            previous_id=previous_id,
            state=self.status,
            report=report,
        )

    def _backfill(
        self, state: AppState, working: MultiAppConfig, previous_id: str, tx: LiveTransaction
    ) -> None:
        """Capture the live files into the outgoing provider so edits survive.

        ABOUTME: Only the keys the outgoing provider owns are captured; keys the user
        ABOUTME: added by hand stay in the live files and out of every provider
        """
        if not previous_id or previous_id == self.provider_id:
            return
        app_config = working.app(self.app)
        outgoing = app_config.providers[previous_id]
        captured = state.adapter(self.app).capture_provider(
            tx, app_config.common_config_snippet, owner=outgoing
        )
        if captured is None:
            return
        outgoing.settings_config = captured
        logger.debug(f"Backfilled live settings into {self.app} provider '{previous_id}'")


def switch_provider(state: AppState, app: str, provider_id: str) -> SwitchResult:
    """Make provider_id the current provider of app. See ProviderSwitch."""
    return ProviderSwitch(state, app, provider_id).run()


def list_providers(state: AppState, app: str) -> list[Provider]:
    """Providers of app in sort order (copies)."""
    with state.read() as config:
        return copy.deepcopy(config.app(app).sorted_providers())


def get_provider(state: AppState, app: str, provider_id: str) -> Provider:
    """Return a copy of one provider.

    Raises:
        NotFoundError: If the provider doesn't exist
    """
    with state.read() as config:
        provider = config.app(app).providers.get(provider_id)
        if provider is None:
            raise NotFoundError("provider", provider_id, app)
        return copy.deepcopy(provider)


def current_provider(state: AppState, app: str) -> Provider | None:
    """The active provider of app.

    ABOUTME: Self-heals a dangling pointer to the first provider in sort order
    ABOUTME: Returns None only when app has no providers
    """
    with state.read() as config:
        app_config = config.app(app)
        current_id = app_config.resolved_current()
        return copy.deepcopy(app_config.providers[current_id]) if current_id else None


def validate_provider(state: AppState, app: str, provider: Provider) -> None:
    """Check a provider before it enters the store.

    Raises:
        ValidationFailedError: On an empty id or name, malformed settings_config,
            or an out-of-range usage auto query interval
    """
    if not provider.id.strip():
        raise ValidationFailedError("Provider id must not be empty")
    if not provider.name.strip():
        raise ValidationFailedError(f"Provider '{provider.id}' name must not be empty")
    problems = state.adapter(app).validate_settings(provider.settings_config)
    if problems:
        raise ValidationFailedError(f"Provider '{provider.id}': {'; '.join(problems)}")
    script = provider.usage_script
    if script and script.auto_query_interval is not None:
        if not 0 <= script.auto_query_interval <= MAX_AUTO_QUERY_INTERVAL:
            raise ValidationFailedError(
                f"Provider '{provider.id}': usage auto query interval must be between "
                f"0 and {MAX_AUTO_QUERY_INTERVAL} minutes"
            )


def _stage_current(
    state: AppState,
    tx: LiveTransaction,
    previous: MultiAppConfig,
    working: MultiAppConfig,
    app: str,
    report: SyncReport,
    outgoing: Provider | None = None,
) -> None:
    """Stage the current provider and MCP map of app if the policy allows.

    ABOUTME: outgoing is the provider whose keys the live files held until now
    """
    if not should_sync(state, app, report):
        return
    app_config = working.app(app)
    current_id = app_config.resolved_current()
    if not current_id:
        return
    adapter = state.adapter(app)
    adapter.write_provider(
        tx, app_config.providers[current_id], app_config.common_config_snippet, outgoing
    )
    stage_mcp(state, tx, previous, working, app, report)
    report.add_app(app)


def add_provider(state: AppState, app: str, provider: Provider) -> SyncReport:
    """Add a new provider to app.

    ABOUTME: Assigns sort_index and created_at when missing
    ABOUTME: The first provider of an app becomes current and is written live

    Raises:
        ValidationFailedError: If the provider is invalid or the id already exists
    """
    check_app(app)
    with state.write():
        validate_provider(state, app, provider)
        previous = state.config
        working = previous.copy()
        app_config = working.app(app)
        if provider.id in app_config.providers:
            raise ValidationFailedError(f"Provider '{provider.id}' already exists for {app}")

        new = copy.deepcopy(provider)
        new.settings_config = state.adapter(app).normalize_settings(new.settings_config)
        if new.sort_index is None:
            new.sort_index = app_config.next_sort_index()
        if new.created_at is None:
            new.created_at = state.now_ms()
        app_config.providers[new.id] = new

        tx = LiveTransaction()
        report = SyncReport()
        if not previous.app(app).providers:
            app_config.current = new.id
            _stage_current(state, tx, previous, working, app, report)
        commit_with_live(state, tx, working)
        logger.info(f"Added {app} provider '{new.id}'")
        return report


def update_provider(state: AppState, app: str, provider: Provider) -> SyncReport:
    """Replace an existing provider.

    ABOUTME: Keeps created_at, sort_index, meta and usage_script when the update omits them
    ABOUTME: Rewrites the live files when the provider is current

    Raises:
        NotFoundError: If the provider doesn't exist
        ValidationFailedError: If the provider is invalid
    """
    check_app(app)
    with state.write():
        previous = state.config
        existing = previous.app(app).providers.get(provider.id)
        if existing is None:
            raise NotFoundError("provider", provider.id, app)
        validate_provider(state, app, provider)

        working = previous.copy()
        app_config = working.app(app)
        updated = copy.deepcopy(provider)
        updated.settings_config = state.adapter(app).normalize_settings(updated.settings_config)
        if updated.created_at is None:
            updated.created_at = existing.created_at
        if updated.sort_index is None:
            updated.sort_index = existing.sort_index
        if not updated.meta:
            updated.meta = copy.deepcopy(existing.meta)
        if updated.usage_script is None:
            updated.usage_script = copy.deepcopy(existing.usage_script)
        app_config.providers[updated.id] = updated

        tx = LiveTransaction()
        report = SyncReport()
        if app_config.resolved_current() == updated.id:
            _stage_current(state, tx, previous, working, app, report, outgoing=existing)
        commit_with_live(state, tx, working)
        logger.info(f"Updated {app} provider '{updated.id}'")
        return report


def upsert_provider(state: AppState, app: str, provider: Provider) -> SyncReport:
    """Add the provider, or update it if the id already exists."""
    with state.write():
        if provider.id in state.config.app(app).providers:
            return update_provider(state, app, provider)
        return add_provider(state, app, provider)


def delete_provider(state: AppState, app: str, provider_id: str) -> SyncReport:
    """Delete a provider.

    ABOUTME: Deleting the current provider moves current to the first remaining
    ABOUTME: provider in sort order and writes it live; with none left, current
    ABOUTME: becomes empty and the live files are left as they are

    Raises:
        NotFoundError: If the provider doesn't exist
    """
    check_app(app)
    with state.write():
        previous = state.config
        if provider_id not in previous.app(app).providers:
            raise NotFoundError("provider", provider_id, app)

        working = previous.copy()
        app_config = working.app(app)
        was_current = app_config.resolved_current() == provider_id
        deleted = app_config.providers.pop(provider_id)
        app_config.heal_current()

        tx = LiveTransaction()
        report = SyncReport()
        if was_current and app_config.current:
            logger.info(f"Current {app} provider deleted; switching to '{app_config.current}'")
            _stage_current(state, tx, previous, working, app, report, outgoing=deleted)
        commit_with_live(state, tx, working)
        logger.info(f"Deleted {app} provider '{provider_id}'")
        return report


def duplicate_provider(state: AppState, app: str, provider_id: str) -> str:
    """Copy a provider under a fresh id.

    ABOUTME: New id is <id>-copy, then <id>-copy-2, <id>-copy-3, ...
    ABOUTME: The copy goes to the end of the sort order and is not made current

    Returns:
        The new provider id

    Raises:
        NotFoundError: If the provider doesn't exist
    """
    check_app(app)
    with state.write():
        working = state.config.copy()
        app_config = working.app(app)
        source = app_config.providers.get(provider_id)
        if source is None:
            raise NotFoundError("provider", provider_id, app)

        new_id = f"{provider_id}-copy"
        suffix = 2
        while new_id in app_config.providers:
            new_id = f"{provider_id}-copy-{suffix}"
            suffix += 1

        duplicate = copy.deepcopy(source)
        duplicate.id = new_id
        duplicate.name = f"{source.name} (copy)"
        duplicate.sort_index = app_config.next_sort_index()
        duplicate.created_at = state.now_ms()
        app_config.providers[new_id] = duplicate
        state.commit(working)
        logger.info(f"Duplicated {app} provider '{provider_id}' as '{new_id}'")
        return new_id


def update_sort_order(state: AppState, app: str, order: dict[str, int]) -> None:
    """Set sort_index for several providers at once.

    Raises:
        NotFoundError: If any id doesn't exist (nothing is changed)
    """
    check_app(app)
    with state.write():
        working = state.config.copy()
        app_config = working.app(app)
        for provider_id, sort_index in order.items():
            if provider_id not in app_config.providers:
                raise NotFoundError("provider", provider_id, app)
            app_config.providers[provider_id].sort_index = sort_index
        state.commit(working)


def set_common_config_snippet(state: AppState, app: str, snippet: str | None) -> SyncReport:
    """Replace app's common config snippet and rewrite the current provider live.

    Raises:
        ValidationFailedError: If the snippet does not parse for this app
    """
    check_app(app)
    with state.write():
        if snippet and snippet.strip():
            problems = state.adapter(app).validate_common_snippet(snippet)
            if problems:
                raise ValidationFailedError(problems[0])
        else:
            snippet = None

        previous = state.config
        working = previous.copy()
        working.app(app).common_config_snippet = snippet
        tx = LiveTransaction()
        report = SyncReport()
        _stage_current(state, tx, previous, working, app, report)
        commit_with_live(state, tx, working)
        return report


def import_from_live(state: AppState, app: str) -> int:
    """Seed app's first provider from its live files.

    ABOUTME: Only runs when app has no providers yet; returns 0 otherwise
    ABOUTME: For Codex, also derives the common snippet from config.toml if unset

    Returns:
        Number of providers imported (0 or 1)

    Raises:
        LiveFileUnavailableError: If the live settings file doesn't exist
        FormatError: If the live files cannot be parsed
    """
    check_app(app)
    with state.write():
        working = state.config.copy()
        app_config = working.app(app)
        if app_config.providers:
            logger.info(f"{app} already has providers; skipping import from live files")
            return 0

        adapter = state.adapter(app)
        tx = LiveTransaction()
        if not app_config.common_config_snippet:
            app_config.common_config_snippet = adapter.extract_common_snippet(tx)
        captured = adapter.capture_provider(tx, app_config.common_config_snippet)
        if captured is None:
            raise LiveFileUnavailableError(app, adapter.settings_path)

        app_config.providers[IMPORTED_PROVIDER_ID] = Provider(
            id=IMPORTED_PROVIDER_ID,
            name=IMPORTED_PROVIDER_ID,
            settings_config=captured,
            sort_index=0,
            created_at=state.now_ms(),
        )
        app_config.current = IMPORTED_PROVIDER_ID
        state.commit(working)
        logger.info(f"Imported {app} live settings as provider '{IMPORTED_PROVIDER_ID}'")
        return 1


def read_live_settings(state: AppState, app: str) -> Document:
    """The live provider settings of app as a settings_config document.

    Raises:
        LiveFileUnavailableError: If the live settings file doesn't exist
    """
    with state.read():
        adapter = state.adapter(app)
        captured = adapter.capture_provider(LiveTransaction(), None)
        if captured is None:
            raise LiveFileUnavailableError(app, adapter.settings_path)
        return captured


def resolve_usage_credentials(
    state: AppState, app: str, provider_id: str
) -> tuple[str | None, str | None]:
    """Return (api_key, base_url) for querying a provider's usage.

    ABOUTME: Values set on the usage script win; blanks fall back to the
    ABOUTME: credentials in the provider's own settings_config

    Raises:
        NotFoundError: If the provider doesn't exist
    """
    provider = get_provider(state, app, provider_id)
    fallback_key, fallback_url = state.adapter(app).extract_credentials(provider.settings_config)
    script = provider.usage_script
    api_key = (script.api_key if script else None) or fallback_key
    base_url = (script.base_url if script else None) or fallback_url
    return api_key, base_url
