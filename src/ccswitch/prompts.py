# Prompt preset operations for ccswitch
import copy
import logging

from ccswitch.errors import NotFoundError, ValidationFailedError
from ccswitch.models import AppConfig, PromptPreset, check_app
from ccswitch.platforms.base import stage_prompt
from ccswitch.store import AppState
from ccswitch.sync import SyncReport, commit_with_live, should_sync
from ccswitch.utils.atomic import LiveTransaction

logger = logging.getLogger(__name__)


def list_prompts(state: AppState, app: str) -> list[PromptPreset]:
    """Prompt presets of app in insertion order (copies)."""
    with state.read() as config:
        return copy.deepcopy(list(config.app(app).prompts.values()))


def _backfill_active(state: AppState, app: str, app_config: AppConfig, tx: LiveTransaction) -> None:
    """Copy the live prompt file into the active preset so edits made there survive."""
    active = app_config.prompts.get(app_config.active_prompt_id or "")
    if active is None:
        return
    live = tx.read_text(state.adapter(app).prompt_path)
    if live is not None and live != active.content:
        active.content = live
        active.updated_at = state.now_ms()
        logger.debug(f"Backfilled live {app} prompt into preset '{active.id}'")


def upsert_prompt(state: AppState, app: str, preset: PromptPreset) -> SyncReport:
    """Create or update a preset; rewrite the live prompt file if it is active.

    Raises:
        ValidationFailedError: If the id or name is empty
    """
    check_app(app)
    if not preset.id.strip():
        raise ValidationFailedError("Prompt id must not be empty")
    if not preset.name.strip():
        raise ValidationFailedError(f"Prompt '{preset.id}' name must not be empty")

    with state.write():
        working = state.config.copy()
        app_config = working.app(app)
        existing = app_config.prompts.get(preset.id)
        saved = copy.deepcopy(preset)
        now = state.now_ms()
        if saved.created_at is None:
            saved.created_at = existing.created_at if existing else now
        saved.updated_at = now
        app_config.prompts[saved.id] = saved

        tx = LiveTransaction()
        report = SyncReport()
        if app_config.active_prompt_id == saved.id and should_sync(state, app, report):
            stage_prompt(tx, state.adapter(app).prompt_path, saved.content)
            report.add_app(app)
        commit_with_live(state, tx, working)
        return report


def delete_prompt(state: AppState, app: str, prompt_id: str) -> None:
    """Delete an inactive preset.

    Raises:
        NotFoundError: If the preset doesn't exist
        ValidationFailedError: If the preset is active (deactivate it first)
    """
    check_app(app)
    with state.write():
        working = state.config.copy()
        app_config = working.app(app)
        if prompt_id not in app_config.prompts:
            raise NotFoundError("prompt", prompt_id, app)
        if app_config.active_prompt_id == prompt_id:
            raise ValidationFailedError(f"Prompt '{prompt_id}' is active; deactivate it first")
        del app_config.prompts[prompt_id]
        state.commit(working)


def activate_prompt(state: AppState, app: str, prompt_id: str) -> SyncReport:
    """Write a preset to app's prompt file and mark it active.

    ABOUTME: The previously active preset first receives the live file content

    Raises:
        NotFoundError: If the preset doesn't exist
    """
    check_app(app)
    with state.write():
        working = state.config.copy()
        app_config = working.app(app)
        preset = app_config.prompts.get(prompt_id)
        if preset is None:
            raise NotFoundError("prompt", prompt_id, app)

        tx = LiveTransaction()
        report = SyncReport()
        if should_sync(state, app, report):
            if app_config.active_prompt_id != prompt_id:
                _backfill_active(state, app, app_config, tx)
            stage_prompt(tx, state.adapter(app).prompt_path, preset.content)
            report.add_app(app)
        app_config.active_prompt_id = prompt_id
        commit_with_live(state, tx, working)
        logger.info(f"Activated {app} prompt '{prompt_id}'")
        return report


def deactivate_prompt(state: AppState, app: str) -> SyncReport:
    """Remove app's prompt file and clear the active preset.

    ABOUTME: No-op when nothing is active
    """
    check_app(app)
    with state.write():
        report = SyncReport()
        if not state.config.app(app).active_prompt_id:
            return report

        working = state.config.copy()
        app_config = working.app(app)
        tx = LiveTransaction()
        if should_sync(state, app, report):
            _backfill_active(state, app, app_config, tx)
            stage_prompt(tx, state.adapter(app).prompt_path, None)
            report.add_app(app)
        app_config.active_prompt_id = None
        commit_with_live(state, tx, working)
        return report


def import_prompt_from_live(state: AppState, app: str) -> int:
    """Capture app's live prompt file as a preset.

    ABOUTME: Skips a missing or blank file and content an existing preset already has
    ABOUTME: The imported preset becomes active if nothing else is

    Returns:
        Number of presets created (0 or 1)
    """
    check_app(app)
    with state.write():
        adapter = state.adapter(app)
        content = LiveTransaction().read_text(adapter.prompt_path)
        if content is None or not content.strip():
            return 0

        working = state.config.copy()
        app_config = working.app(app)
        if any(p.content == content for p in app_config.prompts.values()):
            return 0

        now = state.now_ms()
        prompt_id = f"imported-{now}"
        app_config.prompts[prompt_id] = PromptPreset(
            id=prompt_id,
            name=f"Imported from {adapter.prompt_path.name}",
            content=content,
            created_at=now,
            updated_at=now,
        )
        if not app_config.active_prompt_id:
            app_config.active_prompt_id = prompt_id
        state.commit(working)
        logger.info(f"Imported {app} prompt file as '{prompt_id}'")
        return 1
