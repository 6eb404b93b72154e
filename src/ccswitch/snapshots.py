# Snapshot export/import, backups, restore and validation for ccswitch
import json
import logging
from pathlib import Path

from ccswitch.config import dump_config
from ccswitch.errors import FormatError, NotFoundError, ValidationFailedError
from ccswitch.models import MultiAppConfig
from ccswitch.store import AppState
from ccswitch.sync import SyncReport, commit_with_live, sync_all_live
from ccswitch.utils.atomic import LiveTransaction, atomic_write, read_bytes
from ccswitch.utils.backup import BackupInfo, create_backup, list_backup_files, resolve_backup
from ccswitch.utils.validation import Finding, validate_config

logger = logging.getLogger(__name__)

# ABOUTME: Label of the automatic backup taken before a restore or import
PRE_RESTORE_LABEL = "pre-restore"


def backup(state: AppState, label: str | None = None) -> str:
    """Snapshot the canonical store into the backup rotation.

    ABOUTME: Holds the exclusive lock, since it writes files and prunes the rotation

    Returns:
        Backup id (file name), usable with restore()
    """
    with state.write():
        path = create_backup(dump_config(state.config), state.backup_dir, label, now=state.now())
    return path.name


def list_backups(state: AppState) -> list[BackupInfo]:
    """Snapshots in the rotation, newest first."""
    return list_backup_files(state.backup_dir)


def load_snapshot(path: Path) -> MultiAppConfig:
    """Parse a snapshot file.

    Raises:
        FormatError: If the file is not a valid canonical store
    """
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return MultiAppConfig.from_dict(data)
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationFailedError) as e:
        raise FormatError(path, f"Invalid snapshot: {e}") from e


def _replace_store(state: AppState, path: Path) -> SyncReport:
    restored = load_snapshot(path)
    previous = state.config
    # An unreadable config.json is kept byte for byte rather than as the empty stand-in
    current = read_bytes(state.config_path) if state.recovering else None
    create_backup(
        current or dump_config(previous), state.backup_dir, PRE_RESTORE_LABEL, now=state.now()
    )

    tx = LiveTransaction()
    report = sync_all_live(state, tx, previous, restored)
    commit_with_live(state, tx, restored)
    logger.info(f"Restored canonical store from {path}")
    return report


def restore(state: AppState, id_or_path: str | Path) -> SyncReport:
    """Replace the store with a backup and replay it to every app's live files.

    ABOUTME: Takes a pre-restore backup of the current store first
    ABOUTME: MCP entries enabled before but not in the snapshot are removed live

    Args:
        id_or_path: Backup id from list_backups(), or a path to a snapshot file

    Raises:
        NotFoundError: If the backup doesn't exist
        FormatError: If the snapshot cannot be parsed
    """
    with state.write():
        path = resolve_backup(state.backup_dir, id_or_path)
        return _replace_store(state, path)


def import_snapshot(state: AppState, path: str | Path) -> SyncReport:
    """Like restore(), for an exported snapshot outside the backup rotation.

    Raises:
        NotFoundError: If path doesn't exist
        FormatError: If the snapshot cannot be parsed
    """
    snapshot = Path(path)
    if not snapshot.is_file():
        raise NotFoundError("snapshot", str(path))
    with state.write():
        return _replace_store(state, snapshot)


def export_snapshot(state: AppState, path: str | Path) -> Path:
    """Write the canonical store to path atomically."""
    target = Path(path)
    with state.read() as config:
        atomic_write(target, dump_config(config))
    logger.info(f"Exported canonical store to {target}")
    return target


def validate(state: AppState, check_commands: bool = True) -> list[Finding]:
    """Findings for the current store. Modifies nothing."""
    with state.read() as config:
        return validate_config(config, state.adapters, check_commands=check_commands)
