# ABOUTME: Utility modules for ccswitch
# ABOUTME: Exports atomic writes, backups, codecs, env references and validation

from ccswitch.utils.atomic import LiveTransaction, atomic_write
from ccswitch.utils.backup import (
    MAX_BACKUPS,
    BackupInfo,
    create_backup,
    get_backup_dir,
    latest_backup,
    list_backup_files,
)
from ccswitch.utils.env import find_env_references, find_unset_env_vars
from ccswitch.utils.validation import Finding, validate_config, validate_server

__all__ = [
    "atomic_write",
    "LiveTransaction",
    "MAX_BACKUPS",
    "BackupInfo",
    "create_backup",
    "get_backup_dir",
    "latest_backup",
    "list_backup_files",
    "find_env_references",
    "find_unset_env_vars",
    "Finding",
    "validate_config",
    "validate_server",
]
