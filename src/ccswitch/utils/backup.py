# ABOUTME: Rotating backups of the canonical config store.
# ABOUTME: Handles timestamped snapshots with automatic retention cleanup (keep last 10).
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from ccswitch.errors import NotFoundError
from ccswitch.utils.atomic import atomic_write

logger = logging.getLogger(__name__)

# ABOUTME: Retention count for snapshot rotation
MAX_BACKUPS = 10

# ABOUTME: Label used when the caller does not supply one
DEFAULT_LABEL = "backup"

# ABOUTME: Timestamp embedded in every backup file name (microsecond resolution)
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S_%f"

# Pattern matches: {label}_{YYYYMMDD}_{HHMMSS}_{ffffff}.json
# e.g., backup_20260108_143022_000123.json
BACKUP_PATTERN = re.compile(r"^(?P<label>.+?)_(?P<timestamp>\d{8}_\d{6}_\d{6})\.json$")

_UNSAFE_LABEL_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class BackupInfo:
    """One snapshot in the backup directory.

    ABOUTME: id is the file name, usable with restore()
    """
    id: str
    path: Path
    label: str
    timestamp: datetime

    @property
    def display_name(self) -> str:
        return f"{self.label} ({self.timestamp:%Y-%m-%d %H:%M:%S})"


def get_backup_dir(config_dir: Path) -> Path:
    """Return <config_dir>/backups (not created)."""
    return config_dir / "backups"


def sanitize_label(label: str | None) -> str:
    """Make a caller-supplied label safe for use in a file name.

    Examples:
        >>> sanitize_label("before upgrade!")
        'before-upgrade'
    """
    if not label:
        return DEFAULT_LABEL
    cleaned = _UNSAFE_LABEL_CHARS.sub("-", label.strip()).strip("-.")
    return cleaned or DEFAULT_LABEL


def create_backup(
    data: bytes,
    backup_dir: Path,
    label: str | None = None,
    now: datetime | None = None,
    max_backups: int = MAX_BACKUPS,
) -> Path:
    """Write a snapshot and prune old ones.

    ABOUTME: Backup format: {label}_{YYYYMMDD}_{HHMMSS}_{ffffff}.json
    ABOUTME: Bumps the timestamp by a microsecond on a name collision
    ABOUTME: Creates backup_dir if it doesn't exist

    Args:
        data: Serialized canonical store
        backup_dir: Directory holding the rotation
        label: Optional name prefix (defaults to "backup")
        now: Timestamp to embed (defaults to the current time)
        max_backups: Retention count

    Returns:
        Path to the created backup file

    Raises:
        IoFailureError: If the snapshot cannot be written
    """
    safe_label = sanitize_label(label)
    timestamp = now or datetime.now()
    backup_path = backup_dir / f"{safe_label}_{timestamp.strftime(TIMESTAMP_FORMAT)}.json"
    while backup_path.exists():
        timestamp += timedelta(microseconds=1)
        backup_path = backup_dir / f"{safe_label}_{timestamp.strftime(TIMESTAMP_FORMAT)}.json"

    atomic_write(backup_path, data)
    logger.info(f"Created backup {backup_path.name}")

    cleanup_old_backups(backup_dir, max_backups)
    return backup_path


def list_backup_files(backup_dir: Path) -> list[BackupInfo]:
    """List snapshots newest first by the timestamp in their names.

    ABOUTME: Files not matching the naming pattern are ignored
    """
    if not backup_dir.exists():
        return []

    backups: list[BackupInfo] = []
    for file_path in backup_dir.iterdir():
        if not file_path.is_file():
            continue
        match = BACKUP_PATTERN.match(file_path.name)
        if not match:
            continue
        try:
            timestamp = datetime.strptime(match.group("timestamp"), TIMESTAMP_FORMAT)
        except ValueError:
            continue
        backups.append(
            BackupInfo(
                id=file_path.name,
                path=file_path,
                label=match.group("label"),
                timestamp=timestamp,
            )
        )

    backups.sort(key=lambda b: (b.timestamp, b.id), reverse=True)
    return backups


def latest_backup(backup_dir: Path) -> Path | None:
    """Path of the newest snapshot, or None."""
    backups = list_backup_files(backup_dir)
    return backups[0].path if backups else None


def resolve_backup(backup_dir: Path, id_or_path: str | Path) -> Path:
    """Turn a backup id (file name) or an explicit path into an existing file.

    Raises:
        NotFoundError: If neither interpretation names an existing file
    """
    candidate = Path(id_or_path)
    if candidate.is_file():
        return candidate
    in_dir = backup_dir / candidate.name
    if in_dir.is_file():
        return in_dir
    if not candidate.suffix:
        with_suffix = backup_dir / f"{candidate.name}.json"
        if with_suffix.is_file():
            return with_suffix
    raise NotFoundError("backup", str(id_or_path))


def cleanup_old_backups(backup_dir: Path, max_backups: int = MAX_BACKUPS) -> list[Path]:
    """Remove snapshots beyond the newest max_backups.

    ABOUTME: Logs warnings on errors but does not raise exceptions

    Returns:
        List of paths that were deleted
    """
    deleted_files: list[Path] = []
    for info in list_backup_files(backup_dir)[max_backups:]:
        try:
            info.path.unlink()
            deleted_files.append(info.path)
            logger.debug(f"Deleted old backup: {info.path}")
        except OSError as e:
            logger.warning(f"Failed to delete old backup {info.path}: {e}")
    return deleted_files
