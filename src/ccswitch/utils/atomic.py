# ABOUTME: Atomic file writes and multi-file live transactions.
# ABOUTME: A file is always either fully old or fully new, never half written.
import logging
import os
import stat
import tempfile
from pathlib import Path

from ccswitch.errors import IoFailureError

logger = logging.getLogger(__name__)


def atomic_write(path: Path, data: bytes) -> None:
    """Durably replace path with data.

    ABOUTME: Writes a temp file in the same directory, fsyncs it, then renames it over path
    ABOUTME: Keeps the permission bits of an existing destination file
    ABOUTME: Creates parent directories if needed

    Args:
        path: Destination file
        data: Complete new contents

    Raises:
        IoFailureError: If any step fails; the destination is left untouched
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
        )
    except OSError as e:
        raise IoFailureError(path, str(e)) from e

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if path.exists():
            os.chmod(tmp_path, stat.S_IMODE(path.stat().st_mode))
        tmp_path.replace(path)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise IoFailureError(path, str(e)) from e
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    logger.debug(f"Wrote {path} ({len(data)} bytes)")


def read_bytes(path: Path) -> bytes | None:
    """Read a file, returning None when it does not exist.

    Raises:
        IoFailureError: If the file exists but cannot be read
    """
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None
    except OSError as e:
        raise IoFailureError(path, str(e)) from e


def remove_file(path: Path) -> None:
    """Delete path if it exists."""
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        raise IoFailureError(path, str(e)) from e


class LiveTransaction:
    """Stage writes to several live files and apply them as one unit.

    ABOUTME: Reads see staged content first, so adapters can layer edits on one file
    ABOUTME: commit() records each file's prior bytes and restores them all on failure
    ABOUTME: rollback() can also be called after commit() when a later step fails

    Examples:
        >>> tx = LiveTransaction()
        >>> tx.stage(Path("settings.json"), b"{}")
        >>> tx.commit()
    """

    def __init__(self) -> None:
        self._staged: dict[Path, bytes | None] = {}
        self._originals: dict[Path, bytes | None] = {}
        self._applied: list[Path] = []

    def read_bytes(self, path: Path) -> bytes | None:
        if path in self._staged:
            return self._staged[path]
        return read_bytes(path)

    def read_text(self, path: Path) -> str | None:
        data = self.read_bytes(path)
        return data.decode("utf-8") if data is not None else None

    def stage(self, path: Path, data: bytes | None) -> None:
        """Stage new contents for path (None deletes the file)."""
        self._staged[path] = data

    def stage_text(self, path: Path, text: str | None) -> None:
        self.stage(path, text.encode("utf-8") if text is not None else None)

    @property
    def staged_paths(self) -> list[Path]:
        return list(self._staged)

    def commit(self) -> None:
        """Apply all staged writes.

        Raises:
            IoFailureError: If a write fails; files already written are restored first
        """
        try:
            for path, data in self._staged.items():
                self._originals[path] = read_bytes(path)
                if data is None:
                    if self._originals[path] is None:
                        continue
                    remove_file(path)
                else:
                    atomic_write(path, data)
                self._applied.append(path)
        except IoFailureError:
            self.rollback()
            raise
        self._staged = {}

    def rollback(self) -> None:
        """Restore every applied file to its bytes from before commit().

        ABOUTME: Logs and continues past individual restore failures
        """
        for path in reversed(self._applied):
            original = self._originals.get(path)
            try:
                if original is None:
                    remove_file(path)
                else:
                    atomic_write(path, original)
                logger.debug(f"Rolled back {path}")
            except IoFailureError as e:
                logger.error(f"Failed to roll back {path}: {e}")
        self._applied = []
        self._staged = {}
