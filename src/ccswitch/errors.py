# Error taxonomy for ccswitch
from pathlib import Path


class CcSwitchError(Exception):
    """Base class for every error raised by ccswitch.

    ABOUTME: Library code raises subclasses of this, the CLI maps them to exit codes
    """


class NotFoundError(CcSwitchError, LookupError):
    """A referenced provider, MCP server, prompt or backup does not exist.

    ABOUTME: Raised before any side effect happens
    """

    def __init__(self, kind: str, identifier: str, app: str | None = None) -> None:
        self.kind = kind
        self.identifier = identifier
        self.app = app
        where = f" for {app}" if app else ""
        super().__init__(f"{kind} '{identifier}' not found{where}")

    def __str__(self) -> str:
        # LookupError would otherwise repr() the message like KeyError does
        return str(self.args[0])


class ValidationFailedError(CcSwitchError, ValueError):
    """Malformed entity fields, duplicate ids or empty required fields."""


class LiveFileUnavailableError(CcSwitchError):
    """The target application has not been initialized on this machine.

    ABOUTME: Distinguished from hard errors so callers can skip the live sync
    """

    def __init__(self, app: str, path: Path) -> None:
        self.app = app
        self.path = path
        super().__init__(f"{app} live file not found: {path}")


class IoFailureError(CcSwitchError):
    """A write, rename or permission failure on a concrete path."""

    def __init__(self, path: Path, message: str) -> None:
        self.path = path
        super().__init__(f"I/O failure on {path}: {message}")


class FormatError(CcSwitchError, ValueError):
    """A file or snippet exists but cannot be parsed.

    ABOUTME: Carries the offending path (None for in-memory snippets)
    """

    def __init__(self, path: Path | None, message: str) -> None:
        self.path = path
        location = f"{path}: " if path else ""
        super().__init__(f"{location}{message}")


class ConfigCorruptedError(FormatError):
    """The canonical store on disk cannot be loaded.

    ABOUTME: Never repaired automatically; points at the newest backup instead
    """

    def __init__(self, path: Path, message: str, latest_backup: Path | None = None) -> None:
        self.latest_backup = latest_backup
        hint = (
            f" (restore with: ccswitch config restore {latest_backup.name})"
            if latest_backup
            else ""
        )
        super().__init__(path, f"{message}{hint}")
