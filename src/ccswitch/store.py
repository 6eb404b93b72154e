# Shared application state and the concurrency guard around the canonical store
import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from ccswitch.config import (
    get_config_dir,
    get_config_path,
    get_settings_path,
    load_config,
    save_config,
)
from ccswitch.models import MultiAppConfig, PlatformAdapter, check_app
from ccswitch.platforms import get_all_platforms
from ccswitch.settings import Settings, load_settings
from ccswitch.utils.backup import get_backup_dir

logger = logging.getLogger(__name__)


class RWLock:
    """Reader/writer lock built on threading.Condition.

    ABOUTME: Many readers or one writer; waiting writers block new readers
    ABOUTME: The writing thread may re-acquire the write lock and may take read locks
    ABOUTME: Read locks are not reentrant on their own
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._readers = 0
        self._writer: int | None = None
        self._writer_depth = 0
        self._waiting_writers = 0

    def acquire_read(self) -> None:
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                self._writer_depth += 1
                return
            while self._writer is not None or self._waiting_writers:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                self._writer_depth -= 1
                return
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                self._writer_depth += 1
                return
            self._waiting_writers += 1
            try:
                while self._writer is not None or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = me
            self._writer_depth = 1

    def release_write(self) -> None:
        with self._cond:
            if self._writer != threading.get_ident():
                raise RuntimeError("release_write() called by a thread not holding the lock")
            self._writer_depth -= 1
            if self._writer_depth == 0:
                self._writer = None
                self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class AppState:
    """The canonical store plus everything a mutation needs.

    ABOUTME: Holds the in-memory MultiAppConfig, its path, tool settings and adapters
    ABOUTME: Readers use read(); mutations hold write() for the whole
    ABOUTME: read-modify-render-write-persist sequence and finish with commit()

    Examples:
        >>> state = AppState.load()
        >>> with state.read() as config:
        ...     config.app("claude").current
    """

    def __init__(
        self,
        config: MultiAppConfig,
        config_path: Path,
        settings: Settings | None = None,
        adapters: dict[str, PlatformAdapter] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._config = config
        self.config_path = config_path
        self.settings = settings or Settings()
        self.adapters = adapters or get_all_platforms(self.settings.config_dirs())
        self.clock = clock
        self.lock = RWLock()
        # True while config.json on disk could not be parsed
        self.recovering = False

    @classmethod
    def load(cls, config_dir: Path | None = None) -> "AppState":
        """Load settings and the canonical store from config_dir.

        Raises:
            ConfigCorruptedError: If config.json cannot be parsed
        """
        directory = config_dir or get_config_dir()
        settings = load_settings(get_settings_path(directory))
        config = load_config(get_config_path(directory))
        return cls(config, get_config_path(directory), settings=settings)

    @classmethod
    def for_recovery(cls, config_dir: Path | None = None) -> "AppState":
        """State over an empty store for when config.json cannot be loaded.

        ABOUTME: Lets backups be listed and restored without parsing config.json
        ABOUTME: restore() keeps the unreadable file as its pre-restore backup
        """
        directory = config_dir or get_config_dir()
        settings = load_settings(get_settings_path(directory))
        state = cls(MultiAppConfig(), get_config_path(directory), settings=settings)
        state.recovering = True
        return state

    @property
    def config(self) -> MultiAppConfig:
        """The committed canonical store. Treat as read-only."""
        return self._config

    @property
    def config_dir(self) -> Path:
        return self.config_path.parent

    @property
    def backup_dir(self) -> Path:
        return get_backup_dir(self.config_dir)

    def adapter(self, app: str) -> PlatformAdapter:
        return self.adapters[check_app(app)]

    def now(self) -> datetime:
        return self.clock()

    def now_ms(self) -> int:
        return int(self.clock().timestamp() * 1000)

    @contextmanager
    def read(self) -> Iterator[MultiAppConfig]:
        """Hold the shared lock and yield the committed store."""
        with self.lock.read_locked():
            yield self._config

    @contextmanager
    def write(self) -> Iterator["AppState"]:
        """Hold the exclusive lock for a whole mutation."""
        with self.lock.write_locked():
            yield self

    def commit(self, config: MultiAppConfig) -> None:
        """Persist config to disk, then make it the in-memory store.

        ABOUTME: Must be called while holding write()
        ABOUTME: On failure the in-memory store is left unchanged

        Raises:
            IoFailureError: If config.json cannot be written
        """
        save_config(self.config_path, config)
        self._config = config
        self.recovering = False
        logger.debug(f"Persisted canonical store to {self.config_path}")
