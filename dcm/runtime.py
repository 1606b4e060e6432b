from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Callable

from .config import Config, read_config
from .errors import ConfigInvalid


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class ConfigSnapshot:
    version: int
    config: Config
    source: str
    loaded_at: str


class ConfigStore:
    """Process-wide desired configuration, replaced wholesale on reload.

    Readers get an immutable snapshot and keep it for the whole operation;
    the lock is only held long enough to copy or swap the reference.
    """

    def __init__(self, path: str | Path, loader: Callable[[str | Path], Config] = read_config) -> None:
        self.path = str(path)
        self._loader = loader
        self._lock = Lock()
        self._current: ConfigSnapshot | None = None

    def reload(self) -> ConfigSnapshot:
        """Load the file and swap it in. On ConfigInvalid the previous snapshot stays."""
        config = self._loader(self.path)
        with self._lock:
            version = self._current.version + 1 if self._current else 1
            self._current = ConfigSnapshot(version=version, config=config, source=self.path, loaded_at=utc_now())
            return self._current

    def current(self) -> ConfigSnapshot:
        with self._lock:
            snap = self._current
        if snap is None:
            raise ConfigInvalid("no configuration loaded")
        return snap

    @property
    def loaded(self) -> bool:
        with self._lock:
            return self._current is not None
