"""Location and lifecycle of the tohru store directory."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import platformdirs

from .backups import BackupStore
from .config import CONFIG_FILENAME, Config, load_config, save_config
from .errors import AlreadyInstalledError, NotInstalledError
from .filesystem import remove_path
from .journal import STAGING_PREFIX
from .lock import LOCK_FILENAME, LockFile
from .models import LockState

APP_NAME = "tohru"
STORE_DIR_ENV = "TOHRU_STORE_DIR"
BACKUPS_DIRNAME = "backups"
STAGING_DIRNAME = "staging"

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Store:
    """Paths to the config, lock and backup object store under one root."""

    root: Path

    @classmethod
    def default(cls) -> "Store":
        override = os.environ.get(STORE_DIR_ENV, "").strip()
        if override:
            return cls(Path(os.path.abspath(os.path.expanduser(override))))
        return cls(Path(platformdirs.user_config_dir(APP_NAME)))

    @property
    def config_path(self) -> Path:
        return self.root / CONFIG_FILENAME

    @property
    def lock_path(self) -> Path:
        return self.root / LOCK_FILENAME

    @property
    def backups_path(self) -> Path:
        return self.root / BACKUPS_DIRNAME

    @property
    def staging_path(self) -> Path:
        return self.root / STAGING_DIRNAME

    @property
    def backups(self) -> BackupStore:
        return BackupStore(self.backups_path)

    def is_installed(self) -> bool:
        return self.config_path.exists() and self.lock_path.exists()

    def install(self) -> list[Path]:
        """Initialise the store; fail if it already exists."""

        if self.is_installed():
            raise AlreadyInstalledError(f"tohru is already installed in {self.root}")
        return self.ensure_installed()

    def ensure_installed(self) -> list[Path]:
        """Create whatever parts of the store are missing and return them."""

        created: list[Path] = []
        if not self.backups_path.is_dir():
            self.backups_path.mkdir(parents=True, exist_ok=True)
            created.append(self.backups_path)
        if not self.config_path.exists():
            save_config(self.config_path, Config())
            created.append(self.config_path)
        if not self.lock_path.exists():
            self.save_lock(LockState.unloaded())
            created.append(self.lock_path)

        if created:
            logger.info("Initialised tohru store in %s", self.root)
        return created

    def require_installed(self) -> None:
        if not self.is_installed():
            raise NotInstalledError()

    def stale_transactions(self) -> list[Path]:
        """Staging directories left behind by a load that never finished."""

        if not self.staging_path.is_dir():
            return []
        return sorted(path for path in self.staging_path.glob(f"{STAGING_PREFIX}*") if path.is_dir())

    def uninstall(self) -> None:
        self.require_installed()
        remove_path(self.root)
        logger.info("Removed tohru store %s", self.root)

    def load_config(self) -> Config:
        return load_config(self.config_path)

    def save_config(self, config: Config) -> None:
        save_config(self.config_path, config)

    def load_lock(self) -> LockState:
        return LockFile(self.lock_path).read()

    def save_lock(self, state: LockState) -> None:
        LockFile(self.lock_path).write(state)
        logger.debug("Wrote %s lock state to %s", state.state.value, self.lock_path)
