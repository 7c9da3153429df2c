"""Undo journal that lets a failed load put the filesystem back.

Every mutation a load performs is recorded here. Removed objects are not
deleted but moved into a private staging directory, so ``rollback`` can move
them back byte-for-byte. ``commit`` throws the staging directory away.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .errors import TohruError
from .filesystem import DirRemoval, exists, remove_empty_dir, remove_path

logger = logging.getLogger(__name__)

STAGING_PREFIX = "txn-"


class JournalAction(str, Enum):
    CREATED = "created"
    REMOVED = "removed"
    CREATED_DIR = "created_dir"
    REMOVED_DIR = "removed_dir"
    STORED_BACKUP = "stored_backup"


@dataclass(frozen=True, slots=True)
class JournalRecord:
    action: JournalAction
    path: Path
    stash: Path | None = None


class Journal:
    """Ordered record of filesystem mutations that can be undone in reverse."""

    def __init__(self, staging_root: Path) -> None:
        self.staging_root = staging_root
        self.records: list[JournalRecord] = []
        self._staging: Path | None = None

    def __len__(self) -> int:
        return len(self.records)

    def stash(self, path: Path) -> None:
        """Move ``path`` out of the way, keeping it for a possible rollback."""

        if self._staging is None:
            self.staging_root.mkdir(parents=True, exist_ok=True)
            self._staging = Path(tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=self.staging_root))

        target = self._staging / str(len(self.records))
        shutil.move(str(path), str(target))
        self.records.append(JournalRecord(JournalAction.REMOVED, path, target))
        logger.debug("Stashed %s", path)

    def created(self, path: Path) -> None:
        self.records.append(JournalRecord(JournalAction.CREATED, path))

    def created_dir(self, path: Path) -> None:
        self.records.append(JournalRecord(JournalAction.CREATED_DIR, path))

    def removed_dir(self, path: Path) -> None:
        self.records.append(JournalRecord(JournalAction.REMOVED_DIR, path))

    def stored_backup(self, entry: Path) -> None:
        self.records.append(JournalRecord(JournalAction.STORED_BACKUP, entry))

    def rollback(self) -> list[str]:
        """Undo every record, newest first; return descriptions of steps that failed."""

        failures: list[str] = []
        for record in reversed(self.records):
            try:
                self._undo(record)
            except (TohruError, OSError) as exc:
                logger.warning("Rollback step %s %s failed: %s", record.action.value, record.path, exc)
                failures.append(f"{record.action.value} {record.path}: {exc}")

        self.records.clear()
        if not failures:
            self._drop_staging()
        return failures

    def commit(self) -> None:
        self.records.clear()
        self._drop_staging()

    def _undo(self, record: JournalRecord) -> None:
        if record.action is JournalAction.CREATED:
            remove_path(record.path)
        elif record.action is JournalAction.CREATED_DIR:
            outcome = remove_empty_dir(record.path)
            if outcome is DirRemoval.NOT_EMPTY:
                logger.warning("Leaving non-empty directory %s in place", record.path)
        elif record.action is JournalAction.REMOVED_DIR:
            record.path.mkdir(exist_ok=True)
        elif record.action is JournalAction.STORED_BACKUP:
            remove_path(record.path)
        elif record.action is JournalAction.REMOVED:
            if record.stash is None:
                raise TohruError(f"no stashed copy recorded for {record.path}")
            if exists(record.path):
                remove_path(record.path)
            shutil.move(str(record.stash), str(record.path))
        logger.debug("Undid %s %s", record.action.value, record.path)

    def _drop_staging(self) -> None:
        if self._staging is None:
            return
        try:
            remove_path(self._staging)
        except OSError as exc:
            logger.warning("Could not remove staging directory %s: %s", self._staging, exc)
        self._staging = None
