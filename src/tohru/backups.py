"""Content-addressed store for objects a load would otherwise destroy."""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from .digest import Digest, digest_of
from .errors import BackupCollisionError, BackupMismatchError, ConflictError
from .filesystem import copy_path, exists, remove_path
from .models import TrackedObject

OBJECT_NAME = "object"
_TEMP_PREFIX = ".tmp-"

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BackupRef:
    """Where a backup object lives and the digest it is keyed by."""

    digest: Digest
    path: Path
    created: bool = False

    def as_tracked(self) -> TrackedObject:
        return TrackedObject(path=self.path, digest=self.digest)


@dataclass(frozen=True, slots=True)
class BackupScan:
    """Keys with an object payload, and keys whose payload is missing."""

    present: frozenset[str]
    broken: tuple[str, ...]


class BackupStore:
    """Objects stored under ``<root>/<digest>/object``."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def entry_path(self, key: str) -> Path:
        return self.root / key

    def object_path(self, key: str) -> Path:
        return self.entry_path(key) / OBJECT_NAME

    def persist(self, path: Path, digest: Digest | None = None) -> BackupRef:
        """Store a copy of the object at ``path`` and return a reference to it."""

        digest = digest or digest_of(path)
        if digest.is_zero():
            raise BackupMismatchError(f"cannot back up object {path} with empty digest")

        key = str(digest)
        object_path = self.object_path(key)
        if exists(object_path):
            stored = digest_of(object_path)
            if stored != digest:
                raise BackupCollisionError(f"backup collision for {key} at {object_path}")
            logger.debug("Reusing backup object %s for %s", key, path)
            return BackupRef(digest=digest, path=object_path)

        self.root.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=_TEMP_PREFIX, dir=self.root))
        try:
            staged_object = staging / OBJECT_NAME
            copy_path(path, staged_object)
            written = digest_of(staged_object)
            if written != digest:
                raise BackupMismatchError(f"backup digest mismatch for {path}: stored {written}, expected {digest}")

            entry = self.entry_path(key)
            # a broken entry (payload missing) is replaced wholesale
            remove_path(entry)
            os.replace(staging, entry)
        except BaseException:
            remove_path(staging)
            raise

        logger.debug("Stored backup object %s for %s", key, path)
        return BackupRef(digest=digest, path=object_path, created=True)

    def restore(
        self,
        ref: TrackedObject,
        destination: Path,
        *,
        force: bool = False,
        discard: Callable[[Path], None] = remove_path,
    ) -> bool:
        """Copy the backup object behind ``ref`` to ``destination``.

        Returns ``False`` when ``force`` allowed skipping a missing or
        mismatched object. ``discard`` removes an occupied destination.
        """

        if ref.digest.is_zero():
            return False

        key = str(ref.digest)
        backup_path = ref.path if str(ref.path) not in ("", ".") else self.object_path(key)
        if not exists(backup_path):
            if force:
                logger.warning("Backup object %s for %s is missing; skipping restore", key, destination)
                return False
            raise ConflictError(f"missing backup object {backup_path} for {destination}")

        stored = digest_of(backup_path)
        if stored != ref.digest:
            if not force:
                raise BackupMismatchError(f"backup digest mismatch for {backup_path}")
            logger.warning("Backup object %s does not match its key; skipping restore", backup_path)
            return False

        if exists(destination):
            if not force:
                raise ConflictError(f"restore destination exists for {destination}")
            discard(destination)

        copy_path(backup_path, destination)
        logger.debug("Restored backup object %s to %s", key, destination)
        return True

    def keys(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(entry.name for entry in self.root.iterdir())

    def sweep(self, referenced: Iterable[str]) -> list[Path]:
        """Remove every stored entry whose key is not in ``referenced``."""

        keep = set(referenced)
        removed: list[Path] = []
        for key in self.keys():
            if key in keep:
                continue
            entry = self.entry_path(key)
            remove_path(entry)
            removed.append(entry)

        if removed:
            logger.info("Removed %d unreferenced backup object(s)", len(removed))
        return removed

    def scan(self) -> BackupScan:
        present: set[str] = set()
        broken: list[str] = []
        for key in self.keys():
            if key.startswith(_TEMP_PREFIX):
                continue
            if exists(self.object_path(key)):
                present.add(key)
            else:
                broken.append(key)
        return BackupScan(present=frozenset(present), broken=tuple(broken))
