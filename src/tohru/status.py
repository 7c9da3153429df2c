"""Compare the lock against the live filesystem and the backup store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .backups import BackupStore
from .digest import digest_of
from .errors import DigestError
from .filesystem import exists
from .models import LockState

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TrackedStatus:
    path: Path
    prev_digest: str = ""
    backup_present: bool = False
    drifted: bool = False
    missing: bool = False

    @property
    def label(self) -> str:
        if self.missing:
            return "missing"
        if self.drifted:
            return "drifted"
        return "ok"


@dataclass(frozen=True, slots=True)
class BackupRefStatus:
    """A backup key referenced by the lock and the paths referencing it."""

    digest: str
    paths: tuple[Path, ...]
    present: bool


@dataclass(frozen=True, slots=True)
class StatusReport:
    lock: LockState
    tracked: tuple[TrackedStatus, ...] = ()
    backup_refs: tuple[BackupRefStatus, ...] = ()
    orphaned: tuple[str, ...] = ()
    broken: tuple[str, ...] = ()
    stale_transactions: tuple[Path, ...] = ()

    @property
    def drifted(self) -> tuple[TrackedStatus, ...]:
        return tuple(item for item in self.tracked if item.drifted)

    @property
    def missing_backups(self) -> tuple[BackupRefStatus, ...]:
        return tuple(ref for ref in self.backup_refs if not ref.present)

    @property
    def clean(self) -> bool:
        return not (self.drifted or self.missing_backups or self.broken)


def scan_status(
    lock: LockState,
    backups: BackupStore,
    stale_transactions: Iterable[Path] = (),
) -> StatusReport:
    """Report drift per entry, referenced backups, and orphaned or broken keys."""

    scan = backups.scan()
    tracked: list[TrackedStatus] = []
    referenced: dict[str, list[Path]] = {}

    for entry in sorted(lock.entries, key=lambda item: str(item.path)):
        prev_key = ""
        if entry.prev is not None and not entry.prev.digest.is_zero():
            prev_key = str(entry.prev.digest)
            referenced.setdefault(prev_key, []).append(entry.path)

        missing = not exists(entry.path)
        drifted = missing
        expected = entry.curr.digest
        if not missing and not expected.is_zero():
            try:
                drifted = digest_of(entry.path) != expected
            except DigestError as exc:
                logger.debug("Cannot digest %s: %s", entry.path, exc)
                drifted = True

        tracked.append(
            TrackedStatus(
                path=entry.path,
                prev_digest=prev_key,
                backup_present=bool(prev_key) and prev_key in scan.present,
                drifted=drifted,
                missing=missing,
            )
        )

    backup_refs = tuple(
        BackupRefStatus(digest=key, paths=tuple(paths), present=key in scan.present)
        for key, paths in sorted(referenced.items())
    )
    stored = scan.present | set(scan.broken)
    orphaned = tuple(sorted(key for key in stored if key not in referenced))

    return StatusReport(
        lock=lock,
        tracked=tuple(tracked),
        backup_refs=backup_refs,
        orphaned=orphaned,
        broken=tuple(scan.broken),
        stale_transactions=tuple(stale_transactions),
    )
