"""Apply and unload managed objects against the live filesystem."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping

from .backups import BackupStore
from .digest import Digest, DigestKind, digest_of
from .errors import ConflictError, TohruError
from .filesystem import (
    DirRemoval,
    copy_file,
    deepest_first,
    ensure_parent_dirs,
    exists,
    remove_empty_dir,
    remove_path,
)
from .journal import Journal
from .models import AutoDir, ManagedEntry, OpKind, Options, TrackedObject
from .operations import Operation

logger = logging.getLogger(__name__)


class ChangeRecorder:
    """Paths touched by an operation, in first-touch order."""

    def __init__(self) -> None:
        self._paths: dict[Path, None] = {}

    def add(self, path: Path) -> None:
        self._paths.setdefault(path, None)

    @property
    def paths(self) -> tuple[Path, ...]:
        return tuple(self._paths)

    def __len__(self) -> int:
        return len(self._paths)


@dataclass(slots=True)
class EngineContext:
    """Everything a single apply or unload pass needs besides its inputs.

    With a ``journal`` every removal is stashed and every creation recorded so
    the pass can be rolled back; without one removals are final.
    """

    backups: BackupStore
    options: Options = field(default_factory=Options)
    backup_enabled: bool = True
    journal: Journal | None = None
    changes: ChangeRecorder = field(default_factory=ChangeRecorder)

    def discard(self, path: Path) -> None:
        if self.journal is not None:
            self.journal.stash(path)
        else:
            remove_path(path)
        self.changes.add(path)
        logger.debug("Removed %s", path)

    def created(self, path: Path) -> None:
        if self.journal is not None:
            self.journal.created(path)
        self.changes.add(path)
        logger.debug("Created %s", path)


def snapshot_if_exists(path: Path) -> Digest | None:
    if not exists(path):
        return None
    return digest_of(path)


def prepare_destination(op: Operation, prior: ManagedEntry | None, ctx: EngineContext) -> TrackedObject | None:
    """Clear ``op.dest`` for materialisation and return the ``prev`` to record.

    ``prior`` is the entry the current lock holds for the same path, if any.
    Anything foreign at the destination is backed up (tracked operations with
    backups enabled), clobbered (``force``) or refused.
    """

    prev = prior.prev if prior is not None else None
    current = snapshot_if_exists(op.dest)
    if current is None:
        return prev

    options = ctx.options
    label = f"{op.kind.value} {op.dest}"

    if prior is not None and current == prior.curr.digest:
        ctx.discard(op.dest)
        return prev

    if not op.track:
        if op.kind is OpKind.DIR and current.kind is DigestKind.DIR:
            return prev
        if not options.force:
            raise ConflictError(f"{label}: destination exists (would clobber), use --force to overwrite")
        ctx.discard(op.dest)
        return prev

    if op.kind is OpKind.DIR and prior is None and not options.force:
        raise ConflictError(f"{label}: tracked dir destination already exists, use --force to overwrite")

    if prev is None and ctx.backup_enabled:
        ref = ctx.backups.persist(op.dest, current)
        if ref.created and ctx.journal is not None:
            ctx.journal.stored_backup(ctx.backups.entry_path(str(ref.digest)))
        logger.info("Backed up %s as %s", op.dest, ref.digest)
        ctx.discard(op.dest)
        return ref.as_tracked()

    if prior is not None and (options.force or options.discard_changes):
        ctx.discard(op.dest)
        return prev

    if not options.force:
        if prev is None and not ctx.backup_enabled:
            raise ConflictError(
                f"{label}: destination exists and options.backup=false, refusing to clobber without --force"
            )
        if prior is not None:
            raise ConflictError(f"managed path was modified: {op.dest}")
        raise ConflictError(f"{label}: destination exists (would clobber), use --force to overwrite")

    ctx.discard(op.dest)
    return prev


def _owned_directory(op: Operation, prior: ManagedEntry | None) -> bool:
    # a directory from the current lock may hold other managed entries
    return (
        op.kind is OpKind.DIR
        and op.track
        and prior is not None
        and op.dest.is_dir()
        and not op.dest.is_symlink()
    )


def _source_of(op: Operation) -> Path:
    if op.source is None:
        raise TohruError(f"{op.kind.value} {op.dest} has no source")
    return op.source


def _materialise(op: Operation, ctx: EngineContext) -> None:
    if op.kind is OpKind.LINK:
        op.dest.symlink_to(_source_of(op))
    elif op.kind is OpKind.FILE:
        copy_file(_source_of(op), op.dest)
    elif op.kind is OpKind.DIR:
        if op.dest.is_dir():
            return
        op.dest.mkdir()
    else:
        raise TohruError(f"unsupported operation kind {op.kind!r}")
    ctx.created(op.dest)


def apply_operations(
    ops: Iterable[Operation],
    prior_by_path: Mapping[Path, ManagedEntry],
    ctx: EngineContext,
) -> tuple[list[ManagedEntry], list[AutoDir]]:
    """Materialise ``ops`` in order; return the new entries and created parent dirs."""

    entries: list[ManagedEntry] = []
    auto_dirs: dict[Path, None] = {}

    for op in ops:
        prior = prior_by_path.get(op.dest)
        if prior is not None and _owned_directory(op, prior):
            entries.append(ManagedEntry(path=op.dest, curr=prior.curr, prev=prior.prev))
            logger.debug("Keeping managed directory %s", op.dest)
            continue

        prev = prepare_destination(op, prior, ctx)

        for directory in ensure_parent_dirs(op.dest):
            if ctx.journal is not None:
                ctx.journal.created_dir(directory)
            auto_dirs.setdefault(directory, None)
            ctx.changes.add(directory)

        _materialise(op, ctx)

        if not op.track:
            continue
        curr = TrackedObject(path=op.dest, digest=digest_of(op.dest))
        entries.append(ManagedEntry(path=op.dest, curr=curr, prev=prev))

    return entries, [AutoDir(path=path) for path in sorted(auto_dirs)]


def remove_managed_object(entry: ManagedEntry, ctx: EngineContext) -> bool:
    """Remove a managed object after checking it still matches ``entry.curr``.

    Returns ``False`` when the object was already gone and ``force`` allowed
    carrying on.
    """

    path = entry.path
    current = snapshot_if_exists(path)
    if current is None:
        if ctx.options.force:
            logger.warning("Managed path %s is already gone", path)
            return False
        raise ConflictError(f"managed path missing: {path}")

    expected = entry.curr.digest
    modified = not expected.is_zero() and current != expected
    if modified and not (ctx.options.force or ctx.options.discard_changes):
        raise ConflictError(f"managed path was modified: {path}")
    if modified:
        logger.warning("Discarding changes to %s", path)

    ctx.discard(path)
    return True


def unload_managed_paths(
    entries: Iterable[ManagedEntry],
    occupied: set[Path] | frozenset[Path],
    ctx: EngineContext,
) -> int:
    """Remove ``entries`` deepest first and restore their backups.

    Backups of paths in ``occupied`` are left in the store; the incoming
    operations will reuse those paths. Returns the number of removed objects.
    """

    removed = 0
    for entry in deepest_first(entries, lambda item: item.path):
        if remove_managed_object(entry, ctx):
            removed += 1

        if entry.prev is None or entry.prev.digest.is_zero():
            continue
        if entry.path in occupied:
            continue
        if ctx.backups.restore(entry.prev, entry.path, force=ctx.options.force, discard=ctx.discard):
            ctx.created(entry.path)
            logger.info("Restored %s from backup %s", entry.path, entry.prev.digest)

    return removed


def cleanup_auto_dirs(dirs: Iterable[AutoDir], ctx: EngineContext) -> dict[Path, DirRemoval]:
    """Remove empty auto-created parent directories, deepest first."""

    outcomes: dict[Path, DirRemoval] = {}
    for auto in deepest_first(dirs, lambda item: item.path):
        outcome = remove_empty_dir(auto.path)
        outcomes[auto.path] = outcome
        if outcome is DirRemoval.REMOVED:
            if ctx.journal is not None:
                ctx.journal.removed_dir(auto.path)
            ctx.changes.add(auto.path)
            logger.debug("Removed auto-created directory %s", auto.path)
        else:
            logger.debug("Left auto-created directory %s in place (%s)", auto.path, outcome.value)
    return outcomes
