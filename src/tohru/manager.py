"""High level orchestration for tohru operations."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from .config import Config
from .digest import DigestKind
from .engine import EngineContext, apply_operations, cleanup_auto_dirs, unload_managed_paths
from .errors import ManifestError, PreconditionError, RollbackError, TohruError, VersionError
from .filesystem import DirRemoval, remove_path
from .journal import Journal
from .manifest import LoadedManifest, load_manifest
from .models import (
    SOURCE_KIND_LOCAL,
    AutoDir,
    LoadResult,
    LockState,
    LockStatus,
    ManagedEntry,
    OpKind,
    Options,
    TidyResult,
    UnloadResult,
    ValidateResult,
    source_display_name,
)
from .operations import Operation, build_operations, count_kinds
from .status import StatusReport, scan_status
from .store import Store
from .version import ensure_compatible

logger = logging.getLogger(__name__)


class TohruManager:
    """Coordinates the store, the manifest and the apply/unload engine."""

    def __init__(self, store: Store | None = None) -> None:
        self.store = store or Store.default()

    def install(self) -> list[Path]:
        return self.store.install()

    def load(self, source: str | os.PathLike[str], options: Options | None = None) -> LoadResult:
        """Apply the manifest at ``source``, replacing whatever is loaded.

        Manifest and path errors are raised before anything is touched. Once
        mutation starts, any failure rolls the filesystem and the lock back to
        their state before the call and raises ``RollbackError``.
        """

        options = options or Options()
        loaded, ops = self._plan(source)

        self.store.ensure_installed()
        config = self.store.load_config()
        old = self.store.load_lock()

        occupied = {op.dest for op in ops}
        prior_by_path = {entry.path: entry for entry in old.entries if entry.path in occupied}
        leaving = [entry for entry in old.entries if entry.path not in occupied]
        # reoccupied entries inside a leaving directory go first so the directory is empty again
        nested = _nested_in_leaving(old.entries, leaving, occupied)

        journal = Journal(self.store.staging_path)
        ctx = EngineContext(
            backups=self.store.backups,
            options=options,
            backup_enabled=config.backup_enabled,
            journal=journal,
        )

        try:
            unloaded_count = unload_managed_paths([*leaving, *nested], occupied, ctx)
            outcomes = cleanup_auto_dirs(old.auto_dirs, ctx)
            self.store.save_lock(LockState.unloaded())
            logger.info("Checkpoint: %d entries unloaded", unloaded_count)

            entries, auto_dirs = apply_operations(ops, prior_by_path, ctx)
            carried = [
                AutoDir(path=path)
                for path, outcome in outcomes.items()
                if outcome is not DirRemoval.REMOVED and path.is_dir() and _hosts_any(path, occupied)
            ]
            new = LockState(
                state=LockStatus.LOADED,
                source_kind=SOURCE_KIND_LOCAL,
                source_location=str(loaded.source_dir),
                source_name=loaded.manifest.source_name,
                entries=tuple(entries),
                auto_dirs=_merge_auto_dirs(auto_dirs, carried),
            )
            self.store.save_lock(new)
        except (TohruError, OSError) as exc:
            logger.warning("Load of %s failed, rolling back: %s", loaded.source_dir, exc)
            failures = journal.rollback()
            self.store.save_lock(old)
            raise RollbackError(exc, failures) from exc

        journal.commit()
        removed_backups = self._auto_clean(config, new)
        logger.info("Loaded %s (%d tracked)", loaded.source_dir, len(new.entries))

        return LoadResult(
            source_dir=loaded.source_dir,
            source_name=source_display_name(loaded.manifest.source_name, loaded.source_dir),
            tracked_count=len(new.entries),
            unloaded_source_name=source_display_name(old.source_name, old.source_location) if old.is_loaded else "",
            unloaded_count=unloaded_count,
            removed_backups=removed_backups,
            changed_paths=ctx.changes.paths,
        )

    def switch(self, source: str | os.PathLike[str], options: Options | None = None) -> LoadResult:
        return self.load(source, options)

    def reload(self, options: Options | None = None) -> LoadResult:
        self.store.require_installed()
        lock = self.store.load_lock()
        if not lock.is_loaded:
            raise PreconditionError("no source is loaded")
        return self.load(lock.source_location, options)

    def unload(self, options: Options | None = None) -> UnloadResult:
        """Remove every managed object and restore its backup.

        Not transactional: on failure, entries processed so far stay removed
        and the lock still lists all of them.
        """

        options = options or Options()
        self.store.require_installed()
        config = self.store.load_config()
        old = self.store.load_lock()
        if not old.is_loaded:
            return UnloadResult(source_name="", removed_count=0)

        ctx = EngineContext(backups=self.store.backups, options=options, backup_enabled=config.backup_enabled)
        removed = unload_managed_paths(old.entries, set(), ctx)
        cleanup_auto_dirs(old.auto_dirs, ctx)

        new = LockState.unloaded()
        self.store.save_lock(new)
        removed_backups = self._auto_clean(config, new)
        logger.info("Unloaded %s (%d removed)", old.source_location, removed)

        return UnloadResult(
            source_name=source_display_name(old.source_name, old.source_location),
            removed_count=removed,
            removed_backups=removed_backups,
            changed_paths=ctx.changes.paths,
        )

    def uninstall(self, options: Options | None = None) -> UnloadResult:
        self.store.require_installed()
        result = UnloadResult(source_name="", removed_count=0)
        if self.store.load_lock().is_loaded:
            result = self.unload(options)
        self.store.uninstall()
        return result

    def tidy(self) -> TidyResult:
        self.store.require_installed()
        lock = self.store.load_lock()
        removed = self.store.backups.sweep(lock.referenced_digests())
        stale = self.store.stale_transactions()
        for path in stale:
            remove_path(path)
            logger.info("Removed stale staging directory %s", path)
        return TidyResult(
            removed_count=len(removed),
            removed_transactions=len(stale),
            changed_paths=(*removed, *stale),
        )

    def status(self) -> StatusReport:
        self.store.require_installed()
        return scan_status(
            self.store.load_lock(),
            self.store.backups,
            stale_transactions=self.store.stale_transactions(),
        )

    def validate(self, source: str | os.PathLike[str] | None = None) -> ValidateResult:
        """Check a manifest without touching the filesystem.

        Without ``source`` the currently loaded source is validated.
        """

        if source is None:
            self.store.require_installed()
            lock = self.store.load_lock()
            if not lock.is_loaded:
                raise PreconditionError("no source given and nothing is loaded")
            source = lock.source_location

        loaded, ops = self._plan(source)
        for op in ops:
            if op.kind is OpKind.FILE and op.source is not None and not op.source.is_file():
                raise ManifestError(f"source is not a regular file: {op.source}")

        counts = count_kinds(ops)
        return ValidateResult(
            source_dir=loaded.source_dir,
            source_name=source_display_name(loaded.manifest.source_name, loaded.source_dir),
            op_count=len(ops),
            link_count=counts[OpKind.LINK],
            file_count=counts[OpKind.FILE],
            dir_count=counts[OpKind.DIR],
            import_tree=loaded.tree,
        )

    def _plan(self, source: str | os.PathLike[str]) -> tuple[LoadedManifest, list[Operation]]:
        loaded = load_manifest(source)
        version = loaded.manifest.version
        try:
            ensure_compatible(version)
        except VersionError as exc:
            raise VersionError(f"unsupported source version {version!r}: {exc}") from exc
        return loaded, build_operations(loaded.manifest, loaded.source_dir)

    def _auto_clean(self, config: Config, lock: LockState) -> int:
        if not config.auto_clean_enabled:
            return 0
        return len(self.store.backups.sweep(lock.referenced_digests()))


def _hosts_any(directory: Path, paths: set[Path]) -> bool:
    return any(directory in path.parents for path in paths)


def _nested_in_leaving(
    entries: tuple[ManagedEntry, ...],
    leaving: list[ManagedEntry],
    occupied: set[Path],
) -> list[ManagedEntry]:
    directories = {entry.path for entry in leaving if entry.curr.digest.kind is DigestKind.DIR}
    return [
        entry
        for entry in entries
        if entry.path in occupied and any(directory in entry.path.parents for directory in directories)
    ]


def _merge_auto_dirs(*groups: list[AutoDir]) -> tuple[AutoDir, ...]:
    merged = {auto.path: auto for group in groups for auto in group}
    return tuple(merged[path] for path in sorted(merged))
