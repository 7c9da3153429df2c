"""Shared models and enums for tohru."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .digest import Digest

SOURCE_KIND_LOCAL = "local"


class LockStatus(str, Enum):
    """Whether a source is currently applied."""

    UNLOADED = "unloaded"
    LOADED = "loaded"


class OpKind(str, Enum):
    """Kinds of filesystem operations a manifest produces."""

    LINK = "link"
    FILE = "file"
    DIR = "dir"


@dataclass(frozen=True, slots=True)
class TrackedObject:
    """State of a filesystem entry at a point in time."""

    path: Path
    digest: Digest


@dataclass(frozen=True, slots=True)
class ManagedEntry:
    """An object tohru created and owns.

    ``curr`` is the digest observed right after creation. ``prev`` points at
    the backup object holding whatever occupied ``path`` before.
    """

    path: Path
    curr: TrackedObject
    prev: TrackedObject | None = None


@dataclass(frozen=True, slots=True)
class AutoDir:
    """A parent directory created only to host a managed entry."""

    path: Path


@dataclass(frozen=True, slots=True)
class LockState:
    """Durable record of what tohru currently owns."""

    state: LockStatus = LockStatus.UNLOADED
    source_kind: str = SOURCE_KIND_LOCAL
    source_location: str = ""
    source_name: str = ""
    entries: tuple[ManagedEntry, ...] = ()
    auto_dirs: tuple[AutoDir, ...] = ()

    def __post_init__(self) -> None:
        if self.state is LockStatus.UNLOADED and (self.entries or self.auto_dirs):
            raise ValueError("an unloaded lock cannot own entries or auto dirs")
        if self.state is LockStatus.LOADED and not self.source_location.strip():
            raise ValueError("a loaded lock requires a source location")

    @classmethod
    def unloaded(cls) -> "LockState":
        return cls()

    @property
    def is_loaded(self) -> bool:
        return self.state is LockStatus.LOADED

    def referenced_digests(self) -> set[str]:
        """Backup keys referenced by any entry's ``prev``."""

        return {
            str(entry.prev.digest)
            for entry in self.entries
            if entry.prev is not None and not entry.prev.digest.is_zero()
        }


@dataclass(frozen=True, slots=True)
class Options:
    """Permissions granted to a mutating operation.

    ``force`` allows clobbering and removing modified or missing objects.
    ``discard_changes`` only allows replacing or removing modified managed
    objects.
    """

    force: bool = False
    discard_changes: bool = False


@dataclass(frozen=True, slots=True)
class LoadResult:
    source_dir: Path
    source_name: str
    tracked_count: int
    unloaded_source_name: str = ""
    unloaded_count: int = 0
    removed_backups: int = 0
    changed_paths: tuple[Path, ...] = ()


@dataclass(frozen=True, slots=True)
class UnloadResult:
    source_name: str
    removed_count: int
    removed_backups: int = 0
    changed_paths: tuple[Path, ...] = ()


@dataclass(frozen=True, slots=True)
class TidyResult:
    removed_count: int
    removed_transactions: int = 0
    changed_paths: tuple[Path, ...] = ()


@dataclass(frozen=True, slots=True)
class ImportTree:
    """Which manifest files were merged, mirroring the import graph."""

    path: Path
    imports: tuple["ImportTree", ...] = ()


@dataclass(frozen=True, slots=True)
class ValidateResult:
    source_dir: Path
    source_name: str
    op_count: int
    link_count: int
    file_count: int
    dir_count: int
    import_tree: ImportTree


def source_display_name(name: str, location: str | Path) -> str:
    """Return ``name`` or, failing that, the basename of ``location``."""

    if name.strip():
        return name.strip()
    text = str(location).strip()
    if not text:
        return ""
    return Path(text).name
