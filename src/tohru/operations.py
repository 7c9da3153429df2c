"""Turn a merged manifest into an ordered list of filesystem operations."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .errors import DuplicateDestinationError, ManifestError, PathEscapeError
from .filesystem import absolute_path, expand_home, path_depth
from .manifest import Manifest
from .models import OpKind


@dataclass(frozen=True, slots=True)
class Operation:
    """Materialise one object at ``dest``.

    ``source`` is the link target or the file to copy; directory operations
    have none. Untracked operations are placed on disk but never recorded.
    """

    kind: OpKind
    dest: Path
    source: Path | None = None
    track: bool = True


def resolve_source_path(source_dir: Path, raw: str) -> Path:
    """Resolve ``raw`` against ``source_dir`` and refuse anything outside it."""

    text = expand_home(raw.strip())
    if not text:
        raise ManifestError("source path is empty")

    root = Path(os.path.normpath(source_dir))
    candidate = Path(os.path.normpath(root / text))
    if candidate != root and root not in candidate.parents:
        raise PathEscapeError(f"path escapes source root: {raw}")
    return candidate


def resolve_destination(raw: str) -> Path:
    if not raw.strip():
        raise ManifestError("destination path is empty")
    return absolute_path(raw)


def build_operations(manifest: Manifest, source_dir: Path) -> list[Operation]:
    """Build the operations for ``manifest``.

    Directories come first, ancestors before descendants, so anything a
    manifest places inside a declared directory finds it already there.
    Links and files follow in manifest order.
    """

    dirs = [
        Operation(kind=OpKind.DIR, dest=resolve_destination(entry.path), track=entry.tracked)
        for entry in manifest.dirs
    ]
    dirs.sort(key=lambda op: path_depth(op.dest))

    links = [
        Operation(
            kind=OpKind.LINK,
            dest=resolve_destination(entry.from_),
            source=resolve_source_path(source_dir, entry.to),
            track=True,
        )
        for entry in manifest.links
    ]
    files = [
        Operation(
            kind=OpKind.FILE,
            dest=resolve_destination(entry.dest),
            source=resolve_source_path(source_dir, entry.source),
            track=entry.tracked,
        )
        for entry in manifest.files
    ]

    ops = [*dirs, *links, *files]
    seen: set[Path] = set()
    for op in ops:
        if op.dest in seen:
            raise DuplicateDestinationError(f"duplicate destination in manifest: {op.dest}")
        seen.add(op.dest)
    return ops


def count_kinds(ops: list[Operation]) -> dict[OpKind, int]:
    counts = {kind: 0 for kind in OpKind}
    for op in ops:
        counts[op.kind] += 1
    return counts
