"""Filesystem helpers for tohru."""

from __future__ import annotations

import errno
import os
import shutil
import stat
import tempfile
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, TypeVar

from .errors import PreconditionError

T = TypeVar("T")


class DirRemoval(str, Enum):
    """Outcome of a best-effort attempt to remove an empty directory."""

    REMOVED = "removed"
    NOT_EMPTY = "not_empty"
    MISSING = "missing"
    NOT_A_DIRECTORY = "not_a_directory"
    DENIED = "denied"


def expand_home(raw: str) -> str:
    """Expand a leading ``~`` in ``raw``."""

    return os.path.expanduser(raw)


def absolute_path(raw: str | os.PathLike[str]) -> Path:
    """Return a normalised absolute path without resolving symlinks."""

    text = str(raw).strip()
    if not text:
        raise PreconditionError("path is empty")
    return Path(os.path.abspath(expand_home(text)))


def exists(path: Path) -> bool:
    """Return ``True`` if anything, including a dangling symlink, is at ``path``."""

    return os.path.lexists(path)


def path_depth(path: Path | str) -> int:
    return len([part for part in Path(os.path.normpath(path)).parts if part != os.sep])


def deepest_first(items: Iterable[T], path_of: Callable[[T], Path]) -> list[T]:
    """Order ``items`` by descending path depth, ties by reverse lexicographic path."""

    return sorted(items, key=lambda item: (path_depth(path_of(item)), str(path_of(item))), reverse=True)


def write_atomic(path: Path, data: bytes) -> None:
    """Write ``data`` to a temporary sibling of ``path`` and rename it into place."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(temp_path, path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def copy_file(source: Path, destination: Path) -> None:
    """Copy a regular file, preserving its mode, via a temporary sibling."""

    if not source.is_file():
        raise FileNotFoundError(errno.ENOENT, "source is not a regular file", str(source))

    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{destination.name}.", suffix=".tmp", dir=destination.parent)
    os.close(fd)
    temp_path = Path(temp_name)
    try:
        shutil.copyfile(source, temp_path)
        shutil.copymode(source, temp_path)
        os.replace(temp_path, destination)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def copy_path(source: Path, destination: Path) -> None:
    """Copy the object at ``source`` to ``destination``.

    Symlinks are recreated with the same target, files keep their mode and
    directories are copied recursively.
    """

    mode = source.lstat().st_mode
    destination.parent.mkdir(parents=True, exist_ok=True)

    if stat.S_ISLNK(mode):
        destination.symlink_to(os.readlink(source))
    elif stat.S_ISREG(mode):
        copy_file(source, destination)
    elif stat.S_ISDIR(mode):
        shutil.copytree(source, destination, symlinks=True, copy_function=shutil.copy2)
    else:
        raise OSError(errno.EINVAL, "unsupported source type", str(source))


def remove_path(path: Path) -> None:
    """Delete ``path`` whether it is a file, directory, or symlink."""

    normalised = os.path.normpath(path)
    if normalised in (".", os.sep):
        raise PreconditionError(f"refusing to remove unsafe path: {path}")

    if not exists(path):
        return
    if path.is_symlink() or not path.is_dir():
        path.unlink()
        return
    shutil.rmtree(path)


def ensure_parent_dirs(path: Path) -> list[Path]:
    """Create the missing ancestors of ``path``; return them outermost first."""

    missing: list[Path] = []
    current = path.parent
    while current != current.parent:
        if exists(current):
            if not current.is_dir():
                raise NotADirectoryError(errno.ENOTDIR, "path exists and is not a directory", str(current))
            break
        missing.append(current)
        current = current.parent

    created: list[Path] = []
    for directory in reversed(missing):
        try:
            directory.mkdir()
        except FileExistsError:
            if directory.is_dir():
                continue
            raise
        created.append(directory)
    return created


def remove_empty_dir(path: Path) -> DirRemoval:
    """Remove ``path`` if it is an empty real directory.

    Unexpected errors propagate; the expected reasons for leaving a directory
    in place are reported as a ``DirRemoval`` outcome.
    """

    try:
        mode = path.lstat().st_mode
    except FileNotFoundError:
        return DirRemoval.MISSING
    if not stat.S_ISDIR(mode):
        return DirRemoval.NOT_A_DIRECTORY

    try:
        path.rmdir()
    except FileNotFoundError:
        return DirRemoval.MISSING
    except PermissionError:
        return DirRemoval.DENIED
    except OSError as exc:
        if exc.errno in (errno.ENOTEMPTY, errno.EEXIST):
            return DirRemoval.NOT_EMPTY
        raise
    return DirRemoval.REMOVED
