"""Typed content digests for files, symlinks and directory trees."""

from __future__ import annotations

import os
import stat
from dataclasses import dataclass
from enum import Enum
from hashlib import sha256
from pathlib import Path

from .errors import DigestError

ALGORITHM_SHA256 = "sha256"

_CHUNK_SIZE = 1024 * 1024


class DigestKind(str, Enum):
    """Kinds of objects a digest can describe."""

    NULL = "null"
    FILE = "file"
    DIR = "dir"
    SYMLINK = "symlink"


@dataclass(frozen=True, slots=True, eq=False)
class Digest:
    """A ``<kind>:<algorithm>:<sum>`` fingerprint.

    The zero value (no kind, algorithm or sum) means "no digest" and
    serializes to the empty string. Two digests are equal when their
    serialized forms are equal.
    """

    kind: DigestKind | None = None
    algorithm: str = ""
    sum: str = ""

    @classmethod
    def new(cls, kind: DigestKind | str, algorithm: str = "", sum: str = "") -> "Digest":
        try:
            kind = DigestKind(kind)
        except ValueError:
            raise DigestError(f"unsupported digest kind {kind!r}") from None

        algorithm = algorithm.strip()
        sum = sum.strip()
        if kind is DigestKind.NULL:
            if algorithm or sum:
                raise DigestError("null digest must not include algorithm or sum")
            return cls(kind=DigestKind.NULL)
        if not algorithm:
            raise DigestError("digest algorithm is required")
        if not sum:
            raise DigestError("digest sum is required")
        return cls(kind=kind, algorithm=algorithm, sum=sum)

    @classmethod
    def parse(cls, raw: str) -> "Digest":
        text = raw.strip()
        if not text:
            return cls()
        if text == DigestKind.NULL.value:
            return cls(kind=DigestKind.NULL)

        parts = text.split(":")
        if len(parts) != 3:
            raise DigestError(f"invalid digest {raw!r} (expected kind:algorithm:sum)")
        return cls.new(*parts)

    def is_zero(self) -> bool:
        return self.kind is None and not self.algorithm and not self.sum

    def __str__(self) -> str:
        if self.is_zero():
            return ""
        if self.kind is DigestKind.NULL:
            return DigestKind.NULL.value
        return f"{self.kind.value}:{self.algorithm}:{self.sum}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Digest):
            return NotImplemented
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(str(self))


def digest_of(path: Path | str) -> Digest:
    """Return the digest of the object at ``path`` without following symlinks."""

    path = Path(path)
    mode = path.lstat().st_mode

    if stat.S_ISLNK(mode):
        target = os.readlink(path)
        return Digest.new(DigestKind.SYMLINK, ALGORITHM_SHA256, sha256(os.fsencode(target)).hexdigest())
    if stat.S_ISREG(mode):
        return Digest.new(DigestKind.FILE, ALGORITHM_SHA256, _hash_file(path))
    if stat.S_ISDIR(mode):
        return Digest.new(DigestKind.DIR, ALGORITHM_SHA256, _hash_directory(path))
    raise DigestError(f"unsupported file type at {path}")


def _hash_file(path: Path) -> str:
    hasher = sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def _hash_directory(root: Path) -> str:
    records = sorted(_directory_records(root, root))

    hasher = sha256()
    for rel, kind, payload in records:
        hasher.update(rel + b"\n")
        hasher.update(kind + b"\n")
        hasher.update(payload + b"\n")
    return hasher.hexdigest()


def _directory_records(root: Path, current: Path) -> list[tuple[bytes, bytes, bytes]]:
    records: list[tuple[bytes, bytes, bytes]] = []
    with os.scandir(current) as entries:
        for entry in entries:
            child = Path(entry.path)
            rel = os.fsencode(child.relative_to(root).as_posix())
            if entry.is_symlink():
                records.append((rel, b"symlink", os.fsencode(os.readlink(child))))
            elif entry.is_file(follow_symlinks=False):
                records.append((rel, b"file", _hash_file(child).encode()))
            elif entry.is_dir(follow_symlinks=False):
                records.append((rel, b"dir", b""))
                records.extend(_directory_records(root, child))
            else:
                raise DigestError(f"unsupported file type in directory hash: {child}")
    return records
