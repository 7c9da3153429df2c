"""Source manifests (``tohru.toml``) and their import graph."""

from __future__ import annotations

import os
import platform
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ImportCycleError, ManifestError, RootEscapeError
from .filesystem import absolute_path, expand_home
from .models import ImportTree

MANIFEST_FILENAME = "tohru.toml"

_OS_ALIASES = {
    "linux": "linux",
    "darwin": "darwin",
    "macos": "darwin",
    "win32": "windows",
    "windows": "windows",
    "cygwin": "windows",
    "freebsd": "freebsd",
    "openbsd": "openbsd",
    "netbsd": "netbsd",
}

_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "x64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "386": "386",
    "armv7l": "arm",
    "armv6l": "arm",
    "arm": "arm",
    "riscv64": "riscv64",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
}


def normalize_os(name: str) -> str:
    value = name.strip().lower()
    for prefix in ("linux", "freebsd", "openbsd", "netbsd"):
        if value.startswith(prefix):
            return prefix
    return _OS_ALIASES.get(value, value)


def normalize_arch(name: str) -> str:
    value = name.strip().lower()
    return _ARCH_ALIASES.get(value, value)


def current_platform() -> tuple[str, str]:
    """Return ``(os, arch)`` using Go-style names such as ``linux``/``amd64``."""

    return normalize_os(sys.platform), normalize_arch(platform.machine())


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class ToolSection(_Section):
    version: str = ""


class SourceSection(_Section):
    name: str = ""
    description: str = ""


class ImportSpec(_Section):
    """An ``[[import]]`` entry, optionally restricted to some platforms."""

    path: str
    os: list[str] = Field(default_factory=list)
    arch: list[str] = Field(default_factory=list)

    def applies(self, os_name: str, arch: str) -> bool:
        if self.os and normalize_os(os_name) not in {normalize_os(value) for value in self.os}:
            return False
        if self.arch and normalize_arch(arch) not in {normalize_arch(value) for value in self.arch}:
            return False
        return True


class LinkSpec(_Section):
    """A symlink at ``from`` pointing to ``to`` inside the source."""

    to: str
    from_: str = Field(alias="from")


class FileSpec(_Section):
    """A copy of ``source`` (inside the source) placed at ``dest``."""

    source: str
    dest: str
    tracked: bool = True


class DirSpec(_Section):
    path: str
    tracked: bool = True


class ManifestDocument(_Section):
    """One decoded manifest file, before imports are merged."""

    tohru: ToolSection = Field(default_factory=ToolSection)
    source: SourceSection = Field(default_factory=SourceSection)
    imports: list[ImportSpec] = Field(default_factory=list, alias="import")
    links: list[LinkSpec] = Field(default_factory=list, alias="link")
    files: list[FileSpec] = Field(default_factory=list, alias="file")
    dirs: list[DirSpec] = Field(default_factory=list, alias="dir")

    @classmethod
    def read(cls, path: Path) -> "ManifestDocument":
        try:
            with path.open("rb") as handle:
                data = tomllib.load(handle)
        except OSError as exc:
            raise ManifestError(f"read manifest {path}: {exc}") from exc
        except tomllib.TOMLDecodeError as exc:
            raise ManifestError(f"decode manifest {path}: {exc}") from exc

        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ManifestError(f"decode manifest {path}: {exc}") from exc


@dataclass(slots=True)
class Manifest:
    """A manifest with all of its imports merged in."""

    version: str = ""
    source_name: str = ""
    source_description: str = ""
    links: list[LinkSpec] = field(default_factory=list)
    files: list[FileSpec] = field(default_factory=list)
    dirs: list[DirSpec] = field(default_factory=list)

    def merge(self, document: "Manifest | ManifestDocument") -> None:
        """Append ``document``'s entries; its non-empty scalars win."""

        if isinstance(document, ManifestDocument):
            document = Manifest(
                version=document.tohru.version,
                source_name=document.source.name,
                source_description=document.source.description,
                links=list(document.links),
                files=list(document.files),
                dirs=list(document.dirs),
            )

        if document.version.strip():
            self.version = document.version.strip()
        if document.source_name.strip():
            self.source_name = document.source_name.strip()
        if document.source_description.strip():
            self.source_description = document.source_description.strip()
        self.links.extend(document.links)
        self.files.extend(document.files)
        self.dirs.extend(document.dirs)


@dataclass(frozen=True, slots=True)
class LoadedManifest:
    manifest: Manifest
    source_dir: Path
    tree: ImportTree


def load_manifest(source: str | os.PathLike[str]) -> LoadedManifest:
    """Locate, decode and merge the manifest at ``source``.

    ``source`` is either a directory containing ``tohru.toml`` or a manifest
    file; the source directory is the one holding the root manifest.
    """

    absolute = absolute_path(source)
    if not absolute.exists():
        raise ManifestError(f"source {str(source)!r} does not exist")

    if absolute.is_dir():
        source_dir = absolute
        manifest_path = find_manifest_file(absolute)
    else:
        source_dir = absolute.parent
        manifest_path = absolute

    try:
        root = source_dir.resolve(strict=True)
    except OSError as exc:
        raise ManifestError(f"resolve source root {source_dir}: {exc}") from exc

    resolver = _ImportResolver(root, current_platform())
    manifest, tree = resolver.resolve(manifest_path)
    return LoadedManifest(manifest=manifest, source_dir=source_dir, tree=tree)


def find_manifest_file(directory: Path) -> Path:
    candidate = directory / MANIFEST_FILENAME
    if not candidate.exists():
        raise ManifestError(f"no manifest found in {directory} (expected {MANIFEST_FILENAME})")
    if candidate.is_dir():
        raise ManifestError(f"manifest path is a directory: {candidate}")
    return candidate


def path_within_root(root: Path, path: Path) -> bool:
    return path == root or root in path.parents


class _ImportResolver:
    """Depth-first import resolution with an explicit stack for cycle reporting."""

    def __init__(self, root: Path, platform_id: tuple[str, str]) -> None:
        self.root = root
        self.os_name, self.arch = platform_id
        self.stack: list[Path] = []

    def resolve(self, path: Path) -> tuple[Manifest, ImportTree]:
        manifest_path = self._canonical(path)
        if not path_within_root(self.root, manifest_path):
            raise RootEscapeError(f"import path escapes source root {self.root}: {manifest_path}")
        if manifest_path in self.stack:
            raise ImportCycleError([str(item) for item in [*self.stack, manifest_path]])

        self.stack.append(manifest_path)
        try:
            document = ManifestDocument.read(manifest_path)
            merged = Manifest()
            children: list[ImportTree] = []
            for spec in document.imports:
                if not spec.applies(self.os_name, self.arch):
                    continue
                imported, subtree = self.resolve(self._import_target(manifest_path.parent, spec.path))
                merged.merge(imported)
                children.append(subtree)
            merged.merge(document)
        finally:
            self.stack.pop()

        return merged, ImportTree(path=manifest_path, imports=tuple(children))

    def _import_target(self, importer_dir: Path, raw: str) -> Path:
        text = expand_home(raw.strip())
        if not text:
            raise ManifestError("import path is empty")

        candidate = Path(os.path.normpath(importer_dir / text))
        if not candidate.exists():
            raise ManifestError(f"import path {candidate} does not exist")
        if candidate.is_dir():
            candidate = find_manifest_file(candidate)

        canonical = self._canonical(candidate)
        if not path_within_root(self.root, canonical):
            raise RootEscapeError(f"import path escapes source root {self.root}: {canonical}")
        return canonical

    @staticmethod
    def _canonical(path: Path) -> Path:
        try:
            return path.resolve(strict=True)
        except OSError as exc:
            raise ManifestError(f"resolve manifest path {path}: {exc}") from exc
