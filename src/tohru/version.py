"""Version compatibility checks for manifests and store configuration."""

from __future__ import annotations

from typing import NamedTuple

from .errors import VersionError

__version__ = "0.1.0"


class SemVer(NamedTuple):
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    @classmethod
    def parse(cls, raw: str) -> "SemVer":
        """Parse ``MAJOR.MINOR.PATCH`` with an optional ``v`` prefix."""

        value = raw.strip()
        if not value:
            raise VersionError("version is empty")

        parts = value.removeprefix("v").split(".")
        if len(parts) != 3:
            raise VersionError(f"invalid semantic version {raw!r} (expected MAJOR.MINOR.PATCH)")

        numbers: list[int] = []
        for label, part in zip(("major", "minor", "patch"), parts):
            if not part.isdigit():
                raise VersionError(f"invalid {label} version in {raw!r}")
            numbers.append(int(part))
        return cls(*numbers)


def ensure_compatible(target: str, current: str = __version__) -> None:
    """Raise ``VersionError`` unless ``target`` can be handled by ``current``.

    An empty target is accepted so older manifests and configs keep working.
    """

    if not target.strip():
        return

    running = SemVer.parse(current)
    required = SemVer.parse(target)
    if required.major != running.major:
        raise VersionError(f"unsupported major version {required.major} (current major is {running.major})")
    if running < required:
        raise VersionError(f"requires tohru >= {required} (current {running})")
