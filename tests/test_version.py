from __future__ import annotations

import pytest

from tohru.errors import VersionError
from tohru.version import SemVer, ensure_compatible


def test_semver_parse_accepts_prefix() -> None:
    assert SemVer.parse("v1.2.3") == SemVer(1, 2, 3)
    assert str(SemVer.parse("0.1.0")) == "0.1.0"


@pytest.mark.parametrize("raw", ["", "1.2", "a.b.c", "1.2.3.4"])
def test_semver_parse_rejects_invalid(raw: str) -> None:
    with pytest.raises(VersionError):
        SemVer.parse(raw)


def test_ensure_compatible_rules() -> None:
    ensure_compatible("", current="0.1.0")
    ensure_compatible("0.1.0", current="0.1.0")
    ensure_compatible("0.0.9", current="0.1.0")

    with pytest.raises(VersionError):
        ensure_compatible("0.2.0", current="0.1.0")
    with pytest.raises(VersionError):
        ensure_compatible("1.0.0", current="0.1.0")
