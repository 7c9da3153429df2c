"""Lock state persistence for tohru."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, Mapping

from tomli_w import dumps as toml_dumps

from .digest import Digest
from .errors import DigestError, StoreIntegrityError
from .filesystem import write_atomic
from .models import SOURCE_KIND_LOCAL, AutoDir, LockState, LockStatus, ManagedEntry, TrackedObject

LOCK_FILENAME = "lock.toml"


class LockFile:
    """Reads and atomically writes a ``LockState``."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> LockState:
        if not self.path.exists():
            return LockState.unloaded()

        try:
            with self.path.open("rb") as handle:
                data = tomllib.load(handle)
            return self._state_from_dict(data)
        except (tomllib.TOMLDecodeError, DigestError, KeyError, ValueError) as exc:
            raise StoreIntegrityError(f"Unable to decode lock file '{self.path}': {exc}") from exc

    def write(self, state: LockState) -> None:
        write_atomic(self.path, toml_dumps(self._state_to_dict(state)).encode())

    @staticmethod
    def _state_from_dict(data: Mapping[str, Any]) -> LockState:
        source = data.get("source", {})
        entries = tuple(
            ManagedEntry(
                path=Path(item["path"]),
                curr=_object_from_dict(item["curr"]),
                prev=_object_from_dict(item["prev"]) if "prev" in item else None,
            )
            for item in data.get("entry", [])
        )
        auto_dirs = tuple(AutoDir(path=Path(item["path"])) for item in data.get("auto_dir", []))

        return LockState(
            state=LockStatus(source.get("state") or LockStatus.UNLOADED.value),
            source_kind=source.get("kind") or SOURCE_KIND_LOCAL,
            source_location=source.get("location", ""),
            source_name=source.get("name", ""),
            entries=entries,
            auto_dirs=auto_dirs,
        )

    @staticmethod
    def _state_to_dict(state: LockState) -> dict[str, object]:
        entries: list[dict[str, object]] = []
        for entry in state.entries:
            item: dict[str, object] = {
                "path": str(entry.path),
                "curr": _object_to_dict(entry.curr),
            }
            if entry.prev is not None:
                item["prev"] = _object_to_dict(entry.prev)
            entries.append(item)

        return {
            "source": {
                "state": state.state.value,
                "kind": state.source_kind,
                "location": state.source_location,
                "name": state.source_name,
            },
            "entry": entries,
            "auto_dir": [{"path": str(auto_dir.path)} for auto_dir in state.auto_dirs],
        }


def _object_from_dict(item: Mapping[str, Any]) -> TrackedObject:
    return TrackedObject(path=Path(item.get("path", "")), digest=Digest.parse(item.get("digest", "")))


def _object_to_dict(obj: TrackedObject) -> dict[str, str]:
    return {"path": str(obj.path), "digest": str(obj.digest)}
