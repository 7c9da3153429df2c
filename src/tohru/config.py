"""TOML configuration loading for the tohru store."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, Mapping

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError, VersionError
from .filesystem import write_atomic
from .version import __version__, ensure_compatible

CONFIG_FILENAME = "config.toml"


class ToolSection(BaseModel):
    """The ``[tohru]`` table."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    version: str = __version__


class StoreOptions(BaseModel):
    """The ``[options]`` table."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # back up objects a load would clobber; refuse to clobber without --force otherwise
    backup: bool = True
    # sweep unreferenced backup objects after every load and unload
    clean: bool = True


class Config(BaseModel):
    """Fully parsed store configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    tohru: ToolSection = Field(default_factory=ToolSection)
    options: StoreOptions = Field(default_factory=StoreOptions)

    @property
    def backup_enabled(self) -> bool:
        return self.options.backup

    @property
    def auto_clean_enabled(self) -> bool:
        return self.options.clean

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, source: Path | None = None) -> "Config":
        try:
            config = cls.model_validate(raw)
        except ValidationError as exc:
            where = f" in '{source}'" if source else ""
            raise ConfigError(f"Invalid configuration{where}: {exc}") from exc

        if not config.tohru.version.strip():
            config = config.model_copy(update={"tohru": ToolSection()})
        try:
            ensure_compatible(config.tohru.version)
        except VersionError as exc:
            raise ConfigError(f"unsupported config version {config.tohru.version!r}: {exc}") from exc
        return config


def load_config(path: Path) -> Config:
    """Load ``path``, falling back to defaults when it does not exist."""

    if not path.exists():
        return Config()

    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Unable to decode '{path}': {exc}") from exc

    return Config.from_raw(data, source=path)


def save_config(path: Path, config: Config) -> None:
    payload = config.model_dump(mode="json")
    if not payload["tohru"]["version"]:
        payload["tohru"]["version"] = __version__
    write_atomic(path, tomli_w.dumps(payload).encode())
