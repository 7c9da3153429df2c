from __future__ import annotations

from pathlib import Path
from textwrap import dedent

import pytest

from tohru.config import CONFIG_FILENAME, Config, load_config, save_config
from tohru.errors import ConfigError
from tohru.version import __version__


def _write_config(tmp_path: Path, body: str) -> Path:
    config_path = tmp_path / CONFIG_FILENAME
    config_path.write_text(dedent(body))
    return config_path


def test_missing_config_uses_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / CONFIG_FILENAME)

    assert config.backup_enabled is True
    assert config.auto_clean_enabled is True
    assert config.tohru.version == __version__


def test_load_config_happy_path(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path,
        """
        [tohru]
        version = "0.1.0"

        [options]
        backup = false
        clean = false
        """,
    )

    config = load_config(config_path)

    assert config.backup_enabled is False
    assert config.auto_clean_enabled is False


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    config_path = tmp_path / "nested" / CONFIG_FILENAME
    original = Config.from_raw({"options": {"backup": False}})

    save_config(config_path, original)
    loaded = load_config(config_path)

    assert loaded == original
    assert "[options]" in config_path.read_text()


def test_unknown_keys_are_rejected(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path,
        """
        [options]
        backups = true
        """,
    )

    with pytest.raises(ConfigError, match="Invalid configuration"):
        load_config(config_path)


def test_unsupported_config_version(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path,
        """
        [tohru]
        version = "9.0.0"
        """,
    )

    with pytest.raises(ConfigError, match="unsupported config version"):
        load_config(config_path)


def test_invalid_toml(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, "[options\n")

    with pytest.raises(ConfigError, match="Unable to decode"):
        load_config(config_path)
