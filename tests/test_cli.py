from __future__ import annotations

import tomllib
from pathlib import Path

from typer.testing import CliRunner

from tohru.cli import app
from tohru.version import __version__

runner = CliRunner()


def _write_source(directory: Path, body: str, files: dict[str, str]) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "tohru.toml").write_text(body)
    for name, content in files.items():
        (directory / name).write_text(content)
    return directory


def test_cli_version() -> None:
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_cli_install_and_load_flow(tmp_path: Path, fake_home: Path, store_root: Path) -> None:
    source = _write_source(
        tmp_path / "dots",
        '[source]\nname = "dots"\n\n[[file]]\nsource = "gitconfig"\ndest = "~/.gitconfig"\n',
        {"gitconfig": "[user]\n"},
    )

    install_result = runner.invoke(app, ["install"])
    assert install_result.exit_code == 0
    assert "Installed tohru" in install_result.stdout

    load_result = runner.invoke(app, ["load", str(source)])
    assert load_result.exit_code == 0
    assert "Loaded 'dots'" in load_result.stdout
    assert (fake_home / ".gitconfig").read_text() == "[user]\n"

    with (store_root / "lock.toml").open("rb") as handle:
        lock = tomllib.load(handle)
    assert lock["source"]["state"] == "loaded"
    assert lock["entry"][0]["path"] == str(fake_home / ".gitconfig")

    status_result = runner.invoke(app, ["status"])
    assert status_result.exit_code == 0
    assert "ok" in status_result.stdout


def test_cli_install_twice_fails(store_root: Path) -> None:
    assert runner.invoke(app, ["install"]).exit_code == 0

    result = runner.invoke(app, ["install"])

    assert result.exit_code == 1
    assert "already installed" in result.stdout


def test_cli_requires_install(store_root: Path) -> None:
    result = runner.invoke(app, ["status"])

    assert result.exit_code == 1
    assert "tohru is not installed" in result.stdout
    assert "tohru install" in result.stdout


def test_cli_conflict_hints_force(tmp_path: Path, fake_home: Path, store_root: Path) -> None:
    (fake_home / ".profile").write_text("foreign\n")
    source = _write_source(
        tmp_path / "dots",
        '[[file]]\nsource = "profile"\ndest = "~/.profile"\ntracked = false\n',
        {"profile": "ours\n"},
    )

    result = runner.invoke(app, ["load", str(source)])

    assert result.exit_code == 1
    assert "rolled back to previous state" in result.stdout
    assert "--force" in result.stdout
    assert (fake_home / ".profile").read_text() == "foreign\n"

    forced = runner.invoke(app, ["switch", str(source), "--force"])
    assert forced.exit_code == 0
    assert (fake_home / ".profile").read_text() == "ours\n"


def test_cli_unload_modified_hints_discard(tmp_path: Path, fake_home: Path, store_root: Path) -> None:
    source = _write_source(
        tmp_path / "dots",
        '[[file]]\nsource = "zshrc"\ndest = "~/.zshrc"\n',
        {"zshrc": "managed\n"},
    )
    assert runner.invoke(app, ["install", str(source)]).exit_code == 0
    (fake_home / ".zshrc").write_text("edited\n")

    result = runner.invoke(app, ["unload"])

    assert result.exit_code == 1
    assert "managed path was modified" in result.stdout
    assert "--discard-changes" in result.stdout

    discarded = runner.invoke(app, ["unload", "--discard-changes"])
    assert discarded.exit_code == 0
    assert not (fake_home / ".zshrc").exists()


def test_cli_validate_tree(tmp_path: Path, fake_home: Path) -> None:
    source = _write_source(
        tmp_path / "dots",
        '[source]\nname = "dots"\n\n[[import]]\npath = "extra.toml"\n',
        {"extra.toml": '[[dir]]\npath = "~/.cache/app"\n'},
    )

    result = runner.invoke(app, ["validate", str(source), "--tree"])

    assert result.exit_code == 0
    assert "is valid" in result.stdout
    assert "extra.toml" in result.stdout
    assert not (fake_home / ".cache").exists()


def test_cli_validate_reports_manifest_errors(tmp_path: Path) -> None:
    source = _write_source(tmp_path / "dots", '[[import]]\npath = "tohru.toml"\n', {})

    result = runner.invoke(app, ["validate", str(source)])

    assert result.exit_code == 1
    assert "import cycle" in result.stdout
