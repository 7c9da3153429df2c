from __future__ import annotations

import os
from pathlib import Path

from typer.testing import CliRunner

from tohru.cli import app

runner = CliRunner()


def _write_sources(root: Path) -> tuple[Path, Path]:
    laptop = root / "laptop"
    (laptop / "nvim").mkdir(parents=True)
    (laptop / "nvim" / "init.lua").write_text("vim.o.number = true\n")
    (laptop / "gitconfig").write_text("[user]\n\tname = laptop\n")
    (laptop / "shell").mkdir()
    (laptop / "shell" / "zshrc").write_text("export EDITOR=nvim\n")
    (laptop / "shell" / "tohru.toml").write_text(
        '[[file]]\nsource = "shell/zshrc"\ndest = "~/.zshrc"\n'
    )
    (laptop / "tohru.toml").write_text(
        """
[tohru]
version = "0.1.0"

[source]
name = "laptop"

[[import]]
path = "shell"

[[link]]
to = "nvim"
from = "~/.config/nvim"

[[file]]
source = "gitconfig"
dest = "~/.gitconfig"
"""
    )

    server = root / "server"
    server.mkdir()
    (server / "gitconfig").write_text("[user]\n\tname = server\n")
    (server / "tohru.toml").write_text(
        """
[source]
name = "server"

[[file]]
source = "gitconfig"
dest = "~/.gitconfig"
"""
    )
    return laptop, server


def test_cli_full_cycle(tmp_path: Path, fake_home: Path, store_root: Path) -> None:
    laptop, server = _write_sources(tmp_path / "sources")
    (fake_home / ".zshrc").write_text("# distro default\n")

    install_result = runner.invoke(app, ["install", str(laptop)])
    assert install_result.exit_code == 0
    assert "Loaded 'laptop'" in install_result.stdout

    assert os.readlink(fake_home / ".config" / "nvim") == str(laptop / "nvim")
    assert (fake_home / ".zshrc").read_text() == "export EDITOR=nvim\n"
    assert (fake_home / ".gitconfig").read_text() == "[user]\n\tname = laptop\n"

    status_result = runner.invoke(app, ["status", "--backups"])
    assert status_result.exit_code == 0
    assert "present" in status_result.stdout

    switch_result = runner.invoke(app, ["switch", str(server)])
    assert switch_result.exit_code == 0
    assert "Unloaded 'laptop'" in switch_result.stdout
    assert "Loaded 'server'" in switch_result.stdout

    assert not (fake_home / ".config").exists()
    assert (fake_home / ".zshrc").read_text() == "# distro default\n"
    assert (fake_home / ".gitconfig").read_text() == "[user]\n\tname = server\n"

    reload_result = runner.invoke(app, ["reload"])
    assert reload_result.exit_code == 0

    tidy_result = runner.invoke(app, ["tidy"])
    assert tidy_result.exit_code == 0
    assert "Removed 0" in tidy_result.stdout

    uninstall_result = runner.invoke(app, ["uninstall"])
    assert uninstall_result.exit_code == 0
    assert not (fake_home / ".gitconfig").exists()
    assert (fake_home / ".zshrc").read_text() == "# distro default\n"
    assert not store_root.exists()


def test_cli_failed_switch_keeps_previous_source(tmp_path: Path, fake_home: Path, store_root: Path) -> None:
    laptop, _ = _write_sources(tmp_path / "sources")
    broken = tmp_path / "sources" / "broken"
    broken.mkdir()
    (broken / "tohru.toml").write_text('[[file]]\nsource = "missing"\ndest = "~/.gitconfig"\n')

    assert runner.invoke(app, ["install", str(laptop)]).exit_code == 0
    lock_before = (store_root / "lock.toml").read_bytes()

    result = runner.invoke(app, ["--verbose", "load", str(broken)])

    assert result.exit_code == 1
    assert "rolled back to previous state" in result.stdout
    assert (store_root / "lock.toml").read_bytes() == lock_before
    assert (fake_home / ".gitconfig").read_text() == "[user]\n\tname = laptop\n"
    assert (fake_home / ".zshrc").read_text() == "export EDITOR=nvim\n"
