"""Command-line interface for tohru."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from .errors import ConflictError, NotInstalledError, RollbackError, TohruError
from .manager import TohruManager
from .models import ImportTree, LoadResult, Options, UnloadResult
from .status import StatusReport
from .version import __version__

app = typer.Typer(help="Transactional dotfiles manager")
console = Console()


@dataclass
class CliState:
    verbose: bool = False


def _configure_logging(verbose: bool) -> None:
    handler = RichHandler(console=Console(stderr=True), show_time=False, show_path=False)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print changed paths and debug logs"),
) -> None:
    """Apply, track and reverse dotfile manifests."""

    _configure_logging(verbose)
    ctx.obj = CliState(verbose=verbose)


def _verbose(ctx: typer.Context) -> bool:
    return isinstance(ctx.obj, CliState) and ctx.obj.verbose


def _root_cause(exc: BaseException) -> BaseException:
    return exc.cause if isinstance(exc, RollbackError) else exc


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, PermissionError):
        console.print("[red]Permission denied.[/red] Re-run the command with elevated privileges (e.g. `sudo`).")
        raise typer.Exit(code=1)
    if isinstance(exc, TohruError):
        console.print(f"[red]{escape(str(exc))}[/red]")
        cause = _root_cause(exc)
        if isinstance(exc, NotInstalledError):
            console.print("[yellow]Run 'tohru install' to initialise the store.[/yellow]")
        elif isinstance(cause, ConflictError):
            if "was modified" in str(cause):
                console.print("[yellow]Use --discard-changes to drop local edits, or --force to override.[/yellow]")
            else:
                console.print("[yellow]Review the path, then re-run with --force to override.[/yellow]")
        raise typer.Exit(code=1)
    raise exc


def _options(force: bool, discard_changes: bool) -> Options:
    return Options(force=force, discard_changes=discard_changes)


def _print_changed(paths: tuple[Path, ...]) -> None:
    for path in paths:
        console.print(f"  [dim]{escape(str(path))}[/dim]")


def _report_load(result: LoadResult, verbose: bool) -> None:
    if result.unloaded_source_name:
        console.print(
            f"[green]Unloaded '{escape(result.unloaded_source_name)}'[/green] ({result.unloaded_count} removed)."
        )
    console.print(f"[green]Loaded '{escape(result.source_name)}'[/green] ({result.tracked_count} tracked).")
    if result.removed_backups:
        console.print(f"Removed {result.removed_backups} unreferenced backup object(s).")
    if verbose:
        _print_changed(result.changed_paths)


def _report_unload(result: UnloadResult, verbose: bool) -> None:
    if not result.source_name:
        console.print("Nothing is loaded.")
        return
    console.print(f"[green]Unloaded '{escape(result.source_name)}'[/green] ({result.removed_count} removed).")
    if result.removed_backups:
        console.print(f"Removed {result.removed_backups} unreferenced backup object(s).")
    if verbose:
        _print_changed(result.changed_paths)


def _format_status(report: StatusReport, show_backups: bool) -> None:
    lock = report.lock
    if lock.is_loaded:
        name = lock.source_name or Path(lock.source_location).name
        console.print(f"Loaded: [bold]{escape(name)}[/bold] ({escape(lock.source_location)})")
    else:
        console.print("Loaded: [dim]nothing[/dim]")

    styles = {"ok": "green", "drifted": "red", "missing": "red"}
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Path", overflow="fold")
    table.add_column("State")
    table.add_column("Backup", overflow="fold")

    for item in report.tracked:
        style = styles[item.label]
        if not item.prev_digest:
            backup = ""
        elif item.backup_present:
            backup = "present"
        else:
            backup = "[red]missing[/red]"
        table.add_row(escape(str(item.path)), f"[{style}]{item.label}[/{style}]", backup)

    console.print(table)

    if show_backups:
        backups = Table(show_header=True, header_style="bold magenta")
        backups.add_column("Digest", overflow="fold")
        backups.add_column("State")
        backups.add_column("Paths", overflow="fold")
        for ref in report.backup_refs:
            state = "[green]present[/green]" if ref.present else "[red]missing[/red]"
            backups.add_row(ref.digest, state, escape("\n".join(str(path) for path in ref.paths)))
        for key in report.orphaned:
            backups.add_row(key, "[yellow]orphaned[/yellow]", "")
        console.print(backups)

    for key in report.broken:
        console.print(f"[red]Broken backup entry:[/red] {escape(key)}")
    if report.orphaned and not show_backups:
        console.print(f"[yellow]{len(report.orphaned)} orphaned backup object(s). Run 'tohru tidy' to remove them.[/yellow]")
    for path in report.stale_transactions:
        console.print(f"[yellow]Stale staging directory from an interrupted load:[/yellow] {escape(str(path))}")
    if report.stale_transactions:
        console.print("[yellow]Run 'tohru tidy' to remove them.[/yellow]")


def _tree_label(path: Path, root: Path) -> str:
    try:
        return escape(path.relative_to(root).as_posix())
    except ValueError:
        return escape(str(path))


def _import_tree(node: ImportTree, root: Path, tree: Tree | None = None) -> Tree:
    label = _tree_label(node.path, root)
    branch = Tree(label) if tree is None else tree.add(label)
    for child in node.imports:
        _import_tree(child, root, branch)
    return branch


@app.command()
def install(
    ctx: typer.Context,
    source: Optional[Path] = typer.Argument(None, help="Source to load right after installing"),
    force: bool = typer.Option(False, "--force", "-f", help="Clobber conflicting paths"),
    discard_changes: bool = typer.Option(False, "--discard-changes", help="Replace modified managed paths"),
) -> None:
    """Initialise the tohru store, optionally loading a source."""

    try:
        manager = TohruManager()
        manager.install()
        console.print(f"[green]Installed tohru in '{escape(str(manager.store.root))}'.[/green]")
        if source is not None:
            _report_load(manager.load(source, _options(force, discard_changes)), _verbose(ctx))
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def load(
    ctx: typer.Context,
    source: Path = typer.Argument(..., help="Source directory or manifest file"),
    force: bool = typer.Option(False, "--force", "-f", help="Clobber conflicting paths"),
    discard_changes: bool = typer.Option(False, "--discard-changes", help="Replace modified managed paths"),
) -> None:
    """Load a source, unloading the current one."""

    try:
        result = TohruManager().load(source, _options(force, discard_changes))
        _report_load(result, _verbose(ctx))
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


app.command("switch", help="Switch to another source (same as load).")(load)


@app.command()
def reload(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", "-f", help="Clobber conflicting paths"),
    discard_changes: bool = typer.Option(False, "--discard-changes", help="Replace modified managed paths"),
) -> None:
    """Load the current source again."""

    try:
        result = TohruManager().reload(_options(force, discard_changes))
        _report_load(result, _verbose(ctx))
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def unload(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", "-f", help="Remove missing or modified managed paths"),
    discard_changes: bool = typer.Option(False, "--discard-changes", help="Remove modified managed paths"),
) -> None:
    """Remove managed paths and restore their backups."""

    try:
        result = TohruManager().unload(_options(force, discard_changes))
        _report_unload(result, _verbose(ctx))
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def uninstall(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", "-f", help="Remove missing or modified managed paths"),
    discard_changes: bool = typer.Option(False, "--discard-changes", help="Remove modified managed paths"),
) -> None:
    """Unload the current source and delete the tohru store."""

    try:
        manager = TohruManager()
        result = manager.uninstall(_options(force, discard_changes))
        if result.source_name:
            _report_unload(result, _verbose(ctx))
        console.print(f"[green]Removed '{escape(str(manager.store.root))}'.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def tidy(ctx: typer.Context) -> None:
    """Delete unreferenced backup objects and leftover staging directories."""

    try:
        result = TohruManager().tidy()
        console.print(f"Removed {result.removed_count} unreferenced backup object(s).")
        if result.removed_transactions:
            console.print(f"Removed {result.removed_transactions} leftover staging directories.")
        if _verbose(ctx):
            _print_changed(result.changed_paths)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def status(
    backups: bool = typer.Option(False, "--backups", help="Also list backup objects"),
) -> None:
    """Show managed paths, drift and backup health."""

    try:
        report = TohruManager().status()
        _format_status(report, backups)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def validate(
    source: Optional[Path] = typer.Argument(None, help="Source to check (defaults to the loaded one)"),
    tree: bool = typer.Option(False, "--tree", help="Print the manifest import tree"),
) -> None:
    """Check a source manifest without changing anything."""

    try:
        result = TohruManager().validate(source)
        console.print(
            f"[green]'{escape(result.source_name)}' is valid[/green]: {result.op_count} operations "
            f"({result.link_count} links, {result.file_count} files, {result.dir_count} dirs)."
        )
        if tree:
            console.print(_import_tree(result.import_tree, result.source_dir.resolve()))
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def version() -> None:
    """Print the tohru version."""

    console.print(__version__)


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
