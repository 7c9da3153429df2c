from __future__ import annotations

from pathlib import Path

import pytest

from tohru.backups import BackupStore
from tohru.digest import digest_of
from tohru.engine import (
    EngineContext,
    apply_operations,
    cleanup_auto_dirs,
    prepare_destination,
    unload_managed_paths,
)
from tohru.errors import ConflictError, TohruError
from tohru.filesystem import DirRemoval
from tohru.journal import Journal
from tohru.models import AutoDir, ManagedEntry, OpKind, Options, TrackedObject
from tohru.operations import Operation


@pytest.fixture
def backups(tmp_path: Path) -> BackupStore:
    return BackupStore(tmp_path / "store" / "backups")


def _entry(path: Path) -> ManagedEntry:
    return ManagedEntry(path=path, curr=TrackedObject(path, digest_of(path)))


def test_prepare_keeps_prev_when_destination_is_empty(tmp_path: Path, backups: BackupStore) -> None:
    op = Operation(kind=OpKind.FILE, dest=tmp_path / "missing", source=tmp_path / "src")

    assert prepare_destination(op, None, EngineContext(backups=backups)) is None


def test_prepare_backs_up_foreign_object(tmp_path: Path, backups: BackupStore) -> None:
    dest = tmp_path / "dest"
    dest.write_text("foreign")
    journal = Journal(tmp_path / "staging")
    ctx = EngineContext(backups=backups, journal=journal)
    op = Operation(kind=OpKind.FILE, dest=dest, source=tmp_path / "src")

    prev = prepare_destination(op, None, ctx)

    assert prev is not None
    assert prev.path.read_text() == "foreign"
    assert not dest.exists()
    assert ctx.changes.paths == (dest,)

    journal.rollback()
    assert dest.read_text() == "foreign"
    assert backups.keys() == []


def test_prepare_refuses_without_backups(tmp_path: Path, backups: BackupStore) -> None:
    dest = tmp_path / "dest"
    dest.write_text("foreign")
    op = Operation(kind=OpKind.FILE, dest=dest, source=tmp_path / "src")

    with pytest.raises(ConflictError, match="options.backup=false"):
        prepare_destination(op, None, EngineContext(backups=backups, backup_enabled=False))
    assert dest.exists()


def test_apply_records_auto_dirs_and_entries(tmp_path: Path, backups: BackupStore) -> None:
    source = tmp_path / "src"
    source.write_text("data")
    dest = tmp_path / "home" / "a" / "b" / "file"
    ops = [
        Operation(kind=OpKind.FILE, dest=dest, source=source),
        Operation(kind=OpKind.LINK, dest=tmp_path / "home" / "link", source=source),
    ]
    ctx = EngineContext(backups=backups)

    entries, auto_dirs = apply_operations(ops, {}, ctx)

    assert [entry.path for entry in entries] == [dest, tmp_path / "home" / "link"]
    assert entries[0].curr.digest == digest_of(dest)
    assert [auto.path for auto in auto_dirs] == [tmp_path / "home", tmp_path / "home" / "a", tmp_path / "home" / "a" / "b"]


def test_unload_removes_deepest_first(tmp_path: Path, backups: BackupStore) -> None:
    outer = tmp_path / "outer"
    inner = outer / "inner"
    outer.mkdir()
    outer_entry = _entry(outer)
    inner.mkdir()
    inner_entry = _entry(inner)
    leaf = inner / "leaf"
    leaf.write_text("x")
    leaf_entry = _entry(leaf)
    ctx = EngineContext(backups=backups)

    removed = unload_managed_paths([outer_entry, leaf_entry, inner_entry], set(), ctx)

    assert removed == 3
    assert ctx.changes.paths == (leaf, inner, outer)
    assert not outer.exists()


def test_unload_skips_restore_for_reoccupied_paths(tmp_path: Path, backups: BackupStore) -> None:
    path = tmp_path / "file"
    path.write_text("original")
    prev = backups.persist(path).as_tracked()
    path.write_text("managed")
    entry = ManagedEntry(path=path, curr=TrackedObject(path, digest_of(path)), prev=prev)

    unload_managed_paths([entry], {path}, EngineContext(backups=backups))

    assert not path.exists()


def test_cleanup_auto_dirs_reports_outcomes(tmp_path: Path, backups: BackupStore) -> None:
    parent = tmp_path / "parent"
    child = parent / "child"
    child.mkdir(parents=True)
    busy = tmp_path / "busy"
    busy.mkdir()
    (busy / "file").write_text("")

    outcomes = cleanup_auto_dirs(
        [AutoDir(parent), AutoDir(child), AutoDir(busy), AutoDir(tmp_path / "gone")],
        EngineContext(backups=backups, options=Options()),
    )

    assert outcomes == {
        child: DirRemoval.REMOVED,
        parent: DirRemoval.REMOVED,
        busy: DirRemoval.NOT_EMPTY,
        tmp_path / "gone": DirRemoval.MISSING,
    }


def test_apply_refuses_file_operation_without_source(tmp_path: Path, backups: BackupStore) -> None:
    op = Operation(kind=OpKind.FILE, dest=tmp_path / "dest")

    with pytest.raises(TohruError, match="has no source"):
        apply_operations([op], {}, EngineContext(backups=backups))
    assert not (tmp_path / "dest").exists()
