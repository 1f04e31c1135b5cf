from __future__ import annotations

import asyncio
import os
import socket
import sys
from pathlib import Path

import pytest

from common.base.errors import OperationError, TargetNotFoundError
from treeops.entry import EntryKind
from treeops.enumerator import (
    TreeEnumerator,
    classify,
    enumerate_tree,
    list_paths,
    normalize_exclusions,
)

requires_symlinks = pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges on Windows")


def _by_path(entries):
    return {entry.path: entry for entry in entries}


def test_enumerate_tree_links_parents_and_counts(make_tree) -> None:
    root = make_tree({"a.txt": "hi", "sub": {"b.txt": "there", "deeper": {"c.txt": "x"}}, "empty": None})

    entries = enumerate_tree(root)
    found = _by_path(entries)

    assert entries[0].path == str(root)
    assert entries[0].parent_index == 0
    assert len(entries) == 7
    assert found[str(root)].pending_children == 3
    assert found[str(root / "sub")].pending_children == 2
    assert found[str(root / "empty")].pending_children == 0
    assert found[str(root / "a.txt")].kind is EntryKind.FILE
    assert found[str(root / "a.txt")].metadata.size == 2
    for index, entry in enumerate(entries):
        if index == 0:
            continue
        assert entry.parent_index < index
        assert entries[entry.parent_index].path == os.path.dirname(entry.path)


def test_child_counts_match_recorded_children(make_tree) -> None:
    root = make_tree({"d1": {"f1": "1", "f2": "2", "d2": {"f3": "3"}}, "f0": "0"})

    entries = enumerate_tree(root)

    for index, entry in enumerate(entries):
        if entry.kind is EntryKind.DIRECTORY:
            children = [e for i, e in enumerate(entries) if i and e.parent_index == index]
            assert entry.pending_children == len(children)


def test_list_paths_sorted_and_includes_root(make_tree) -> None:
    root = make_tree({"b": "1", "a": {"c": "2"}})

    paths = list_paths(root)

    assert paths == sorted(paths)
    assert paths == [str(root), str(root / "a"), str(root / "a" / "c"), str(root / "b")]


def test_exclusions_skip_subtree(make_tree) -> None:
    root = make_tree({"node_modules": {"pkg": {"file.js": "x"}}, "src": {"main.js": "y"}})

    paths = list_paths(root, ["node_modules"])

    assert not any("node_modules" in path for path in paths)
    assert str(root / "src" / "main.js") in paths
    entries = enumerate_tree(root, ["node_modules"])
    assert entries[0].pending_children == 1


def test_nested_exclusion_uses_relative_posix_path(make_tree) -> None:
    root = make_tree({"src": {"gen": {"x.py": "1"}, "keep.py": "2"}})

    paths = list_paths(root, ["./src/gen/"])

    assert str(root / "src" / "gen") not in paths
    assert str(root / "src" / "keep.py") in paths


def test_normalize_exclusions() -> None:
    assert normalize_exclusions(["./a/", "b\\c", "", "  d "]) == frozenset({"a", "b/c", "d"})


def test_shallow_records_child_directories_without_entering(make_tree) -> None:
    root = make_tree({"sub": {"inner.txt": "x"}, "top.txt": "y"})

    entries = enumerate_tree(root, recursive=False)
    found = _by_path(entries)

    assert set(found) == {str(root), str(root / "sub"), str(root / "top.txt")}
    assert found[str(root / "sub")].pending_children == 0


def test_single_file_root(make_tree) -> None:
    root = make_tree({"only.txt": "abc"})

    entries = enumerate_tree(root / "only.txt")

    assert len(entries) == 1
    assert entries[0].kind is EntryKind.FILE
    assert entries[0].parent_index == 0


def test_empty_root_directory(tmp_path: Path) -> None:
    entries = enumerate_tree(tmp_path)

    assert len(entries) == 1
    assert entries[0].pending_children == 0


def test_missing_root_raises_target_not_found(tmp_path: Path) -> None:
    with pytest.raises(TargetNotFoundError) as excinfo:
        enumerate_tree(tmp_path / "nope")

    assert "is not a file or directory" in str(excinfo.value)
    assert isinstance(excinfo.value, FileNotFoundError)


@pytest.mark.skipif(
    os.name == "nt" or (hasattr(os, "geteuid") and os.geteuid() == 0),
    reason="permission bits are not enforced",
)
def test_unreadable_directory_aborts(make_tree) -> None:
    root = make_tree({"locked": {"secret": "x"}, "open": "y"})
    locked = root / "locked"
    locked.chmod(0)
    try:
        with pytest.raises(OperationError):
            enumerate_tree(root)
    finally:
        locked.chmod(0o755)


@requires_symlinks
def test_symbolic_flag_reports_links(make_tree) -> None:
    root = make_tree({"target.txt": "data"})
    os.symlink(root / "target.txt", root / "link")

    followed = _by_path(enumerate_tree(root))
    literal = _by_path(enumerate_tree(root, symbolic=True))

    assert followed[str(root / "link")].kind is EntryKind.FILE
    assert literal[str(root / "link")].kind is EntryKind.SYMBOLIC_LINK


@pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="FIFOs unsupported")
def test_fifo_children_are_dropped(make_tree) -> None:
    root = make_tree({"plain.txt": "x"})
    os.mkfifo(root / "pipe")

    entries = enumerate_tree(root, symbolic=True)

    assert [entry.path for entry in entries] == [str(root), str(root / "plain.txt")]
    assert entries[0].pending_children == 1


def test_total_size_counts_files(make_tree) -> None:
    root = make_tree({"a": "12345", "d": {"b": "123"}})
    walker = TreeEnumerator(root)

    asyncio.run(walker.run())

    assert walker.total_size == 8


def test_classify_kinds(make_tree, tmp_path: Path) -> None:
    root = make_tree({"f.txt": "x", "d": None})

    assert classify(root / "f.txt") == "file"
    assert classify(root / "d") == "directory"
    assert classify(tmp_path / "absent") == "missing"


@requires_symlinks
def test_classify_link(make_tree) -> None:
    root = make_tree({"f.txt": "x", "d": None})
    os.symlink(root / "f.txt", root / "l")
    os.symlink(root / "d", root / "dl", target_is_directory=True)
    os.symlink(root / "gone", root / "dangling")

    assert classify(root / "l", symbolic=True) == "symbolicLink"
    assert classify(root / "l") == "file"
    assert classify(root / "dl") == "directory"
    assert classify(root / "dangling") == "missing"
    assert classify(root / "dangling", symbolic=True) == "symbolicLink"


@pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="FIFOs unsupported")
def test_fifo_skipped_unless_special_files(make_tree) -> None:
    root = make_tree({"a.txt": "hi"})
    os.mkfifo(root / "pipe")

    skipped = enumerate_tree(root, symbolic=True)
    walker = TreeEnumerator(root, symbolic=True, special_files=True)
    recorded = asyncio.run(walker.run())

    assert [entry.path for entry in skipped[1:]] == [str(root / "a.txt")]
    assert skipped[0].pending_children == 1
    assert {entry.path for entry in recorded} == {str(root), str(root / "a.txt"), str(root / "pipe")}
    assert recorded[0].pending_children == 2
    assert all(entry.kind is EntryKind.FILE for entry in recorded[1:])


@pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="FIFOs unsupported")
def test_classify_fifo(tmp_path: Path) -> None:
    os.mkfifo(tmp_path / "pipe")

    assert classify(tmp_path / "pipe") == "FIFO"


@pytest.mark.skipif(sys.platform.startswith("win"), reason="unix sockets unsupported")
def test_classify_socket(tmp_path: Path) -> None:
    path = tmp_path / "s.sock"
    if len(str(path)) > 100:
        pytest.skip("socket path too long for this platform")
    server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        server.bind(str(path))
        assert classify(path) == "socket"
    finally:
        server.close()
