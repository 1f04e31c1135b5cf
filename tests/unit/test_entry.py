from __future__ import annotations

import pytest

from common.base.errors import CompletionError
from treeops.entry import CompletionTracker, Entry, EntryKind, EntryState


def _tree() -> list[Entry]:
    # root/{a.txt, sub/{b.txt}, empty/}
    return [
        Entry("/r", EntryKind.DIRECTORY, 0, pending_children=3),
        Entry("/r/a.txt", EntryKind.FILE, 0),
        Entry("/r/sub", EntryKind.DIRECTORY, 0, pending_children=1),
        Entry("/r/empty", EntryKind.DIRECTORY, 0, pending_children=0),
        Entry("/r/sub/b.txt", EntryKind.FILE, 2),
    ]


def test_release_child_reaches_zero_once() -> None:
    entry = Entry("/d", EntryKind.DIRECTORY, 0, pending_children=2)

    assert entry.release_child() is False
    assert entry.release_child() is True
    with pytest.raises(CompletionError):
        entry.release_child()


def test_as_row_layout() -> None:
    entry = Entry("/d/f", EntryKind.FILE, 3)

    row = entry.as_row()

    assert row[:4] == ["/d/f", "file", 3, 0]
    assert set(row[4]) == {"size", "atime", "mtime", "mode"}


def test_ready_lists_leaves_and_empty_directories() -> None:
    tracker = CompletionTracker(_tree())

    assert tracker.ready() == [1, 3, 4]


def test_cascade_completes_root_exactly_once() -> None:
    tracker = CompletionTracker(_tree())
    finished: list[int] = []

    def run(index):
        while index is not None:
            tracker.begin(index)
            finished.append(index)
            index = tracker.finish(index)

    for index in tracker.ready():
        run(index)

    assert tracker.complete is True
    assert finished.count(0) == 1
    assert finished.index(2) > finished.index(4)
    assert finished[-1] == 0
    assert all(entry.state is EntryState.DONE for entry in tracker.entries)


def test_directory_cannot_begin_with_children_outstanding() -> None:
    tracker = CompletionTracker(_tree())

    with pytest.raises(CompletionError):
        tracker.begin(2)


def test_double_finish_is_rejected() -> None:
    tracker = CompletionTracker(_tree())
    tracker.begin(1)
    tracker.finish(1)

    with pytest.raises(CompletionError):
        tracker.finish(1)
    with pytest.raises(CompletionError):
        tracker.begin(1)


def test_release_without_entry_makes_parent_eligible() -> None:
    tracker = CompletionTracker([Entry("/r", EntryKind.DIRECTORY, 0, pending_children=1)])

    assert tracker.release(0) == 0
    tracker.begin(0)
    assert tracker.finish(0) is None
    assert tracker.complete is True


def test_add_rejects_forward_parent_reference() -> None:
    tracker = CompletionTracker()
    tracker.add(Entry("/r", EntryKind.DIRECTORY, 0))

    with pytest.raises(CompletionError):
        tracker.add(Entry("/r/x", EntryKind.FILE, 5))
