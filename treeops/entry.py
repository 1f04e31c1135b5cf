"""
treeops.entry

Entry model shared by every engine plus the completion bookkeeping built on
top of it.

Provides:
 - `EntryKind` / `EntryState`: node kind and per-node lifecycle
 - `EntryMetadata`: the subset of a stat result the engines report
 - `Entry`: one discovered filesystem object with parent/child linkage
 - `CompletionTracker`: children-before-parent completion over an entry list
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from common.base.errors import CompletionError
from common.base.logging import get_logger

log = get_logger(__name__)

ROOT_INDEX = 0


class EntryKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"
    SYMBOLIC_LINK = "link"


class EntryState(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in-flight"
    DONE = "done"


@dataclass(frozen=True)
class EntryMetadata:
    size: int = 0
    atime: float = 0.0
    mtime: float = 0.0
    mode: int = 0

    @classmethod
    def from_stat(cls, stat_result: os.stat_result) -> "EntryMetadata":
        return cls(
            size=stat_result.st_size,
            atime=stat_result.st_atime,
            mtime=stat_result.st_mtime,
            mode=stat_result.st_mode,
        )

    def as_dict(self) -> Dict[str, Any]:
        return {"size": self.size, "atime": self.atime, "mtime": self.mtime, "mode": self.mode}


@dataclass
class Entry:
    """
    One filesystem object found during a walk.

    `pending_children` is only meaningful for directories. It starts at the
    number of recorded direct children and is lowered through
    `release_child()` as consumers finish those children.
    """

    path: str
    kind: EntryKind
    parent_index: int
    pending_children: int = 0
    metadata: EntryMetadata = field(default_factory=EntryMetadata)
    state: EntryState = EntryState.PENDING

    @property
    def is_directory(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    def release_child(self) -> bool:
        """Count one child as finished; True exactly when the count reaches zero."""
        if self.pending_children < 1:
            raise CompletionError(
                f"Child count of {self.path} released below zero.", path=self.path
            )
        self.pending_children -= 1
        return self.pending_children == 0

    def as_row(self) -> List[Any]:
        """Indexable row: [path, kind, parentIndex, childCount, metadata]."""
        return [
            self.path,
            self.kind.value,
            self.parent_index,
            self.pending_children,
            self.metadata.as_dict(),
        ]


# ----------------------------------------------------------------------
# COMPLETION TRACKING
# ----------------------------------------------------------------------

class CompletionTracker:
    """
    Drive entries through PENDING -> IN_FLIGHT -> DONE.

    A leaf may begin at any time; a directory may only begin once every
    recorded child is done. Finishing a node releases its parent, and
    `finish()` hands back the parent index when that release made the parent
    eligible, so callers can cascade toward the root. The root (index 0,
    its own parent) finishing marks the whole tree complete, once.

    The tracker is not thread-safe; it is meant to be mutated from a single
    event loop between awaits.
    """

    def __init__(self, entries: Optional[Iterable[Entry]] = None) -> None:
        self.entries: List[Entry] = list(entries or [])
        self._complete = False

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def complete(self) -> bool:
        return self._complete

    def add(self, entry: Entry) -> int:
        """Append a newly discovered entry; its parent must already be present."""
        index = len(self.entries)
        if index != ROOT_INDEX and not 0 <= entry.parent_index < index:
            raise CompletionError(
                f"Entry {entry.path} references parent {entry.parent_index} before it exists.",
                path=entry.path,
            )
        self.entries.append(entry)
        return index

    def eligible(self, index: int) -> bool:
        entry = self.entries[index]
        if entry.state is not EntryState.PENDING:
            return False
        return not entry.is_directory or entry.pending_children == 0

    def ready(self) -> List[int]:
        """Indices that can begin right away: leaves and empty directories."""
        return [index for index in range(len(self.entries)) if self.eligible(index)]

    def begin(self, index: int) -> Entry:
        entry = self.entries[index]
        if entry.state is not EntryState.PENDING:
            raise CompletionError(
                f"{entry.path} started twice (state {entry.state.value}).", path=entry.path
            )
        if entry.is_directory and entry.pending_children:
            raise CompletionError(
                f"{entry.path} started with {entry.pending_children} children outstanding.",
                path=entry.path,
            )
        entry.state = EntryState.IN_FLIGHT
        return entry

    def finish(self, index: int) -> Optional[int]:
        """Mark `index` done. Returns the parent index if the parent just became eligible."""
        entry = self.entries[index]
        if entry.state is not EntryState.IN_FLIGHT:
            raise CompletionError(
                f"{entry.path} finished while {entry.state.value}.", path=entry.path
            )
        entry.state = EntryState.DONE
        if index == ROOT_INDEX:
            if self._complete:
                raise CompletionError(f"{entry.path} completed twice.", path=entry.path)
            self._complete = True
            log.debug("Completed tree at %s", entry.path)
            return None
        return self.release(entry.parent_index)

    def release(self, parent_index: int) -> Optional[int]:
        """
        Drop one outstanding child from `parent_index` without an entry of its own.

        Used for children that were counted at read time but are never
        recorded (sockets, FIFOs). Returns `parent_index` when it became eligible.
        """
        parent = self.entries[parent_index]
        if parent.release_child():
            return parent_index
        return None


__all__ = [
    "ROOT_INDEX",
    "CompletionTracker",
    "Entry",
    "EntryKind",
    "EntryMetadata",
    "EntryState",
]
