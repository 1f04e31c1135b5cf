"""
treeops.enumerator

Concurrent directory walker producing the entry list every engine consumes.

Features:
 - One outstanding stat/readdir per discovered node, no fan-out limit
 - `stat` or `lstat` per call (`symbolic=True` reports links as links)
 - Exclusions matched on the root-relative path before the child is stat'ed
 - Shallow mode: the root is read, child directories are recorded unread
 - List-only mode: a sorted list of paths instead of entries
 - `classify`: report the kind of a single path without walking
"""

from __future__ import annotations

import asyncio
import os
import stat as stat_mode
from typing import Dict, Iterable, List, Optional, Set, Union

from common.base.errors import OperationError, TargetNotFoundError
from common.base.logging import get_logger

from . import aio
from .entry import ROOT_INDEX, Entry, EntryKind, EntryMetadata

log = get_logger(__name__)

EnumerationResult = Union[List[Entry], List[str]]

MISSING = "missing"


def normalize_exclusions(exclusions: Optional[Iterable[str]]) -> frozenset[str]:
    """Exclusions compare as POSIX relative paths without leading './' or trailing '/'."""
    cleaned: Set[str] = set()
    for item in exclusions or ():
        text = str(item).strip().replace("\\", "/")
        while text.startswith("./"):
            text = text[2:]
        text = text.rstrip("/")
        if text:
            cleaned.add(text)
    return frozenset(cleaned)


def relative_key(root: str, path: str) -> str:
    """Root-relative POSIX form of `path`; the root itself is '.'."""
    rel = os.path.relpath(path, root)
    return rel.replace(os.sep, "/")


def kind_from_mode(mode: int) -> Optional[EntryKind]:
    """Map a stat mode to an entry kind. FIFOs and sockets have none."""
    if stat_mode.S_ISDIR(mode):
        return EntryKind.DIRECTORY
    if stat_mode.S_ISLNK(mode):
        return EntryKind.SYMBOLIC_LINK
    if stat_mode.S_ISREG(mode) or stat_mode.S_ISBLK(mode) or stat_mode.S_ISCHR(mode):
        return EntryKind.FILE
    return None


class TreeEnumerator:
    """
    Walk `root` and collect its entries in discovery order.

    Directories scheduled concurrently finish in any order, so completion is
    tracked with a map of in-flight directory path to children still being
    examined. When a directory's count drops to zero its parent's count is
    lowered in turn; the root reaching zero resolves the result future, once.

    With `special_files=True` sockets and FIFOs are recorded as files instead
    of being skipped.

    Any failure other than a missing root resolves the future with an
    `OperationError` and cancels the remaining work.
    """

    def __init__(
        self,
        root: Union[str, os.PathLike],
        exclusions: Optional[Iterable[str]] = None,
        *,
        recursive: bool = True,
        symbolic: bool = False,
        list_only: bool = False,
        special_files: bool = False,
    ) -> None:
        self.root = os.path.abspath(os.fspath(root))
        self.exclusions = normalize_exclusions(exclusions)
        self.recursive = recursive
        self.symbolic = symbolic
        self.list_only = list_only
        self.special_files = special_files

        self.entries: List[Entry] = []
        self.total_size = 0

        self._outstanding: Dict[str, int] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._result: Optional[asyncio.Future] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def is_excluded(self, path: str) -> bool:
        return bool(self.exclusions) and relative_key(self.root, path) in self.exclusions

    async def run(self) -> EnumerationResult:
        loop = asyncio.get_running_loop()
        self._result = loop.create_future()
        self.entries = []
        self.total_size = 0

        try:
            info = await self._stat(self.root)
        except FileNotFoundError as exc:
            raise TargetNotFoundError(self.root) from exc
        except OSError as exc:
            raise OperationError.from_os_error(exc, self.root) from exc

        kind = self._kind(info.st_mode)
        if kind is None:
            raise TargetNotFoundError(self.root)

        self._record(self.root, kind, ROOT_INDEX, info)
        if kind is EntryKind.DIRECTORY:
            self._spawn(self._read_directory(self.root, ROOT_INDEX, depth=0))
            try:
                await self._result
            finally:
                await self._drain()
        else:
            self._result.set_result(None)

        log.debug(
            "Enumerated %d entries under %s (%d bytes)",
            len(self.entries),
            self.root,
            self.total_size,
        )
        if self.list_only:
            return sorted(entry.path for entry in self.entries)
        return self.entries

    # ------------------------------------------------------------------
    # Walk
    # ------------------------------------------------------------------

    async def _stat(self, path: str) -> os.stat_result:
        return await (aio.lstat(path) if self.symbolic else aio.stat(path))

    def _kind(self, mode: int) -> Optional[EntryKind]:
        kind = kind_from_mode(mode)
        if kind is None and self.special_files:
            # Sockets and FIFOs become plain leaves so they can be unlinked.
            return EntryKind.FILE
        return kind

    def _record(self, path: str, kind: EntryKind, parent: int, info: os.stat_result) -> int:
        index = len(self.entries)
        self.entries.append(
            Entry(
                path=path,
                kind=kind,
                parent_index=parent,
                metadata=EntryMetadata.from_stat(info),
            )
        )
        if kind is EntryKind.FILE:
            self.total_size += info.st_size
        return index

    async def _read_directory(self, path: str, index: int, depth: int) -> None:
        names = await aio.listdir(path)
        children = [
            os.path.join(path, name)
            for name in names
            if not self.is_excluded(os.path.join(path, name))
        ]
        self.entries[index].pending_children = len(children)
        if not children:
            self._settle(path)
            return

        self._outstanding[path] = len(children)
        for child in children:
            self._spawn(self._visit(child, index, depth + 1))

    async def _visit(self, path: str, parent: int, depth: int) -> None:
        info = await self._stat(path)
        kind = self._kind(info.st_mode)
        parent_path = os.path.dirname(path)
        if kind is None:
            # Sockets and FIFOs are neither recorded nor counted.
            log.debug("Skipping special file %s", path)
            self.entries[parent].pending_children -= 1
            self._child_done(parent_path)
            return

        index = self._record(path, kind, parent, info)
        if kind is EntryKind.DIRECTORY and self.recursive:
            await self._read_directory(path, index, depth)
            return
        self._child_done(parent_path)

    def _settle(self, directory: str) -> None:
        """`directory` has no outstanding children left."""
        self._outstanding.pop(directory, None)
        if directory == self.root:
            if self._result is not None and not self._result.done():
                self._result.set_result(None)
            return
        self._child_done(os.path.dirname(directory))

    def _child_done(self, directory: str) -> None:
        remaining = self._outstanding[directory] - 1
        self._outstanding[directory] = remaining
        if remaining == 0:
            self._settle(directory)

    # ------------------------------------------------------------------
    # Task management
    # ------------------------------------------------------------------

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(self._guard(coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guard(self, coro) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except OSError as exc:
            self._fail(OperationError.from_os_error(exc))
        except Exception as exc:
            self._fail(exc)

    def _fail(self, exc: BaseException) -> None:
        if self._result is not None and not self._result.done():
            log.debug("Enumeration of %s failed: %s", self.root, exc)
            self._result.set_exception(exc)
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()

    async def _drain(self) -> None:
        pending = [task for task in self._tasks if not task.done()]
        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)


# ----------------------------------------------------------------------
# FUNCTIONAL API
# ----------------------------------------------------------------------

async def enumerate_tree_async(
    root: Union[str, os.PathLike],
    exclusions: Optional[Iterable[str]] = None,
    *,
    recursive: bool = True,
    symbolic: bool = False,
) -> List[Entry]:
    walker = TreeEnumerator(root, exclusions, recursive=recursive, symbolic=symbolic)
    return await walker.run()  # type: ignore[return-value]


def enumerate_tree(
    root: Union[str, os.PathLike],
    exclusions: Optional[Iterable[str]] = None,
    *,
    recursive: bool = True,
    symbolic: bool = False,
) -> List[Entry]:
    """Walk `root` and return its entries; the root is always index 0."""
    return asyncio.run(
        enumerate_tree_async(root, exclusions, recursive=recursive, symbolic=symbolic)
    )


async def list_paths_async(
    root: Union[str, os.PathLike],
    exclusions: Optional[Iterable[str]] = None,
    *,
    recursive: bool = True,
    symbolic: bool = False,
) -> List[str]:
    walker = TreeEnumerator(
        root, exclusions, recursive=recursive, symbolic=symbolic, list_only=True
    )
    return await walker.run()  # type: ignore[return-value]


def list_paths(
    root: Union[str, os.PathLike],
    exclusions: Optional[Iterable[str]] = None,
    *,
    recursive: bool = True,
    symbolic: bool = False,
) -> List[str]:
    """Sorted absolute paths under `root`, root included."""
    return asyncio.run(
        list_paths_async(root, exclusions, recursive=recursive, symbolic=symbolic)
    )


async def classify_async(path: Union[str, os.PathLike], *, symbolic: bool = False) -> str:
    target = os.path.abspath(os.fspath(path))
    try:
        info = await (aio.lstat(target) if symbolic else aio.stat(target))
    except FileNotFoundError:
        return MISSING
    except OSError as exc:
        raise OperationError.from_os_error(exc, target) from exc
    return _describe_mode(info.st_mode)


def classify(path: Union[str, os.PathLike], *, symbolic: bool = False) -> str:
    """
    Kind of a single path without walking it.

    Links are followed unless `symbolic` is set; a dangling link followed
    this way reports missing.

    Returns one of: file, directory, symbolicLink, blockDevice,
    characterDevice, FIFO, socket, unknown or missing.
    """
    return asyncio.run(classify_async(path, symbolic=symbolic))


def _describe_mode(mode: int) -> str:
    if stat_mode.S_ISDIR(mode):
        return "directory"
    if stat_mode.S_ISLNK(mode):
        return "symbolicLink"
    if stat_mode.S_ISREG(mode):
        return "file"
    if stat_mode.S_ISBLK(mode):
        return "blockDevice"
    if stat_mode.S_ISCHR(mode):
        return "characterDevice"
    if stat_mode.S_ISFIFO(mode):
        return "FIFO"
    if stat_mode.S_ISSOCK(mode):
        return "socket"
    return "unknown"


__all__ = [
    "MISSING",
    "TreeEnumerator",
    "classify",
    "classify_async",
    "enumerate_tree",
    "enumerate_tree_async",
    "kind_from_mode",
    "list_paths",
    "list_paths_async",
    "normalize_exclusions",
    "relative_key",
]
