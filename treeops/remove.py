"""
treeops.remove

Recursive delete: every leaf and empty directory goes first, each directory
follows as soon as its last child is gone.
"""

from __future__ import annotations

import asyncio
import errno
import os
from dataclasses import dataclass
from typing import Callable, Optional, Union

from common.base.errors import OperationError, TargetNotFoundError
from common.base.fs import commas, plural
from common.base.logging import get_logger

from . import aio
from .entry import ROOT_INDEX, CompletionTracker, Entry, EntryKind
from .enumerator import TreeEnumerator

log = get_logger(__name__)

DEFAULT_RETRY_LIMIT = 10
DEFAULT_RETRY_DELAY = 0.05

RETRYABLE_ERRNOS = {errno.ENOTEMPTY, errno.EEXIST}

DeleteHook = Callable[[Entry], None]


@dataclass
class RemoveSummary:
    directories: int = 0
    files: int = 0
    links: int = 0
    size: int = 0

    def count(self, entry: Entry) -> None:
        if entry.kind is EntryKind.DIRECTORY:
            self.directories += 1
        elif entry.kind is EntryKind.SYMBOLIC_LINK:
            self.links += 1
        else:
            self.files += 1
            self.size += entry.metadata.size

    @property
    def total(self) -> int:
        return self.directories + self.files + self.links

    def describe(self, path: str = "") -> str:
        where = f" from {path}" if path else ""
        return (
            f"Removed {plural(self.directories, 'directory', 'directories')}, "
            f"{plural(self.files, 'file')}, {plural(self.links, 'symbolic link')}"
            f"{where} at {commas(self.size)} bytes."
        )


class _TreeRemover:
    def __init__(
        self,
        tracker: CompletionTracker,
        *,
        retry_limit: int,
        retry_delay: float,
        on_delete: Optional[DeleteHook],
    ) -> None:
        self.tracker = tracker
        self.retry_limit = max(0, int(retry_limit))
        self.retry_delay = max(0.0, float(retry_delay))
        self.on_delete = on_delete
        self.summary = RemoveSummary()

    async def run(self) -> RemoveSummary:
        await aio.run_all(self._cascade(index) for index in self.tracker.ready())
        if not self.tracker.complete:
            root = self.tracker.entries[0].path
            raise OperationError(f"Removal of {root} stopped before the root was deleted.", path=root)
        return self.summary

    async def _cascade(self, index: Optional[int]) -> None:
        # Deleting a node may make its parent eligible; walk upward until not.
        while index is not None:
            entry = self.tracker.begin(index)
            await self._delete(entry)
            if index != ROOT_INDEX or not entry.is_directory:
                self.summary.count(entry)
            if self.on_delete is not None:
                self.on_delete(entry)
            index = self.tracker.finish(index)

    async def _delete(self, entry: Entry) -> None:
        try:
            if entry.kind is EntryKind.DIRECTORY:
                await self._rmdir(entry.path)
            else:
                await aio.unlink(entry.path)
        except FileNotFoundError:
            log.debug("Already gone: %s", entry.path)
        except OSError as exc:
            raise OperationError.from_os_error(exc, entry.path) from exc
        else:
            log.debug("Deleted %s %s", entry.kind.value, entry.path)

    async def _rmdir(self, path: str) -> None:
        attempt = 0
        while True:
            try:
                await aio.rmdir(path)
                return
            except OSError as exc:
                if exc.errno not in RETRYABLE_ERRNOS or attempt >= self.retry_limit:
                    raise
                attempt += 1
                log.debug("Directory %s not empty yet, retry %d/%d", path, attempt, self.retry_limit)
                await asyncio.sleep(self.retry_delay)


async def remove_tree_async(
    path: Union[str, os.PathLike],
    *,
    missing_ok: bool = False,
    retry_limit: int = DEFAULT_RETRY_LIMIT,
    retry_delay: float = DEFAULT_RETRY_DELAY,
    on_delete: Optional[DeleteHook] = None,
) -> RemoveSummary:
    walker = TreeEnumerator(path, symbolic=True, special_files=True)
    try:
        entries = await walker.run()
    except TargetNotFoundError:
        if missing_ok:
            log.debug("Nothing to remove at %s", walker.root)
            return RemoveSummary()
        raise

    tracker = CompletionTracker(entries)  # type: ignore[arg-type]
    remover = _TreeRemover(
        tracker, retry_limit=retry_limit, retry_delay=retry_delay, on_delete=on_delete
    )
    summary = await remover.run()
    log.debug(summary.describe(walker.root))
    return summary


def remove_tree(
    path: Union[str, os.PathLike],
    *,
    missing_ok: bool = False,
    retry_limit: int = DEFAULT_RETRY_LIMIT,
    retry_delay: float = DEFAULT_RETRY_DELAY,
    on_delete: Optional[DeleteHook] = None,
) -> RemoveSummary:
    """
    Delete `path` and everything beneath it.

    Args:
        path: File, link or directory to remove.
        missing_ok: Return an empty summary instead of raising when `path` is absent.
        retry_limit: Attempts allowed for a directory that is unexpectedly not empty.
        retry_delay: Seconds to wait between those attempts.
        on_delete: Called with each entry right after it is deleted.

    Raises:
        TargetNotFoundError: `path` does not exist and `missing_ok` is False.
        OperationError: any other filesystem failure.
    """
    return asyncio.run(
        remove_tree_async(
            path,
            missing_ok=missing_ok,
            retry_limit=retry_limit,
            retry_delay=retry_delay,
            on_delete=on_delete,
        )
    )


__all__ = ["RemoveSummary", "remove_tree", "remove_tree_async"]
