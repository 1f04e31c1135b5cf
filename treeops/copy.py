"""
treeops.copy

Recursive copy with enumeration and materialization in one pass.

Each directory is created at the destination as soon as it is discovered,
before its children are examined, so the walk cannot reuse the generic
enumerator. The entry list grows as the walk proceeds and completion is
tracked through `CompletionTracker` exactly like the other engines.

Layout:
 - a source directory's contents land directly in `destination`
 - a source file or link lands at `destination/<name>`
"""

from __future__ import annotations

import asyncio
import os
import shutil
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from common.base.errors import OperationError, TargetNotFoundError
from common.base.fs import commas, plural
from common.base.logging import get_logger

from . import aio
from .entry import ROOT_INDEX, CompletionTracker, Entry, EntryKind, EntryMetadata
from .enumerator import kind_from_mode, normalize_exclusions, relative_key

log = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
LINK_MODES = ("absolute", "preserve")


@dataclass
class CopySummary:
    directories: int = 0
    files: int = 0
    links: int = 0
    size: int = 0

    def describe(self) -> str:
        return (
            f"Copied {plural(self.directories, 'directory', 'directories')}, "
            f"{plural(self.files, 'file')}, and {plural(self.links, 'symbolic link')} "
            f"at {commas(self.size)} bytes."
        )


def copy_file_contents(source: str, target: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
    """Stream `source` into `target`; a partial `target` is removed on failure."""
    try:
        with open(source, "rb") as reader, open(target, "wb") as writer:
            shutil.copyfileobj(reader, writer, chunk_size)
    except OSError:
        try:
            os.unlink(target)
        except FileNotFoundError:
            pass
        raise


class _TreeCopier:
    def __init__(
        self,
        source: str,
        destination: str,
        *,
        exclusions: frozenset[str],
        link_mode: str,
        chunk_size: int,
    ) -> None:
        self.source = source
        self.destination = destination
        self.exclusions = exclusions
        self.link_mode = link_mode
        self.chunk_size = chunk_size
        self.tracker = CompletionTracker()
        self.summary = CopySummary()

    # ------------------------------------------------------------------
    # Walk
    # ------------------------------------------------------------------

    async def run(self) -> CopySummary:
        try:
            info = await aio.lstat(self.source)
        except FileNotFoundError as exc:
            raise TargetNotFoundError(self.source) from exc
        except OSError as exc:
            raise OperationError.from_os_error(exc, self.source) from exc

        kind = kind_from_mode(info.st_mode)
        if kind is None:
            raise TargetNotFoundError(self.source)

        if kind is EntryKind.DIRECTORY:
            await self._visit_directory(self.source, self.destination, ROOT_INDEX, info)
        else:
            await self._guard(aio.make_dir(self.destination), self.destination)
            target = os.path.join(self.destination, os.path.basename(self.source))
            await self._visit_leaf(self.source, target, ROOT_INDEX, kind, info)

        if not self.tracker.complete:
            raise OperationError(
                f"Copy of {self.source} stopped before every entry finished.", path=self.source
            )
        return self.summary

    async def _visit(self, path: str, target: str, parent: int) -> None:
        info = await self._guard(aio.lstat(path), path)
        kind = kind_from_mode(info.st_mode)
        if kind is None:
            log.debug("Skipping special file %s", path)
            await self._cascade(self.tracker.release(parent))
        elif kind is EntryKind.DIRECTORY:
            await self._visit_directory(path, target, parent, info)
        else:
            await self._visit_leaf(path, target, parent, kind, info)

    async def _visit_directory(
        self, path: str, target: str, parent: int, info: os.stat_result
    ) -> None:
        index = self.tracker.add(
            Entry(path, EntryKind.DIRECTORY, parent, metadata=EntryMetadata.from_stat(info))
        )
        if index != ROOT_INDEX:
            self.summary.directories += 1
        await self._guard(aio.make_dir(target), target)
        names = await self._guard(aio.listdir(path), path)
        children = [
            name for name in names
            if relative_key(self.source, os.path.join(path, name)) not in self.exclusions
        ]
        self.tracker.entries[index].pending_children = len(children)
        if not children:
            await self._cascade(index)
            return
        await aio.run_all(
            self._visit(os.path.join(path, name), os.path.join(target, name), index)
            for name in children
        )

    async def _visit_leaf(
        self, path: str, target: str, parent: int, kind: EntryKind, info: os.stat_result
    ) -> None:
        metadata = EntryMetadata.from_stat(info)
        index = self.tracker.add(Entry(path, kind, parent, metadata=metadata))
        self.tracker.begin(index)
        if kind is EntryKind.SYMBOLIC_LINK:
            await self._copy_link(path, target)
            self.summary.links += 1
        else:
            await self._copy_file(path, target, metadata)
            self.summary.files += 1
            self.summary.size += metadata.size
        await self._cascade(self.tracker.finish(index))

    async def _cascade(self, index: Optional[int]) -> None:
        # A directory whose last child finished is itself finished.
        while index is not None:
            self.tracker.begin(index)
            entry = self.tracker.entries[index]
            log.debug("Copied directory %s", entry.path)
            index = self.tracker.finish(index)

    # ------------------------------------------------------------------
    # Materialization
    # ------------------------------------------------------------------

    async def _copy_file(self, path: str, target: str, metadata: EntryMetadata) -> None:
        def _write() -> None:
            copy_file_contents(path, target, self.chunk_size)
            os.chmod(target, metadata.mode & 0o7777)
            os.utime(target, (metadata.atime, metadata.mtime))

        await self._guard(asyncio.to_thread(_write), path)
        log.debug("Copied file %s -> %s", path, target)

    async def _copy_link(self, path: str, target: str) -> None:
        link_text = await self._guard(aio.readlink(path), path)
        resolved = os.path.normpath(os.path.join(os.path.dirname(path), link_text))
        pointed = await self._guard(aio.stat(resolved), resolved)
        is_dir = kind_from_mode(pointed.st_mode) is EntryKind.DIRECTORY
        link_target = link_text if self.link_mode == "preserve" else resolved
        await self._guard(aio.symlink(link_target, target, target_is_directory=is_dir), target)
        log.debug("Linked %s -> %s", target, link_target)

    async def _guard(self, awaitable, path: str):
        try:
            return await awaitable
        except OSError as exc:
            raise OperationError.from_os_error(exc, path) from exc


async def copy_tree_async(
    source: Union[str, os.PathLike],
    destination: Union[str, os.PathLike],
    *,
    exclusions: Optional[Iterable[str]] = None,
    link_mode: str = "absolute",
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> CopySummary:
    if link_mode not in LINK_MODES:
        raise ValueError(f"link_mode must be one of: {', '.join(LINK_MODES)}")
    source_path = os.path.abspath(os.fspath(source))
    destination_path = os.path.abspath(os.fspath(destination))
    if os.path.commonpath([source_path, destination_path]) == source_path and os.path.isdir(source_path):
        raise ValueError(f"Destination {destination_path} is inside source {source_path}.")
    copier = _TreeCopier(
        source_path,
        destination_path,
        exclusions=normalize_exclusions(exclusions),
        link_mode=link_mode,
        chunk_size=max(1, int(chunk_size)),
    )
    summary = await copier.run()
    log.debug(summary.describe())
    log.debug("Copied %s to %s", copier.source, copier.destination)
    return summary


def copy_tree(
    source: Union[str, os.PathLike],
    destination: Union[str, os.PathLike],
    *,
    exclusions: Optional[Iterable[str]] = None,
    link_mode: str = "absolute",
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> CopySummary:
    """
    Copy `source` into `destination`, preserving file times and permission bits.

    Args:
        source: File, link or directory to copy.
        destination: Target directory; created (with any missing ancestors) if absent.
        exclusions: Source-relative paths to skip, with their descendants.
        link_mode: "absolute" recreates links pointing at the resolved target,
            "preserve" keeps the original link text so relative links stay relocatable.
        chunk_size: Bytes per read/write while streaming file contents.
    """
    return asyncio.run(
        copy_tree_async(
            source,
            destination,
            exclusions=exclusions,
            link_mode=link_mode,
            chunk_size=chunk_size,
        )
    )


__all__ = ["CopySummary", "copy_file_contents", "copy_tree", "copy_tree_async"]
