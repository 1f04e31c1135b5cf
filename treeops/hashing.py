"""
treeops.hashing

SHA-512 fingerprints for files, strings, URLs and whole trees.

Tree fingerprint:
 - files hash their byte content, streamed in chunks
 - directories and links hash their root-relative path ('.' for the root)
 - entries are sorted by path, their hex digests concatenated and the
   concatenation hashed once more, so traversal order never matters

Large trees are throttled against the open-file limit: when a finite limit
is reported and the tree is not smaller than it, files are hashed in
sequential batches of ceil(limit / divisor).
"""

from __future__ import annotations

import asyncio
import hashlib
import math
import os
from typing import Dict, Iterable, List, Optional, Union

from common.base.errors import PartialBatchError
from common.base.fs import commas
from common.base.logging import get_logger
from common.shared.utils import Progress

from . import aio
from .entry import ROOT_INDEX, CompletionTracker, Entry, EntryKind
from .enumerator import TreeEnumerator, relative_key
from .fetch import DEFAULT_TIMEOUT, fetch_async

try:
    import resource
except ImportError:  # pragma: no cover - not available on Windows
    resource = None  # type: ignore[assignment]

log = get_logger(__name__)

ALGORITHM = "sha512"
DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_BATCH_DIVISOR = 5

TreeHash = Union[str, Dict[str, str]]


# ----------------------------------------------------------------------
# SINGLE VALUES
# ----------------------------------------------------------------------

def hash_bytes(data: bytes) -> str:
    return hashlib.new(ALGORITHM, data).hexdigest()


def hash_string(text: str) -> str:
    """Hex digest of the UTF-8 encoding of `text`."""
    return hash_bytes(text.encode("utf-8"))


def hash_file(path: Union[str, os.PathLike], chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Hex digest of a file's content, read `chunk_size` bytes at a time."""
    digest = hashlib.new(ALGORITHM)
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


async def hash_url_async(url: str, *, timeout: float = DEFAULT_TIMEOUT) -> str:
    body = await fetch_async(url, timeout=timeout)
    return hash_bytes(body)


def hash_url(url: str, *, timeout: float = DEFAULT_TIMEOUT) -> str:
    """Hex digest of the body returned for `url`."""
    return asyncio.run(hash_url_async(url, timeout=timeout))


def aggregate(digests: Iterable[str]) -> str:
    return hash_string("".join(digests))


# ----------------------------------------------------------------------
# THROTTLING
# ----------------------------------------------------------------------

def probe_fd_limit() -> Optional[int]:
    """Soft open-file limit of this process, or None when unlimited or unknown."""
    if resource is None:
        return None
    try:
        soft, _hard = resource.getrlimit(resource.RLIMIT_NOFILE)
    except (OSError, ValueError):
        return None
    if soft == resource.RLIM_INFINITY or soft <= 0:
        return None
    return int(soft)


def batch_size_for(entry_count: int, fd_limit: Optional[int], divisor: int) -> Optional[int]:
    """Files per batch, or None when everything may run at once."""
    if not fd_limit or fd_limit <= 0 or entry_count < fd_limit:
        return None
    return max(1, math.ceil(fd_limit / max(1, divisor)))


# ----------------------------------------------------------------------
# TREE HASHING
# ----------------------------------------------------------------------

class _TreeHasher:
    def __init__(
        self,
        root: str,
        entries: List[Entry],
        *,
        chunk_size: int,
        batch_size: Optional[int],
        include_progress: bool,
    ) -> None:
        self.root = root
        self.tracker = CompletionTracker(entries)
        self.chunk_size = chunk_size
        self.batch_size = batch_size
        self.include_progress = include_progress
        self.digests: Dict[int, str] = {}
        self.completed = 0

    async def run(self) -> Dict[int, str]:
        files: List[int] = []
        for index in self.tracker.ready():
            entry = self.tracker.entries[index]
            if entry.kind is EntryKind.FILE:
                files.append(index)
            else:
                self._finish_structural(index)

        files.sort(key=lambda index: self.tracker.entries[index].path)
        batches = self._batches(files)
        if len(batches) > 1:
            log.info(
                "Open-file limit allows %s files at a time; hashing in %d batches.",
                commas(self.batch_size or 0),
                len(batches),
            )
        progress = Progress(batches, desc="Hashing") if self.include_progress else None
        try:
            for batch in progress if progress is not None else batches:
                await aio.run_all(self._hash_leaf(index) for index in batch)
                log.debug("%s files hashed so far", commas(self.completed))
        finally:
            if progress is not None:
                progress.close()

        if not self.tracker.complete:
            raise PartialBatchError(
                self.completed,
                f"Hashing of {self.root} stopped before every entry finished.",
                path=self.root,
            )
        return self.digests

    def _batches(self, files: List[int]) -> List[List[int]]:
        if not files:
            return []
        if self.batch_size is None:
            return [files]
        size = self.batch_size
        return [files[start:start + size] for start in range(0, len(files), size)]

    async def _hash_leaf(self, index: int) -> None:
        entry = self.tracker.begin(index)
        try:
            digest = await asyncio.to_thread(hash_file, entry.path, self.chunk_size)
        except OSError as exc:
            raise PartialBatchError(
                self.completed,
                f"{exc.__class__.__name__}: {exc}",
                path=entry.path,
                cause=exc,
            ) from exc
        self.digests[index] = digest
        self.completed += 1
        self._cascade(self.tracker.finish(index))

    def _finish_structural(self, index: int) -> None:
        entry = self.tracker.begin(index)
        self.digests[index] = hash_string(relative_key(self.root, entry.path))
        self._cascade(self.tracker.finish(index))

    def _cascade(self, index: Optional[int]) -> None:
        if index is not None:
            self._finish_structural(index)


async def hash_tree_async(
    path: Union[str, os.PathLike],
    *,
    exclusions: Optional[Iterable[str]] = None,
    list_mode: bool = False,
    fd_limit: Optional[int] = None,
    batch_divisor: int = DEFAULT_BATCH_DIVISOR,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    include_progress: bool = False,
) -> TreeHash:
    walker = TreeEnumerator(path, exclusions, symbolic=True)
    entries: List[Entry] = await walker.run()  # type: ignore[assignment]
    log.debug(
        "Found %s file system objects under %s.", commas(len(entries)), walker.root
    )

    limit = probe_fd_limit() if fd_limit is None else fd_limit
    hasher = _TreeHasher(
        walker.root,
        entries,
        chunk_size=max(1, int(chunk_size)),
        batch_size=batch_size_for(len(entries), limit, batch_divisor),
        include_progress=include_progress,
    )
    digests = await hasher.run()

    if list_mode:
        return {entries[index].path: digests[index] for index in sorted(digests, key=lambda i: entries[i].path)}

    if entries[ROOT_INDEX].kind is EntryKind.FILE:
        return digests[ROOT_INDEX]

    ordered = sorted(range(len(entries)), key=lambda i: entries[i].path)
    return aggregate(digests[index] for index in ordered)


def hash_tree(
    path: Union[str, os.PathLike],
    *,
    exclusions: Optional[Iterable[str]] = None,
    list_mode: bool = False,
    fd_limit: Optional[int] = None,
    batch_divisor: int = DEFAULT_BATCH_DIVISOR,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    include_progress: bool = False,
) -> TreeHash:
    """
    Fingerprint a file or directory tree.

    A single file root returns the bare content digest, the same value as
    `hash_file(path)`, not a digest of a one-element aggregate.

    Args:
        path: File, link or directory to hash.
        exclusions: Root-relative paths left out of the fingerprint.
        list_mode: Return ``{absolute path: digest}`` instead of one digest.
        fd_limit: Open-file limit to throttle against. None probes the
            process limit; 0 disables throttling.
        batch_divisor: Batches hold ceil(fd_limit / batch_divisor) files.
        chunk_size: Bytes per read while streaming file content.
        include_progress: Show a progress bar over batches.

    Raises:
        TargetNotFoundError: `path` does not exist.
        PartialBatchError: a file could not be read; carries how many were hashed.
    """
    return asyncio.run(
        hash_tree_async(
            path,
            exclusions=exclusions,
            list_mode=list_mode,
            fd_limit=fd_limit,
            batch_divisor=batch_divisor,
            chunk_size=chunk_size,
            include_progress=include_progress,
        )
    )


__all__ = [
    "ALGORITHM",
    "aggregate",
    "batch_size_for",
    "hash_bytes",
    "hash_file",
    "hash_string",
    "hash_tree",
    "hash_tree_async",
    "hash_url",
    "hash_url_async",
    "probe_fd_limit",
]
