"""
treeops.aio

Non-blocking filesystem primitives for the engines.

Every call runs in the default executor via `asyncio.to_thread`, so the
coroutines that await them keep all bookkeeping on the event loop thread.
"""

from __future__ import annotations

import asyncio
import os
from stat import S_ISDIR
from typing import Awaitable, Iterable, List, TypeVar

from common.base.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


async def stat(path: str) -> os.stat_result:
    return await asyncio.to_thread(os.stat, path)


async def lstat(path: str) -> os.stat_result:
    return await asyncio.to_thread(os.lstat, path)


async def listdir(path: str) -> List[str]:
    return await asyncio.to_thread(os.listdir, path)


async def readlink(path: str) -> str:
    return await asyncio.to_thread(os.readlink, path)


async def unlink(path: str) -> None:
    await asyncio.to_thread(os.unlink, path)


async def rmdir(path: str) -> None:
    await asyncio.to_thread(os.rmdir, path)


async def symlink(target: str, path: str, *, target_is_directory: bool = False) -> None:
    await asyncio.to_thread(os.symlink, target, path, target_is_directory)


async def make_dir(path: str) -> None:
    """
    Create `path` and any missing ancestors, one segment at a time.

    An existing directory at any level counts as success, so sibling
    coroutines may race to create the same parent. A segment that exists as
    anything other than a directory raises `NotADirectoryError`.
    """
    target = os.path.abspath(path)
    missing: List[str] = []
    current = target
    while True:
        try:
            info = await stat(current)
        except FileNotFoundError:
            missing.append(current)
            parent = os.path.dirname(current)
            if parent == current:
                break
            current = parent
            continue
        if not S_ISDIR(info.st_mode):
            raise NotADirectoryError(f"Destination segment {current} is not a directory.")
        break

    for segment in reversed(missing):
        try:
            await asyncio.to_thread(os.mkdir, segment)
            log.debug("Created directory %s", segment)
        except FileExistsError:
            if not S_ISDIR((await stat(segment)).st_mode):
                raise NotADirectoryError(
                    f"Destination segment {segment} is not a directory."
                ) from None


async def run_all(awaitables: Iterable[Awaitable[T]]) -> List[T]:
    """
    Await everything concurrently; on the first failure cancel the rest.

    Cancelled siblings are drained before the original error is re-raised so
    no task outlives the operation that spawned it.
    """
    tasks = [asyncio.ensure_future(item) for item in awaitables]
    if not tasks:
        return []
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


__all__ = [
    "listdir",
    "lstat",
    "make_dir",
    "readlink",
    "rmdir",
    "run_all",
    "stat",
    "symlink",
    "unlink",
]
