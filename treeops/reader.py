"""
treeops.reader

Read a file as text or bytes, decided by sniffing its first bytes.

A short prefix is decoded leniently and checked for control characters that
do not occur in text. A match returns the whole file as bytes; otherwise the
whole file is returned as UTF-8 text, falling back to bytes if strict
decoding fails past the prefix.
"""

from __future__ import annotations

import asyncio
import os
import re
from typing import Iterable, List, Optional, Union

from common.base.errors import PartialBatchError, TargetNotFoundError
from common.base.logging import get_logger

log = get_logger(__name__)

PEEK_SIZE = 100
BINARY_MARKERS = re.compile("[\u0000-\u0007\u000b\u000e-\u001a\u001c-\u001f\u007f-\u009f]")

Contents = Union[str, bytes]


def looks_binary(prefix: bytes) -> bool:
    return BINARY_MARKERS.search(prefix.decode("utf-8", errors="replace")) is not None


def read_file(
    path: Union[str, os.PathLike],
    *,
    size: Optional[int] = None,
    index: int = 0,
) -> Contents:
    """
    Return the contents of `path` as `str` or `bytes`.

    Args:
        path: File to read.
        size: Known size in bytes, saves a stat call.
        index: Position of this file in a batch; a failure reports it as the
            number of files completed before this one.
    """
    filepath = os.fspath(path)
    try:
        if size is None:
            size = os.stat(filepath).st_size
        with open(filepath, "rb") as handle:
            prefix = handle.read(min(size, PEEK_SIZE))
            binary = looks_binary(prefix)
            handle.seek(0)
            data = handle.read()
    except FileNotFoundError as exc:
        if index == 0:
            raise TargetNotFoundError(filepath) from exc
        raise PartialBatchError(index, f"{exc.__class__.__name__}: {exc}", path=filepath, cause=exc) from exc
    except OSError as exc:
        raise PartialBatchError(index, f"{exc.__class__.__name__}: {exc}", path=filepath, cause=exc) from exc

    if binary:
        log.debug("Read %s as binary (%d bytes)", filepath, len(data))
        return data
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        log.debug("Read %s as binary after a failed UTF-8 decode", filepath)
        return data


async def read_file_async(
    path: Union[str, os.PathLike],
    *,
    size: Optional[int] = None,
    index: int = 0,
) -> Contents:
    return await asyncio.to_thread(read_file, path, size=size, index=index)


def read_files(paths: Iterable[Union[str, os.PathLike]]) -> List[Contents]:
    """Read `paths` in order; a failure carries how many files were read before it."""
    results: List[Contents] = []
    for index, path in enumerate(paths):
        results.append(read_file(path, index=index))
    return results


__all__ = ["looks_binary", "read_file", "read_file_async", "read_files"]
