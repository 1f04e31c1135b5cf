"""
treeops.codec

Base64 helpers for the `base64` command.

A source is a file path, an http(s) address, or a literal string given as
``string:<text>``.
"""

from __future__ import annotations

import base64
import binascii
from typing import Union

from common.base.logging import get_logger

from .fetch import DEFAULT_TIMEOUT, fetch, is_http_address
from .reader import read_file

log = get_logger(__name__)

STRING_PREFIX = "string:"
DIRECTIONS = ("encode", "decode")


def encode(data: Union[str, bytes]) -> str:
    raw = data.encode("utf-8") if isinstance(data, str) else data
    return base64.b64encode(raw).decode("ascii")


def decode(data: Union[str, bytes]) -> str:
    raw = data.encode("utf-8") if isinstance(data, str) else data
    try:
        decoded = base64.b64decode(raw, validate=False)
    except binascii.Error as exc:
        raise ValueError(f"Input is not valid base64: {exc}") from exc
    return decoded.decode("utf-8", errors="replace")


def strip_quotes(text: str) -> str:
    if len(text) > 1 and text[0] == text[-1] and text[0] in {"'", '"'}:
        return text[1:-1]
    return text


def load_source(source: str, *, timeout: float = DEFAULT_TIMEOUT) -> Union[str, bytes]:
    """Resolve a base64 source to the data it names."""
    if source.startswith(STRING_PREFIX):
        return strip_quotes(source[len(STRING_PREFIX):])
    if is_http_address(source):
        return fetch(source, timeout=timeout)
    return read_file(source)


def transform(source: str, direction: str = "encode", *, timeout: float = DEFAULT_TIMEOUT) -> str:
    if direction not in DIRECTIONS:
        raise ValueError(f"Direction must be one of: {', '.join(DIRECTIONS)}")
    data = load_source(source, timeout=timeout)
    log.debug("base64 %s of %s", direction, source)
    return encode(data) if direction == "encode" else decode(data)


__all__ = ["decode", "encode", "load_source", "strip_quotes", "transform"]
