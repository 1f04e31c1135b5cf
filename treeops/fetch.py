"""
treeops.fetch

HTTP(S) retrieval used by the `get`, `hash` and `base64` commands.

Redirects (301, 302, 303, 307, 308) are followed and logged; any other
non-200 status raises `FetchError`.
"""

from __future__ import annotations

import asyncio
import re

import requests

from common.base.errors import FetchError
from common.base.logging import get_logger

log = get_logger(__name__)

HTTP_ADDRESS = re.compile(r"^https?://", re.IGNORECASE)
REDIRECT_STATUSES = {301, 302, 303, 307, 308}
DEFAULT_TIMEOUT = 30.0


def is_http_address(value: str) -> bool:
    return bool(HTTP_ADDRESS.match(value or ""))


def fetch(url: str, *, timeout: float = DEFAULT_TIMEOUT) -> bytes:
    """Return the body of `url` after following redirects."""
    if not is_http_address(url):
        raise ValueError(f"Address {url} must use the http or https scheme.")

    try:
        response = requests.get(url, timeout=timeout, allow_redirects=True)
    except requests.RequestException as exc:
        raise FetchError(url, f"GET {url} failed: {exc}") from exc

    for hop in response.history:
        if hop.status_code in REDIRECT_STATUSES:
            log.info("%s %s - %s", hop.status_code, hop.reason, hop.url)

    if response.status_code != 200:
        raise FetchError(
            url,
            f"GET {response.url} failed with status code {response.status_code}",
            status=response.status_code,
        )
    log.debug("Fetched %d bytes from %s", len(response.content), response.url)
    return response.content


async def fetch_async(url: str, *, timeout: float = DEFAULT_TIMEOUT) -> bytes:
    return await asyncio.to_thread(fetch, url, timeout=timeout)


def fetch_text(url: str, *, timeout: float = DEFAULT_TIMEOUT) -> str:
    return fetch(url, timeout=timeout).decode("utf-8", errors="replace")


__all__ = ["fetch", "fetch_async", "fetch_text", "is_http_address"]
