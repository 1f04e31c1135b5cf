from __future__ import annotations

import base64
from pathlib import Path
from types import SimpleNamespace

import pytest
import requests

from common.base.errors import FetchError
from treeops import codec, fetch


def _response(status: int, body: bytes = b"", url: str = "https://example.test/", history=()):
    return SimpleNamespace(
        status_code=status,
        content=body,
        url=url,
        reason="OK" if status == 200 else "Error",
        history=list(history),
    )


def test_fetch_returns_body(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []

    def fake_get(url, timeout, allow_redirects):
        calls.append((url, timeout, allow_redirects))
        return _response(200, b"hello", url)

    monkeypatch.setattr(fetch.requests, "get", fake_get)

    assert fetch.fetch("https://example.test/a", timeout=5) == b"hello"
    assert calls == [("https://example.test/a", 5, True)]


def test_fetch_follows_redirect_history(monkeypatch: pytest.MonkeyPatch) -> None:
    hop = SimpleNamespace(status_code=301, reason="Moved Permanently", url="http://example.test/old")
    monkeypatch.setattr(
        fetch.requests,
        "get",
        lambda url, timeout, allow_redirects: _response(200, b"moved", "https://example.test/new", [hop]),
    )

    assert fetch.fetch_text("http://example.test/old") == "moved"


def test_fetch_non_200_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(fetch.requests, "get", lambda url, timeout, allow_redirects: _response(404, url=url))

    with pytest.raises(FetchError) as excinfo:
        fetch.fetch("https://example.test/missing")

    assert excinfo.value.status == 404
    assert "404" in str(excinfo.value)


def test_fetch_wraps_transport_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(url, timeout, allow_redirects):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(fetch.requests, "get", boom)

    with pytest.raises(FetchError):
        fetch.fetch("https://example.test/")


def test_fetch_rejects_other_schemes() -> None:
    with pytest.raises(ValueError):
        fetch.fetch("ftp://example.test/file")
    assert fetch.is_http_address("HTTPS://example.test")
    assert not fetch.is_http_address("example.test")


def test_encode_decode_string() -> None:
    assert codec.transform("string:hello") == base64.b64encode(b"hello").decode("ascii")
    assert codec.transform("string:'aGVsbG8='", "decode") == "hello"


def test_encode_file_text_and_binary(tmp_path: Path) -> None:
    text_file = tmp_path / "t.txt"
    text_file.write_text("abc", encoding="utf-8")
    binary_file = tmp_path / "b.bin"
    binary_file.write_bytes(b"\x00\xff\x10")

    assert codec.transform(str(text_file)) == "YWJj"
    assert base64.b64decode(codec.transform(str(binary_file))) == b"\x00\xff\x10"


def test_encode_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(codec, "fetch", lambda url, timeout: b"remote")

    assert codec.transform("https://example.test/r") == base64.b64encode(b"remote").decode("ascii")


def test_transform_rejects_unknown_direction() -> None:
    with pytest.raises(ValueError):
        codec.transform("string:x", "rot13")


def test_strip_quotes() -> None:
    assert codec.strip_quotes('"quoted"') == "quoted"
    assert codec.strip_quotes("'single'") == "single"
    assert codec.strip_quotes("'mismatch\"") == "'mismatch\""
