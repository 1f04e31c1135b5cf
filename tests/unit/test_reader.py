from __future__ import annotations

import asyncio
import os
from pathlib import Path

import pytest

from common.base.errors import PartialBatchError, TargetNotFoundError
from treeops.reader import looks_binary, read_file, read_file_async, read_files


def test_text_file_returns_str(tmp_path: Path) -> None:
    target = tmp_path / "t.txt"
    target.write_text("line one\n\tline two\r\n", encoding="utf-8", newline="")

    assert read_file(target) == "line one\n\tline two\r\n"


def test_binary_file_returns_exact_bytes(tmp_path: Path) -> None:
    payload = bytes(range(256)) * 3
    target = tmp_path / "b.bin"
    target.write_bytes(payload)

    result = read_file(target)

    assert isinstance(result, bytes)
    assert result == payload


def test_control_character_beyond_peek_still_text(tmp_path: Path) -> None:
    target = tmp_path / "late.txt"
    target.write_bytes(b"a" * 150 + b"\x01")

    result = read_file(target)

    assert isinstance(result, str)
    assert result.endswith("\x01")


def test_invalid_utf8_after_peek_falls_back_to_bytes(tmp_path: Path) -> None:
    payload = b"plain text " * 20 + b"\xff\xfe"
    target = tmp_path / "mixed"
    target.write_bytes(payload)

    assert read_file(target) == payload


def test_empty_file_is_text(tmp_path: Path) -> None:
    target = tmp_path / "empty"
    target.write_bytes(b"")

    assert read_file(target) == ""


def test_looks_binary_markers() -> None:
    assert looks_binary(b"\x00abc")
    assert looks_binary("\u0085".encode("utf-8"))
    assert not looks_binary(b"tab\tnewline\ncr\rformfeed\x0c")
    assert not looks_binary("café".encode("utf-8"))


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(TargetNotFoundError):
        read_file(tmp_path / "nope")


def test_read_files_reports_completed_count(tmp_path: Path) -> None:
    first = tmp_path / "1.txt"
    second = tmp_path / "2.txt"
    first.write_text("one", encoding="utf-8")
    second.write_text("two", encoding="utf-8")

    assert read_files([first, second]) == ["one", "two"]

    with pytest.raises(PartialBatchError) as excinfo:
        read_files([first, second, tmp_path / "3.txt"])

    assert excinfo.value.completed == 2
    assert excinfo.value.lines()[0] == "Failed after 2 files."


@pytest.mark.skipif(
    os.name == "nt" or (hasattr(os, "geteuid") and os.geteuid() == 0),
    reason="permission bits are not enforced",
)
def test_unreadable_first_file_has_no_count_line(tmp_path: Path) -> None:
    target = tmp_path / "locked"
    target.write_text("x", encoding="utf-8")
    target.chmod(0)
    try:
        with pytest.raises(PartialBatchError) as excinfo:
            read_file(target)
    finally:
        target.chmod(0o644)

    assert excinfo.value.completed == 0
    assert len(excinfo.value.lines()) == 1


def test_read_file_async_matches_sync(tmp_path: Path) -> None:
    text_file = tmp_path / "t.txt"
    text_file.write_text("async text", encoding="utf-8")
    binary_file = tmp_path / "b.bin"
    binary_file.write_bytes(b"\x00\x01\x02")

    assert asyncio.run(read_file_async(text_file)) == "async text"
    assert asyncio.run(read_file_async(binary_file, size=3)) == b"\x00\x01\x02"

    with pytest.raises(PartialBatchError) as excinfo:
        asyncio.run(read_file_async(tmp_path / "gone", index=4))
    assert excinfo.value.completed == 4
