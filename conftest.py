from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, Iterator, Union

import pytest

TreeSpec = Dict[str, Union[str, bytes, dict, None]]


def _build(root: Path, spec: TreeSpec) -> None:
    root.mkdir(parents=True, exist_ok=True)
    for name, value in spec.items():
        target = root / name
        if isinstance(value, dict):
            _build(target, value)
        elif value is None:
            target.mkdir(parents=True, exist_ok=True)
        elif isinstance(value, bytes):
            target.write_bytes(value)
        else:
            target.write_text(value, encoding="utf-8")


@pytest.fixture
def make_tree(tmp_path: Path) -> Callable[[TreeSpec, str], Path]:
    """Build a directory tree from a nested dict: str/bytes are files, dict/None are directories."""

    def factory(spec: TreeSpec, name: str = "root") -> Path:
        root = tmp_path / name
        _build(root, spec)
        return root

    return factory


@pytest.fixture(autouse=True)
def _reset_treeops_logger() -> Iterator[None]:
    yield
    logger = logging.getLogger("treeops")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
