from __future__ import annotations

import logging
from pathlib import Path

from common.base.logging import OpsRichHandler, get_logger, normalize_use_rich, setup_logging


def test_setup_logging_plain_with_file(tmp_path: Path) -> None:
    logger = setup_logging(level="DEBUG", use_rich=False, log_dir=tmp_path, file_prefix="run", log_to_file=True)

    get_logger("treeops.tests").info("hello from a child logger")

    assert logger.rich_enabled is False
    assert logger.log_file is not None
    assert logger.log_file.parent == tmp_path
    assert logger.log_file.name.startswith("run_")
    for handler in logger.handlers:
        handler.flush()
    assert "hello from a child logger" in logger.log_file.read_text(encoding="utf-8")


def test_setup_logging_rich_console() -> None:
    logger = setup_logging(level="WARNING", use_rich=True, log_to_file=False)

    assert logger.rich_enabled is True
    assert logger.level == logging.WARNING
    assert any(isinstance(handler, OpsRichHandler) for handler in logger.handlers)
    assert logger.log_file is None


def test_get_logger_is_namespaced() -> None:
    assert get_logger("treeops.enumerator").name == "treeops.enumerator"
    assert get_logger("common.shared.loader").name == "treeops.common.shared.loader"
    assert get_logger().name == "treeops"


def test_normalize_use_rich() -> None:
    assert normalize_use_rich("auto") is None
    assert normalize_use_rich("yes") is True
    assert normalize_use_rich("off") is False
    assert normalize_use_rich(True) is True
    assert normalize_use_rich(None) is None
