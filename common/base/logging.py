"""
common.base.logging

Typed logging for treeops.

Features:
 - Custom OpsLogger subclass with Rich detection flag
 - Unified setup for Rich + standard logging
 - Optional per-run log file
 - Colorized level output on plain terminals
 - Config-driven defaults (logging level, Rich toggle, log directory)
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, cast

# ----------------------------------------------------------------------
# RICH HANDLER CONFIGURATION
# ----------------------------------------------------------------------

from rich.logging import RichHandler
from rich.text import Text


ROOT_LOGGER_NAME = "treeops"

# ----------------------------------------------------------------------
# LEVEL STYLE METADATA
# ----------------------------------------------------------------------

ANSI_RESET = "\033[0m"

LEVEL_STYLES: Dict[int, Dict[str, str]] = {
    logging.DEBUG: {"ansi": "\033[36m", "rich": "bright_cyan"},
    logging.INFO: {"ansi": "\033[32m", "rich": "green"},
    logging.WARNING: {"ansi": "\033[33m", "rich": "yellow"},
    logging.ERROR: {"ansi": "\033[31m", "rich": "red"},
    logging.CRITICAL: {"ansi": "\033[95m", "rich": "bold magenta"},
}
DEFAULT_STYLE = LEVEL_STYLES[logging.INFO]


# ----------------------------------------------------------------------
# FORMATTERS
# ----------------------------------------------------------------------

class ColorFormatter(logging.Formatter):
    """Console formatter that injects a colored level name."""

    def format(self, record: logging.LogRecord) -> str:
        original_level_display = getattr(record, "level_display", None)
        style = LEVEL_STYLES.get(record.levelno, DEFAULT_STYLE)
        ansi_color = style.get("ansi", "")

        display = record.levelname
        if ansi_color:
            display = f"{ansi_color}{display}{ANSI_RESET}"

        record.level_display = display  # type: ignore[attr-defined]
        try:
            return super().format(record)
        finally:
            if original_level_display is None:
                delattr(record, "level_display")
            else:
                record.level_display = original_level_display  # type: ignore[attr-defined]


class OpsRichHandler(RichHandler):
    """Rich console handler with a styled level column."""

    def get_level_text(self, record: logging.LogRecord) -> Text:  # type: ignore[override]
        style_name = LEVEL_STYLES.get(record.levelno, DEFAULT_STYLE).get("rich", "")
        text = Text()
        if style_name:
            text.append(record.levelname.ljust(8), style=style_name)
        else:
            text.append(record.levelname.ljust(8))
        return text


# ----------------------------------------------------------------------
# LOGGER CLASS
# ----------------------------------------------------------------------

class OpsLogger(logging.Logger):
    """Custom logger with Rich support flag and optional log file."""

    rich_enabled: bool = False
    log_file: Optional[Path] = None


# ----------------------------------------------------------------------
# CONFIG-DRIVEN DEFAULTS
# ----------------------------------------------------------------------

_DEFAULT_SETTINGS_CACHE: Dict[str, Any] | None = None


def _normalize_level(value: Any) -> str:
    if isinstance(value, str):
        candidate = value.strip().upper()
        if candidate in logging._nameToLevel:  # type: ignore[attr-defined]
            return candidate
    elif isinstance(value, int):
        label = logging.getLevelName(value)
        if isinstance(label, str):
            return label
    return "INFO"


def normalize_use_rich(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"auto", "default", ""}:
            return None
        if lowered in {"true", "yes", "1", "on"}:
            return True
        if lowered in {"false", "no", "0", "off"}:
            return False
    return None


def _load_default_logging_settings() -> Dict[str, Any]:
    global _DEFAULT_SETTINGS_CACHE
    if _DEFAULT_SETTINGS_CACHE is None:
        try:
            from common.shared.loader import load_logging_config

            raw = load_logging_config(None)
        except (OSError, ValueError):
            raw = {}

        _DEFAULT_SETTINGS_CACHE = {
            "level": _normalize_level(raw.get("level")),
            "use_rich": normalize_use_rich(raw.get("use_rich")),
            "log_dir": raw.get("log_dir"),
            "file_prefix": raw.get("file_prefix"),
            "log_to_file": bool(raw.get("log_to_file", False)),
        }
    return dict(_DEFAULT_SETTINGS_CACHE)


def _resolve_log_dir(log_dir: Optional[Path | str], default: Optional[str]) -> Path:
    base = log_dir or default or "./logs"
    return Path(base).expanduser()


def _resolve_use_rich(value: Optional[bool]) -> bool:
    if value is None:
        return sys.stderr.isatty()
    return bool(value)


# ----------------------------------------------------------------------
# BASE LOGGER SETUP
# ----------------------------------------------------------------------

def setup_logging(
    level: str | int | None = None,
    use_rich: Optional[bool] = None,
    log_dir: Optional[Path | str] = None,
    file_prefix: Optional[str] = None,
    log_to_file: Optional[bool] = None,
) -> OpsLogger:
    """
    Configure and return the global treeops logger.

    Args:
        level: Desired logging level. Defaults to the value in config.yaml (INFO if unset).
        use_rich: Force-enable or disable the Rich handler. None auto-detects a terminal.
        log_dir: Directory to store log files. Defaults to config.yaml or ./logs.
        file_prefix: Prefix for generated log filenames.
        log_to_file: Also write a per-run log file. Defaults to config.yaml (off).
    """
    defaults = _load_default_logging_settings()
    resolved_level = _normalize_level(level if level is not None else defaults.get("level"))
    resolved_use_rich = _resolve_use_rich(use_rich if use_rich is not None else defaults.get("use_rich"))
    resolved_to_file = bool(log_to_file if log_to_file is not None else defaults.get("log_to_file"))

    logging.setLoggerClass(OpsLogger)
    logger = cast(OpsLogger, logging.getLogger(ROOT_LOGGER_NAME))
    logger.setLevel(resolved_level)

    # Tear down any previous handlers so we can rebuild with new settings.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # ------------------------------------------------------------------
    # Console Handler (Rich or ANSI), always on stderr so stdout stays
    # reserved for command results.
    # ------------------------------------------------------------------
    console_handler: logging.Handler
    if resolved_use_rich:
        console_handler = OpsRichHandler(
            rich_tracebacks=True,
            markup=False,
            show_time=True,
            show_level=True,
            show_path=False,
            log_time_format="[%X]",
        )
        logger.rich_enabled = True
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(
            ColorFormatter(
                fmt="%(asctime)s %(level_display)s %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            )
        )
        logger.rich_enabled = False
    console_handler.setLevel(logging.NOTSET)
    logger.addHandler(console_handler)

    # ------------------------------------------------------------------
    # File Handler
    # ------------------------------------------------------------------
    logger.log_file = None
    if resolved_to_file:
        resolved_log_dir = _resolve_log_dir(log_dir, defaults.get("log_dir"))
        resolved_file_prefix = file_prefix or defaults.get("file_prefix") or ROOT_LOGGER_NAME
        resolved_log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        log_file_path = resolved_log_dir / f"{resolved_file_prefix}_{timestamp}.log"

        file_handler = logging.FileHandler(log_file_path, mode="a", encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        file_handler.setLevel(logging.NOTSET)
        logger.addHandler(file_handler)
        logger.log_file = log_file_path

    # ------------------------------------------------------------------
    # Finalize
    # ------------------------------------------------------------------
    logger.propagate = False
    logger._initialized = True  # type: ignore[attr-defined]
    logger.debug(
        "Logger initialized at level %s (Rich=%s)",
        resolved_level,
        "ON" if logger.rich_enabled else "OFF",
    )
    if logger.log_file is not None:
        logger.info("Log file created at: %s", logger.log_file.resolve())

    return logger


# ----------------------------------------------------------------------
# UTILITY ACCESSOR
# ----------------------------------------------------------------------

def get_logger(name: str = ROOT_LOGGER_NAME) -> OpsLogger:
    """Retrieve a namespaced treeops logger (configured later via setup_logging)."""

    logging.setLoggerClass(OpsLogger)
    base = cast(OpsLogger, logging.getLogger(ROOT_LOGGER_NAME))

    if not getattr(base, "_initialized", False) and not base.handlers:
        base.addHandler(logging.NullHandler())

    if not name or name == ROOT_LOGGER_NAME:
        return base
    if name.startswith(f"{ROOT_LOGGER_NAME}."):
        return cast(OpsLogger, logging.getLogger(name))

    return cast(OpsLogger, base.getChild(name))
