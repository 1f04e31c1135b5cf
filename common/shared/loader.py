"""
Shared configuration loading and validation helpers.

Provides:
 - `load_config`: basic YAML loader
 - `load_logging_config`: the `logging` section of a config file
 - `load_task_config`: validated configuration for a given task
 - `cli_main`: command-line entry point exposed as the `treeops-config` script
"""

from __future__ import annotations

import argparse
import json
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from common.base.file_io import read_yaml


ConfigDict = Dict[str, Any]

DEFAULT_CONFIG_FILENAME = "config.yaml"
LOGGING_SECTION_KEY = "logging"
TASKS_SECTION_KEY = "tasks"
SHARED_SECTION_KEY = "shared"
CONFIGS_DIR = Path(__file__).resolve().parents[2] / "configs"


TASK_SCHEMAS: Dict[str, Dict[str, Iterable[str]]] = {
    "directory": {
        "required": [],
        "optional": ["exclusions", "recursive", "symbolic", "list_only"],
    },
    "copy": {
        "required": [],
        "optional": ["exclusions", "link_mode", "chunk_size_kb"],
    },
    "remove": {
        "required": [],
        "optional": ["retry_limit", "retry_delay"],
    },
    "hash": {
        "required": [],
        "optional": ["exclusions", "chunk_size_kb", "batch_divisor", "progress"],
    },
    "get": {
        "required": [],
        "optional": ["timeout"],
    },
}

TASK_DEFAULTS: Dict[str, ConfigDict] = {
    "directory": {"exclusions": [], "recursive": True, "symbolic": False, "list_only": False},
    "copy": {"exclusions": [], "link_mode": "absolute", "chunk_size_kb": 64},
    "remove": {"retry_limit": 10, "retry_delay": 0.05},
    "hash": {"exclusions": [], "chunk_size_kb": 64, "batch_divisor": 5, "progress": False},
    "get": {"timeout": 30.0},
}

FIELD_ALIASES = {
    "ignore": "exclusions",
    "exclude": "exclusions",
}

LIST_FIELDS = {"exclusions"}
BOOLEAN_FIELDS = {"recursive", "symbolic", "list_only", "progress"}
INTEGER_FIELDS = {"chunk_size_kb", "batch_divisor", "retry_limit"}
FLOAT_FIELDS = {"retry_delay", "timeout"}
CHOICE_FIELDS: Dict[str, set[str]] = {"link_mode": {"absolute", "preserve"}}
LOGGING_ALLOWED_KEYS = {"level", "use_rich", "log_dir", "file_prefix", "log_to_file"}
SHARED_ALLOWED_KEYS = {"exclusions", "chunk_size_kb"}

YES_VALUES = {"1", "true", "yes", "y", "on"}
NO_VALUES = {"0", "false", "no", "n", "off"}


def load_config(path: str | Path | None) -> Mapping[str, Any] | Dict[str, Any]:
    if not path:
        return {}

    cfg_path = Path(path).expanduser()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {cfg_path}")

    data = read_yaml(cfg_path)
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"Configuration root must be a mapping in {cfg_path}")

    return data or {}


def default_config_path() -> Optional[Path]:
    candidate = CONFIGS_DIR / DEFAULT_CONFIG_FILENAME
    return candidate if candidate.exists() else None


def load_logging_config(config_path: str | Path | None = None) -> Dict[str, Any]:
    root = load_config(config_path or default_config_path())
    return _extract_logging_settings(root)


def load_task_config(task: str, config_path: str | Path | None = None) -> ConfigDict:
    if task not in TASK_SCHEMAS:
        raise ValueError(f"Unknown task '{task}'. Expected one of: {', '.join(sorted(TASK_SCHEMAS))}")

    resolved_path = Path(config_path).expanduser() if config_path else default_config_path()
    root_config = dict(load_config(resolved_path))
    task_config_raw = _extract_task_config(root_config, task, resolved_path)
    task_logging_override: Dict[str, Any] = {}
    if "logging" in task_config_raw:
        logging_payload = task_config_raw.pop("logging")
        if not isinstance(logging_payload, Mapping):
            raise ValueError(
                f"Task '{task}' logging section must be a mapping in {resolved_path}"
            )
        task_logging_override = dict(logging_payload)
        invalid_logging_keys = [
            key for key in task_logging_override if key not in LOGGING_ALLOWED_KEYS
        ]
        if invalid_logging_keys:
            invalid_keys = ", ".join(sorted(invalid_logging_keys))
            raise ValueError(
                f"Task '{task}' logging section contains unsupported keys in {resolved_path}: {invalid_keys}"
            )
    config = _apply_aliases(task_config_raw)

    schema = TASK_SCHEMAS[task]
    required = set(schema.get("required", []))
    optional = set(schema.get("optional", []))
    allowed_keys = required | optional

    missing = [key for key in required if not config.get(key)]
    if missing:
        raise ValueError(
            f"Configuration '{resolved_path}' missing required fields for task '{task}': {', '.join(missing)}"
        )

    unexpected = [key for key in config if key not in allowed_keys]
    if unexpected:
        raise ValueError(
            f"Configuration '{resolved_path}' contains unsupported keys for task '{task}': {', '.join(unexpected)}"
        )

    provided_keys = set(config.keys())
    normalized: ConfigDict = deepcopy(TASK_DEFAULTS.get(task, {}))

    shared_settings = _extract_shared_settings(root_config, resolved_path)
    for key, value in shared_settings.items():
        if key in allowed_keys and key not in provided_keys:
            normalized[key] = value

    for key in allowed_keys:
        if key not in config:
            continue
        normalized[key] = _normalize_value(key, config[key], resolved_path)

    normalized["__task__"] = task
    normalized["__config_path__"] = str(resolved_path) if resolved_path else None

    logging_settings = _extract_logging_settings(root_config)
    merged_logging = dict(logging_settings) if logging_settings else {}
    if task_logging_override:
        merged_logging.update(task_logging_override)
    if merged_logging:
        normalized["__logging__"] = merged_logging
    return normalized


def _normalize_value(key: str, value: Any, config_path: Optional[Path]) -> Any:
    if key in LIST_FIELDS:
        return _normalize_str_list(value)
    if key in BOOLEAN_FIELDS:
        return _coerce_yes_no(value, key, config_path)
    if key in INTEGER_FIELDS:
        return _coerce_int(value, key, config_path)
    if key in FLOAT_FIELDS:
        return _coerce_float(value, key, config_path)
    if key in CHOICE_FIELDS:
        text = str(value).strip().lower()
        if text not in CHOICE_FIELDS[key]:
            choices = ", ".join(sorted(CHOICE_FIELDS[key]))
            raise ValueError(
                f"Configuration '{config_path}' field '{key}' must be one of: {choices}."
            )
        return text
    return value


def _apply_aliases(config: Mapping[str, Any]) -> ConfigDict:
    result: ConfigDict = {}
    for key, value in config.items():
        canonical = FIELD_ALIASES.get(key, key)
        result[canonical] = value
    return result


def _normalize_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [token.strip() for token in value.split(",") if token.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if str(item).strip()]
    return [str(value)]


def _coerce_yes_no(value: object, key: str, config_path: Optional[Path]) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    text = str(value).strip().lower()
    if text in YES_VALUES:
        return True
    if text in NO_VALUES:
        return False
    raise ValueError(
        f"Configuration '{config_path}' field '{key}' must be a boolean (yes/no)."
    )


def _coerce_int(value: Any, field: str, config_path: Optional[Path]) -> int:
    if isinstance(value, bool):
        raise ValueError(
            f"Configuration '{config_path}' field '{field}' must be an integer."
        )
    try:
        return int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ValueError(
            f"Configuration '{config_path}' field '{field}' must be an integer."
        ) from exc


def _coerce_float(value: Any, field: str, config_path: Optional[Path]) -> float:
    if isinstance(value, bool):
        raise ValueError(
            f"Configuration '{config_path}' field '{field}' must be a number."
        )
    try:
        return float(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ValueError(
            f"Configuration '{config_path}' field '{field}' must be a number."
        ) from exc


def _extract_task_config(root: Mapping[str, Any], task: str, config_path: Optional[Path]) -> ConfigDict:
    tasks_section = root.get(TASKS_SECTION_KEY) or {}
    if not isinstance(tasks_section, Mapping):
        raise ValueError(f"'tasks' section must be a mapping in {config_path}")
    task_payload = tasks_section.get(task) or {}
    if not isinstance(task_payload, Mapping):
        raise ValueError(f"Task '{task}' entry must be a mapping in {config_path}")
    return dict(task_payload)


def _extract_logging_settings(root: Mapping[str, Any]) -> Dict[str, Any]:
    section = root.get(LOGGING_SECTION_KEY, {})
    return dict(section) if isinstance(section, Mapping) else {}


def _extract_shared_settings(root: Mapping[str, Any], config_path: Optional[Path]) -> Dict[str, Any]:
    section = root.get(SHARED_SECTION_KEY, {})
    if not section:
        return {}
    if not isinstance(section, Mapping):
        raise ValueError(f"'{SHARED_SECTION_KEY}' section must be a mapping in {config_path}")

    invalid = [key for key in section if key not in SHARED_ALLOWED_KEYS]
    if invalid:
        invalid_keys = ", ".join(sorted(invalid))
        raise ValueError(
            f"'{SHARED_SECTION_KEY}' contains unsupported keys in {config_path}: {invalid_keys}"
        )

    return {key: _normalize_value(key, value, config_path) for key, value in section.items()}


def cli_main(argv: Optional[Iterable[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Load and validate treeops YAML configs.")
    parser.add_argument("task", help=f"Task identifier ({', '.join(sorted(TASK_SCHEMAS))})")
    parser.add_argument("config_path", nargs="?", help="Path to YAML file (defaults to configs/config.yaml)")
    args = parser.parse_args(list(argv) if argv is not None else None)

    config = load_task_config(args.task, args.config_path)
    print(json.dumps(config, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(cli_main())
