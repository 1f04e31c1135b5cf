"""Command-line entry points for treeops.

Each subcommand is a ``cli_<name>(argv)`` function with its own parser so it
can also be installed as a standalone ``console_scripts`` entry; ``main``
dispatches ``treeops <command> ...`` to them. Shell completion is provided by
``argcomplete``.

Results go to stdout; logs and errors go to stderr. Every failure ends in
``report_error``, which prints a short message (or a full report with
``--debug``) and returns exit status 1.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import platform
import sys
import traceback
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, TextIO

import argcomplete
import requests

from common.base.errors import TreeOpsError
from common.base.fs import commas
from common.base.logging import normalize_use_rich, setup_logging
from common.shared.loader import load_task_config
from common.shared.utils import Stopwatch
from treeops import codec
from treeops.copy import copy_tree
from treeops.enumerator import TreeEnumerator, classify
from treeops.fetch import fetch_text, is_http_address
from treeops.hashing import hash_string, hash_tree, hash_url
from treeops.remove import remove_tree


DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[1] / "configs" / "config.yaml"
PROGRAM = "treeops"

HANDLED_ERRORS = (TreeOpsError, OSError, ValueError, requests.RequestException)


def _enable_autocomplete(parser: argparse.ArgumentParser) -> None:
    argcomplete.autocomplete(parser)


def _configure_logging(logging_cfg: Dict[str, Any], *, debug: bool = False) -> None:
    setup_logging(
        level="DEBUG" if debug else logging_cfg.get("level"),
        use_rich=normalize_use_rich(logging_cfg.get("use_rich")),
        log_dir=logging_cfg.get("log_dir"),
        file_prefix=logging_cfg.get("file_prefix"),
        log_to_file=logging_cfg.get("log_to_file"),
    )


def _resolve_config_path(explicit: Optional[str]) -> Optional[Path]:
    if explicit:
        return Path(explicit).expanduser().resolve()
    if DEFAULT_CONFIG_PATH.exists():  # pragma: no branch - default install path
        return DEFAULT_CONFIG_PATH
    return None


def _load_task_payload(task: str, args: argparse.Namespace) -> Dict[str, Any]:
    config_path = _resolve_config_path(args.config)
    payload: Dict[str, Any] = dict(load_task_config(task, str(config_path) if config_path else None))
    logging_cfg = payload.pop("__logging__", {}) or {}
    _configure_logging(logging_cfg, debug=args.debug)
    return payload


def _base_parser(command: str, description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=f"{PROGRAM} {command}", description=description)
    parser.add_argument("--config", "-c", help="Path to configuration YAML (defaults to repo config).")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log at DEBUG level and print a full diagnostic report on failure.",
    )
    return parser


def _add_exclusions(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--exclude",
        "-x",
        action="append",
        metavar="RELPATH",
        help="Path relative to the root to skip, with its descendants (repeatable). Added to config exclusions.",
    )


def _exclusions(cfg: Dict[str, Any], args: argparse.Namespace) -> List[str]:
    return list(cfg.get("exclusions", [])) + list(args.exclude or [])


def _emit(text: str, stream: Optional[TextIO] = None) -> None:
    print(text, file=stream or sys.stdout)


# ----------------------------------------------------------------------
# ERROR SINK
# ----------------------------------------------------------------------

def report_error(
    exc: BaseException,
    *,
    debug: bool = False,
    stopwatch: Optional[Stopwatch] = None,
    argv: Optional[Iterable[str]] = None,
    stream: Optional[TextIO] = None,
) -> int:
    """Print `exc` to stderr and return the failure exit status."""
    out = stream or sys.stderr
    lines = exc.lines() if isinstance(exc, TreeOpsError) else [f"{exc.__class__.__name__}: {exc}"]

    if not debug:
        for line in lines:
            print(line, file=out)
        return 1

    command_line = list(argv) if argv is not None else sys.argv
    print("Error", file=out)
    print("-----", file=out)
    for line in lines:
        print(line, file=out)
    print("", file=out)
    print("Traceback", file=out)
    print("---------", file=out)
    print("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)).rstrip(), file=out)
    print("", file=out)
    print("Environment", file=out)
    print("-----------", file=out)
    print(f"python: {platform.python_version()} ({sys.executable})", file=out)
    print(f"platform: {platform.platform()}", file=out)
    print(f"cwd: {os.getcwd()}", file=out)
    print("", file=out)
    print("Command line", file=out)
    print("------------", file=out)
    print(" ".join(command_line), file=out)
    if stopwatch is not None:
        print("", file=out)
        print(f"Elapsed: {stopwatch}", file=out)
    return 1


def _execute(
    args: argparse.Namespace,
    argv: Optional[List[str]],
    action: Callable[[], int],
    stopwatch: Optional[Stopwatch] = None,
) -> int:
    clock = stopwatch or Stopwatch()
    try:
        return action()
    except HANDLED_ERRORS as exc:
        return report_error(exc, debug=args.debug, stopwatch=clock, argv=argv)


# ----------------------------------------------------------------------
# COMMANDS
# ----------------------------------------------------------------------

def cli_directory(argv: Optional[Iterable[str]] = None) -> int:
    parser = _base_parser("directory", "List a directory tree as JSON entry rows or paths.")
    parser.add_argument("path", help="Root file or directory to walk.")
    _add_exclusions(parser)
    parser.add_argument("--shallow", action="store_true", help="Do not enter child directories.")
    parser.add_argument("--symbolic", action="store_true", help="Report symbolic links instead of following them.")
    parser.add_argument("--list-only", action="store_true", help="Print a sorted list of paths only.")
    parser.add_argument("--typeof", action="store_true", help="Print only the kind of PATH (or 'missing').")
    parser.add_argument("--verbose", "-v", action="store_true", help="Append a summary line.")
    _enable_autocomplete(parser)
    arg_list = list(argv) if argv is not None else None
    args = parser.parse_args(arg_list)

    def action() -> int:
        cfg = _load_task_payload("directory", args)
        if args.typeof:
            _emit(classify(args.path, symbolic=args.symbolic or bool(cfg.get("symbolic", False))))
            return 0

        walker = TreeEnumerator(
            args.path,
            _exclusions(cfg, args),
            recursive=not args.shallow and bool(cfg.get("recursive", True)),
            symbolic=args.symbolic or bool(cfg.get("symbolic", False)),
            list_only=args.list_only or bool(cfg.get("list_only", False)),
        )
        result = asyncio.run(walker.run())
        if walker.list_only:
            _emit(json.dumps(result))
        else:
            _emit(json.dumps([entry.as_row() for entry in result]))
        if args.verbose:
            _emit("")
            _emit(
                f"{PROGRAM} found {commas(len(result))} matching items from address "
                f"{walker.root} with a total file size of {commas(walker.total_size)} bytes."
            )
        return 0

    return _execute(args, arg_list, action)


def cli_copy(argv: Optional[Iterable[str]] = None) -> int:
    parser = _base_parser("copy", "Copy a file or directory tree, preserving times and permissions.")
    parser.add_argument("source", help="File or directory to copy.")
    parser.add_argument("destination", help="Directory that receives the copy.")
    _add_exclusions(parser)
    parser.add_argument(
        "--link-mode",
        choices=["absolute", "preserve"],
        help="Recreate links at their resolved absolute target or keep the original link text.",
    )
    _enable_autocomplete(parser)
    arg_list = list(argv) if argv is not None else None
    args = parser.parse_args(arg_list)

    def action() -> int:
        cfg = _load_task_payload("copy", args)
        summary = copy_tree(
            args.source,
            args.destination,
            exclusions=_exclusions(cfg, args),
            link_mode=args.link_mode or cfg.get("link_mode", "absolute"),
            chunk_size=int(cfg.get("chunk_size_kb", 64)) * 1024,
        )
        _emit(summary.describe())
        _emit(f"Copied {os.path.abspath(args.source)} to {os.path.abspath(args.destination)}")
        return 0

    return _execute(args, arg_list, action)


def cli_remove(argv: Optional[Iterable[str]] = None) -> int:
    parser = _base_parser("remove", "Delete a file or directory tree.")
    parser.add_argument("path", help="File or directory to delete.")
    parser.add_argument("--missing-ok", action="store_true", help="Succeed quietly when PATH does not exist.")
    _enable_autocomplete(parser)
    arg_list = list(argv) if argv is not None else None
    args = parser.parse_args(arg_list)

    def action() -> int:
        cfg = _load_task_payload("remove", args)
        summary = remove_tree(
            args.path,
            missing_ok=args.missing_ok,
            retry_limit=int(cfg.get("retry_limit", 10)),
            retry_delay=float(cfg.get("retry_delay", 0.05)),
        )
        _emit(summary.describe(os.path.abspath(args.path)))
        return 0

    return _execute(args, arg_list, action)


def cli_hash(argv: Optional[Iterable[str]] = None) -> int:
    parser = _base_parser("hash", "SHA-512 fingerprint of a file, a directory tree, a string or a URL.")
    parser.add_argument("target", help="Path, http(s) address, or literal text with --string.")
    parser.add_argument("--string", action="store_true", help="Hash TARGET itself as text.")
    parser.add_argument("--list", dest="list_mode", action="store_true", help="Print a JSON map of path to digest.")
    _add_exclusions(parser)
    parser.add_argument("--progress", action="store_true", help="Show a progress bar while hashing batches.")
    parser.add_argument(
        "--fd-limit",
        type=int,
        help="Open-file limit to throttle against (0 disables; default probes the process limit).",
    )
    _enable_autocomplete(parser)
    arg_list = list(argv) if argv is not None else None
    args = parser.parse_args(arg_list)

    def action() -> int:
        cfg = _load_task_payload("hash", args)
        if args.string:
            _emit(hash_string(args.target))
            return 0
        if is_http_address(args.target):
            _emit(hash_url(args.target))
            return 0
        result = hash_tree(
            args.target,
            exclusions=_exclusions(cfg, args),
            list_mode=args.list_mode,
            fd_limit=args.fd_limit,
            batch_divisor=int(cfg.get("batch_divisor", 5)),
            chunk_size=int(cfg.get("chunk_size_kb", 64)) * 1024,
            include_progress=args.progress or bool(cfg.get("progress", False)),
        )
        _emit(json.dumps(result, indent=2) if isinstance(result, dict) else result)
        return 0

    return _execute(args, arg_list, action)


def cli_base64(argv: Optional[Iterable[str]] = None) -> int:
    parser = _base_parser("base64", "Base64 encode or decode a file, a URL or 'string:<text>'.")
    parser.add_argument("direction", nargs="?", choices=list(codec.DIRECTIONS), default="encode")
    parser.add_argument("source", help="File path, http(s) address or string:<text>.")
    _enable_autocomplete(parser)
    arg_list = list(argv) if argv is not None else None
    args = parser.parse_args(arg_list)

    def action() -> int:
        cfg = _load_task_payload("get", args)
        _emit(codec.transform(args.source, args.direction, timeout=float(cfg.get("timeout", 30.0))))
        return 0

    return _execute(args, arg_list, action)


def cli_get(argv: Optional[Iterable[str]] = None) -> int:
    parser = _base_parser("get", "Print the body of an http(s) address.")
    parser.add_argument("url", help="http:// or https:// address.")
    _enable_autocomplete(parser)
    arg_list = list(argv) if argv is not None else None
    args = parser.parse_args(arg_list)

    def action() -> int:
        cfg = _load_task_payload("get", args)
        _emit(fetch_text(args.url, timeout=float(cfg.get("timeout", 30.0))))
        return 0

    return _execute(args, arg_list, action)


COMMANDS: Dict[str, Callable[[Optional[Iterable[str]]], int]] = {
    "base64": cli_base64,
    "copy": cli_copy,
    "directory": cli_directory,
    "get": cli_get,
    "hash": cli_hash,
    "remove": cli_remove,
}


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog=PROGRAM, description="Bulk filesystem operations.")
    parser.add_argument("command", choices=sorted(COMMANDS), help="Operation to run.")
    parser.add_argument("args", nargs=argparse.REMAINDER, help="Arguments for the command.")
    _enable_autocomplete(parser)
    args = parser.parse_args(list(argv) if argv is not None else None)
    return COMMANDS[args.command](args.args)


__all__ = [
    "cli_base64",
    "cli_copy",
    "cli_directory",
    "cli_get",
    "cli_hash",
    "cli_remove",
    "main",
    "report_error",
]


if __name__ == "__main__":
    raise SystemExit(main())
