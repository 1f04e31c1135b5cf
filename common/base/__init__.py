"""Low-level shared utilities for treeops."""

from .errors import (
    CompletionError,
    FetchError,
    OperationError,
    PartialBatchError,
    TargetNotFoundError,
    TreeOpsError,
)
from .logging import get_logger, setup_logging, OpsLogger

__all__ = [
    "get_logger",
    "setup_logging",
    "OpsLogger",
    "CompletionError",
    "FetchError",
    "OperationError",
    "PartialBatchError",
    "TargetNotFoundError",
    "TreeOpsError",
]
