"""
common.base.errors

Exception taxonomy shared by the treeops engines.

 - TargetNotFoundError: the requested path does not exist
 - OperationError: any other filesystem failure; aborts the whole operation
 - PartialBatchError: failure after N of M items in a batch
 - FetchError: HTTP retrieval failed
 - CompletionError: the completion bookkeeping was violated (a defect)
"""

from __future__ import annotations

from typing import Optional


class TreeOpsError(Exception):
    """Base class for every error raised by treeops."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path

    def lines(self) -> list[str]:
        """Message lines for the error sink."""
        return [self.message]


class TargetNotFoundError(TreeOpsError, FileNotFoundError):
    """The operation target is missing."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Filepath {path} is not a file or directory.", path=path)


class OperationError(TreeOpsError):
    """A filesystem call failed during a multi-node operation."""

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, path=path)
        self.cause = cause

    @classmethod
    def from_os_error(cls, exc: OSError, path: Optional[str] = None) -> "OperationError":
        target = path or exc.filename
        return cls(f"{exc.__class__.__name__}: {exc}", path=target, cause=exc)


class PartialBatchError(OperationError):
    """A batch stopped after ``completed`` items had already succeeded."""

    def __init__(
        self,
        completed: int,
        message: str,
        *,
        path: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, path=path, cause=cause)
        self.completed = completed

    def lines(self) -> list[str]:
        if self.completed > 0:
            return [f"Failed after {self.completed} files.", self.message]
        return [self.message]


class FetchError(OperationError):
    """An HTTP request did not produce a usable response."""

    def __init__(self, url: str, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message, path=url)
        self.status = status


class CompletionError(TreeOpsError, RuntimeError):
    """A node completed twice or a child count went below zero."""
