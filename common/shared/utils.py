"""
common.shared.utils

Progress and timing helpers shared by the treeops engines and CLI.
"""

from __future__ import annotations

import time
from typing import Any, Iterable, Optional

from tqdm import tqdm


# ----------------------------------------------------------------------
# PROGRESS + TIMING HELPERS
# ----------------------------------------------------------------------

class Progress:
    """
    Simple wrapper for tqdm progress bars that automatically closes
    on completion or interruption.
    """

    def __init__(self, iterable: Iterable[Any], desc: str = "Processing"):
        self._tqdm = tqdm(iterable, desc=desc, ncols=100, leave=False, dynamic_ncols=True)

    def __iter__(self):
        for item in self._tqdm:
            yield item
        self._tqdm.close()

    def close(self):
        self._tqdm.close()


class Stopwatch:
    """Monotonic timer started on creation."""

    def __init__(self) -> None:
        self.started = time.perf_counter()

    def elapsed(self) -> float:
        return time.perf_counter() - self.started

    def __str__(self) -> str:
        return format_elapsed(self.elapsed())


def format_elapsed(seconds: Optional[float]) -> str:
    """Render a duration as ``1h 02m 03.456s`` style text."""
    if seconds is None:
        return "0.000s"
    total = max(0.0, float(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours >= 1:
        return f"{int(hours)}h {int(minutes):02d}m {secs:06.3f}s"
    if minutes >= 1:
        return f"{int(minutes)}m {secs:06.3f}s"
    return f"{secs:.3f}s"
