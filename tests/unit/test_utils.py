from __future__ import annotations

from common.shared.utils import Progress, Stopwatch, format_elapsed


def test_progress_yields_every_item() -> None:
    progress = Progress([[1, 2], [3]], desc="Hashing")

    assert list(progress) == [[1, 2], [3]]
    progress.close()


def test_format_elapsed() -> None:
    assert format_elapsed(None) == "0.000s"
    assert format_elapsed(1.5) == "1.500s"
    assert format_elapsed(62.25) == "1m 02.250s"
    assert format_elapsed(3723.0) == "1h 02m 03.000s"


def test_stopwatch_counts_up() -> None:
    stopwatch = Stopwatch()

    assert stopwatch.elapsed() >= 0
    assert str(stopwatch).endswith("s")
