"""Formatting helpers for counts in summary lines."""

from __future__ import annotations


def commas(number: int) -> str:
    """Group digits in thousands, e.g. ``1234567 -> '1,234,567'``."""
    return f"{int(number):,}"


def plural(count: int, singular: str, plural_form: str | None = None) -> str:
    word = singular if count == 1 else (plural_form or f"{singular}s")
    return f"{commas(count)} {word}"
