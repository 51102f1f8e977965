"""Duration parsing helpers for configuration values."""

from __future__ import annotations

import re
from datetime import timedelta

_DURATION_RE = re.compile(r"^\s*(\d+)\s*(ms|[smhd])\s*$", re.IGNORECASE)
_UNIT_MS = {
    "ms": 1,
    "s": 1_000,
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
}


def parse_duration_ms(value: str | int) -> int:
    """Parse compact duration strings like '500ms', '60s', '5m', '1d' into milliseconds.

    Bare integers are taken as milliseconds already.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        if value < 0:
            raise ValueError(f"Invalid duration: {value!r}. Must not be negative.")
        return value

    match = _DURATION_RE.match(str(value or ""))
    if not match:
        raise ValueError(f"Invalid duration: {value!r}. Expected '<int><ms|s|m|h|d>'.")

    amount = int(match.group(1))
    unit = match.group(2).lower()
    return amount * _UNIT_MS[unit]


def parse_duration(value: str | int) -> timedelta:
    """Parse a compact duration string into a timedelta."""
    return timedelta(milliseconds=parse_duration_ms(value))
