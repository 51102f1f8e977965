"""Technical indicators -- SMA, simple-average RSI and 52-week range position."""

from __future__ import annotations

import math
from typing import Sequence


def sma(closes: Sequence[float], window: int) -> float | None:
    """Arithmetic mean of the last `window` closes; None when history is shorter."""
    if window <= 0 or len(closes) < window:
        return None
    tail = closes[-window:]
    value = sum(tail) / window
    return value if math.isfinite(value) else None


def rsi(closes: Sequence[float], period: int = 14) -> float | None:
    """RSI over the last `period` close-to-close differences.

    Gains and losses are plain averages over the period (no Wilder smoothing).
    A zero difference counts toward neither side. No losses means 100.
    """
    if period <= 0 or len(closes) < period + 1:
        return None

    window = closes[-(period + 1):]
    gains = 0.0
    losses = 0.0
    for prev, cur in zip(window, window[1:]):
        diff = cur - prev
        if diff > 0:
            gains += diff
        elif diff < 0:
            losses -= diff

    avg_gain = gains / period
    avg_loss = losses / period
    if avg_loss == 0:
        return 100.0

    value = 100 - 100 / (1 + avg_gain / avg_loss)
    if not math.isfinite(value):
        return None
    return min(100.0, max(0.0, value))


def sma_signal(sma_short: float | None, sma_long: float | None) -> bool | None:
    """True when the short average is above the long one; None unless both exist."""
    if sma_short is None or sma_long is None:
        return None
    return sma_short > sma_long


def range_position(
    closes: Sequence[float],
    lookback: int = 252,
) -> tuple[float | None, float | None]:
    """Distance (percent) of the last close to the trailing high and low.

    Returns (dist_to_high, dist_to_low); each is None when its guard fails.
    """
    if not closes:
        return None, None

    window = closes[-lookback:]
    last = window[-1]
    high = max(window)
    low = min(window)

    dist_high = (high - last) / high * 100 if high > 0 else None
    dist_low = (last - low) / low * 100 if low > 0 else None
    return dist_high, dist_low
