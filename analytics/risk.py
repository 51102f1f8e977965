"""Risk metrics -- volatility and annualized Sharpe ratio, pure Python.

Mean and standard deviation both use the population convention (divide by N).
"""

from __future__ import annotations

import math
from typing import Sequence

# Below this the deviation is treated as zero
_ZERO_STD = 1e-12


def mean(values: Sequence[float]) -> float | None:
    if not values:
        return None
    return sum(values) / len(values)


def population_std(values: Sequence[float]) -> float | None:
    """Population standard deviation, None for an empty input."""
    avg = mean(values)
    if avg is None:
        return None
    variance = sum((x - avg) ** 2 for x in values) / len(values)
    return math.sqrt(variance)


def std_dev_pct(returns: Sequence[float], window: int = 30) -> float | None:
    """Volatility of the most recent min(window, n) returns, as a percentage."""
    if not returns or window <= 0:
        return None
    std = population_std(list(returns)[-window:])
    if std is None or not math.isfinite(std):
        return None
    return std * 100


def sharpe_ratio(
    returns: Sequence[float],
    trading_days: int = 252,
    risk_free_rate: float = 0.0,
) -> float | None:
    """Annualized Sharpe ratio over the whole return series.

    `risk_free_rate` is annual and is spread evenly over trading days.
    None when there are no returns or the deviation is (numerically) zero.
    """
    if not returns:
        return None

    daily_rf = risk_free_rate / trading_days
    excess = [r - daily_rf for r in returns]

    avg = mean(excess)
    std = population_std(excess)
    if avg is None or std is None or std <= _ZERO_STD:
        return None

    sharpe = (avg / std) * math.sqrt(trading_days)
    return sharpe if math.isfinite(sharpe) else None
