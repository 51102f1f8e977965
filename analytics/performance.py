"""Performance summary -- max drawdown and calendar-year returns of a price history."""

from __future__ import annotations

from core.models.market import TimeSeries
from core.models.metrics import PerformanceSummary, YearReturn


def max_drawdown(closes: list[float]) -> float | None:
    """Deepest peak-to-trough fall, as a percentage (<= 0)."""
    if not closes:
        return None

    peak = closes[0]
    max_dd = 0.0
    for value in closes:
        if value > peak:
            peak = value
            continue
        dd = (peak - value) / peak if peak > 0 else 0
        max_dd = max(max_dd, dd)

    return -max_dd * 100


def annual_returns(series: TimeSeries) -> list[YearReturn]:
    """Return of each calendar year present in the series.

    A year runs from the previous year's last close to its own last close.
    The first year in the series starts from its first close.
    """
    year_end: dict[int, float] = {}
    year_start: dict[int, float] = {}
    for point in series.points:
        year = point.date.year
        year_start.setdefault(year, point.close)
        year_end[year] = point.close

    results: list[YearReturn] = []
    previous_close: float | None = None
    for year in sorted(year_end):
        base = previous_close if previous_close is not None else year_start[year]
        last = year_end[year]
        if base > 0:
            results.append(YearReturn(year=year, change=(last / base - 1) * 100))
        previous_close = last
    return results


def summarize(series: TimeSeries) -> PerformanceSummary:
    returns = annual_returns(series)
    best = max(returns, key=lambda r: r.change) if returns else None
    worst = min(returns, key=lambda r: r.change) if returns else None
    return PerformanceSummary(
        max_drawdown=max_drawdown(series.closes),
        best_year=best,
        worst_year=worst,
        annual_returns=returns,
    )
