"""Returns calculator -- daily returns and calendar-anchored period changes.

All changes are percentages. None means the history cannot answer the
question (too short, or a guard failed).
"""

from __future__ import annotations

import bisect
import datetime as dt
import math

from core.models.market import PricePoint, ReturnSeries, TimeSeries

# Calendar-day lookbacks of the standard period changes
PERIODS: dict[str, int] = {
    "week_change": 7,
    "month_change": 30,
    "quarter_change": 90,
    "year_change": 365,
}


def daily_returns(series: TimeSeries) -> ReturnSeries:
    """Simple returns r = close[i+1] / close[i] - 1.

    A pair with a non-finite or non-positive close is skipped, never zeroed.
    """
    dates: list[dt.date] = []
    values: list[float] = []
    points = series.points
    for prev, cur in zip(points, points[1:]):
        if not (_usable(prev.close) and _usable(cur.close)):
            continue
        r = cur.close / prev.close - 1
        if not math.isfinite(r):
            continue
        dates.append(cur.date)
        values.append(r)
    return ReturnSeries(symbol=series.symbol, dates=tuple(dates), values=tuple(values))


def find_anchor(series: TimeSeries, target: dt.date) -> PricePoint | None:
    """Nearest point with date <= target, or None if the series starts later."""
    idx = bisect.bisect_right(series.dates, target) - 1
    if idx < 0:
        return None
    return series.points[idx]


def percent_change(latest: float, anchor: float) -> float | None:
    if not (_usable(anchor) and math.isfinite(latest)):
        return None
    change = (latest / anchor - 1) * 100
    return change if math.isfinite(change) else None


def period_change(series: TimeSeries, days: int) -> float | None:
    """Change between the latest close and the close `days` calendar days earlier."""
    latest = series.latest
    if latest is None:
        return None
    anchor = find_anchor(series, latest.date - dt.timedelta(days=days))
    if anchor is None:
        return None
    return percent_change(latest.close, anchor.close)


def ytd_change(series: TimeSeries) -> float | None:
    """Year-to-date change of the latest point's year.

    Anchored at the last close on or before January 1st. A history that
    starts later in the year falls back to its first point of the year,
    unless that point is the latest one.
    """
    latest = series.latest
    if latest is None:
        return None
    jan1 = dt.date(latest.date.year, 1, 1)
    anchor = find_anchor(series, jan1)
    if anchor is None:
        idx = bisect.bisect_left(series.dates, jan1)
        if idx >= len(series) - 1:
            return None
        anchor = series.points[idx]
    return percent_change(latest.close, anchor.close)


def day_change(series: TimeSeries, quote_change_pct: float | None = None) -> float | None:
    """Today's change: the quote's own percentage when given, else the last two closes."""
    if quote_change_pct is not None and math.isfinite(quote_change_pct):
        return quote_change_pct
    if len(series) < 2:
        return None
    return percent_change(series.points[-1].close, series.points[-2].close)


def period_changes(series: TimeSeries) -> dict[str, float | None]:
    """All standard calendar period changes plus YTD, keyed by metric name."""
    changes = {name: period_change(series, days) for name, days in PERIODS.items()}
    changes["ytd_change"] = ytd_change(series)
    return changes


def _usable(value: float) -> bool:
    return math.isfinite(value) and value > 0
