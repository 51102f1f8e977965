"""Time series normalizer -- turns a raw upstream price history into a TimeSeries.

Upstream histories arrive in any order, sometimes with holes, strings where
numbers belong, or unparseable dates. Bad records are dropped, the rest is
sorted ascending, and duplicate dates keep their first occurrence.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
from typing import Any, Iterable

from core.models.market import PricePoint, TimeSeries

logger = logging.getLogger(__name__)


def extract_history_records(raw: Any) -> list[dict]:
    """Pull the list of daily records out of an upstream history payload.

    Accepts a plain list of records or an object with a `historical` list.
    Anything else is treated as "no history".
    """
    if raw is None:
        return []
    if isinstance(raw, dict):
        raw = raw.get("historical") or []
    if not isinstance(raw, list):
        return []
    return [r for r in raw if isinstance(r, dict)]


def normalize_history(
    raw: Any,
    symbol: str = "",
    prefer_adjusted: bool = False,
) -> TimeSeries:
    """Clean and order a raw price history.

    A record is kept only when its own `close` is a positive number. With
    `prefer_adjusted` the split-adjusted `adjClose` replaces it when that parses.
    Zero valid records is the normal empty case, not an error.
    """
    records = extract_history_records(raw)

    valid: list[PricePoint] = []
    for record in records:
        day = parse_date(record.get("date"))
        if day is None:
            continue
        close = _pick_close(record, prefer_adjusted)
        if close is None:
            continue
        valid.append(PricePoint(date=day, close=close))

    # sort() is stable, so the first occurrence of a duplicate date stays first
    valid.sort(key=lambda p: p.date)

    points: list[PricePoint] = []
    for point in valid:
        if points and points[-1].date == point.date:
            continue
        points.append(point)

    dropped = len(records) - len(points)
    if dropped:
        logger.debug("Dropped %d of %d history records for %s", dropped, len(records), symbol)

    return TimeSeries(symbol=symbol, points=tuple(points))


def from_closes(closes: Iterable[float], start: dt.date, symbol: str = "") -> TimeSeries:
    """Build a series of consecutive calendar days from bare closes."""
    points = [
        PricePoint(date=start + dt.timedelta(days=i), close=float(c))
        for i, c in enumerate(closes)
    ]
    return TimeSeries(symbol=symbol, points=tuple(points))


def parse_date(value: Any) -> dt.date | None:
    """Parse a date, datetime or ISO string ('2024-01-31' or '2024-01-31 00:00:00')."""
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return dt.date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return dt.datetime.fromisoformat(text).date()
    except ValueError:
        return None


def to_float(value: Any) -> float | None:
    """Coerce a payload value to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _pick_close(record: dict, prefer_adjusted: bool) -> float | None:
    close = to_float(record.get("close"))
    if close is None or close <= 0:
        return None
    if prefer_adjusted:
        adjusted = to_float(record.get("adjClose"))
        if adjusted is not None and adjusted > 0:
            return adjusted
    return close
