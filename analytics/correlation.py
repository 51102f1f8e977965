"""Correlation engine -- pairwise Pearson correlation of daily returns.

Two alignments are supported:

* ``date`` (default): only returns that share a calendar date are paired.
* ``position``: the last K returns of each series are paired, where K is
  the shorter length, without checking the dates line up.
"""

from __future__ import annotations

import math
from typing import Literal, Sequence

from core.models.market import ReturnSeries
from core.models.metrics import CorrelationMatrix

Alignment = Literal["date", "position"]

_ZERO_VAR = 1e-18


def pearson(xs: Sequence[float], ys: Sequence[float], min_overlap: int = 2) -> float | None:
    """Pearson coefficient of two equally long sequences.

    None with fewer than `min_overlap` pairs, with zero variance on either
    side, or when the result is not finite. Clamped into [-1, 1].
    """
    n = min(len(xs), len(ys))
    if n < max(2, min_overlap):
        return None
    xs = xs[:n]
    ys = ys[:n]

    mean_x = sum(xs) / n
    mean_y = sum(ys) / n
    cov = sum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys)) / n
    var_x = sum((x - mean_x) ** 2 for x in xs) / n
    var_y = sum((y - mean_y) ** 2 for y in ys) / n

    if var_x <= _ZERO_VAR or var_y <= _ZERO_VAR:
        return None

    value = cov / math.sqrt(var_x * var_y)
    if not math.isfinite(value):
        return None
    return min(1.0, max(-1.0, value))


def align_by_date(a: ReturnSeries, b: ReturnSeries) -> tuple[list[float], list[float]]:
    """Pair returns of two series that fall on the same calendar date."""
    b_by_date = dict(zip(b.dates, b.values))
    xs: list[float] = []
    ys: list[float] = []
    for day, value in zip(a.dates, a.values):
        other = b_by_date.get(day)
        if other is None:
            continue
        xs.append(value)
        ys.append(other)
    return xs, ys


def align_by_position(a: ReturnSeries, b: ReturnSeries) -> tuple[list[float], list[float]]:
    """Pair the trailing min(len a, len b) returns of two series by index."""
    k = min(len(a), len(b))
    if k == 0:
        return [], []
    return list(a.values[-k:]), list(b.values[-k:])


def correlate(
    a: ReturnSeries,
    b: ReturnSeries,
    alignment: Alignment = "date",
    min_overlap: int = 2,
) -> float | None:
    if alignment == "position":
        xs, ys = align_by_position(a, b)
    else:
        xs, ys = align_by_date(a, b)
    return pearson(xs, ys, min_overlap=min_overlap)


def correlation_matrix(
    series: Sequence[ReturnSeries],
    alignment: Alignment = "date",
    min_overlap: int = 2,
) -> CorrelationMatrix:
    """Square symmetric matrix over all series.

    The diagonal is 1.0 without computation. Only the upper triangle is
    computed; the lower one mirrors it.
    """
    n = len(series)
    values: list[list[float | None]] = [[None] * n for _ in range(n)]
    for i in range(n):
        values[i][i] = 1.0
        for j in range(i + 1, n):
            value = correlate(series[i], series[j], alignment=alignment, min_overlap=min_overlap)
            values[i][j] = value
            values[j][i] = value

    return CorrelationMatrix(
        symbols=[s.symbol for s in series],
        values=values,
        alignment=alignment,
    )
