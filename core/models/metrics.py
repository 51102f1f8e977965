"""Derived analytics models -- per-asset metrics, correlation and radar scores.

Every metric is optional: None means "unavailable" and is never a number.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class DerivedMetrics(BaseModel):
    """Risk/return statistics and technical indicators for one asset."""

    day_change: float | None = None
    week_change: float | None = None
    month_change: float | None = None
    quarter_change: float | None = None
    year_change: float | None = None
    ytd_change: float | None = None

    std_dev_30: float | None = None
    sharpe_annualized: float | None = None

    sma50: float | None = None
    sma200: float | None = None
    rsi14: float | None = None
    dist_52w_high: float | None = None
    dist_52w_low: float | None = None
    sma_signal: bool | None = None


class YearReturn(BaseModel):
    year: int
    change: float  # percent


class PerformanceSummary(BaseModel):
    """Drawdown and calendar-year performance from the price history."""

    max_drawdown: float | None = None  # percent, <= 0
    best_year: YearReturn | None = None
    worst_year: YearReturn | None = None
    annual_returns: list[YearReturn] = Field(default_factory=list)


class CorrelationMatrix(BaseModel):
    """Square, symmetric matrix of pairwise return correlations.

    The diagonal is 1.0 by definition. Off-diagonal entries are in [-1, 1],
    or None when there is not enough overlapping data.
    """

    symbols: list[str] = Field(default_factory=list)
    values: list[list[float | None]] = Field(default_factory=list)
    alignment: Literal["date", "position"] = "date"

    def get(self, a: str, b: str) -> float | None:
        i = self.symbols.index(a)
        j = self.symbols.index(b)
        return self.values[i][j]


class RadarScore(BaseModel):
    """One metric of one asset mapped onto the shared [0, 1] radar axis."""

    metric: str
    label: str = ""
    value: float | None = None
    raw: float | None = None
