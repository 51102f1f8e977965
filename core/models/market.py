"""Market data models -- price points, normalized series and return series."""

from __future__ import annotations

import datetime as dt
import math

from pydantic import BaseModel, ConfigDict, model_validator


class PricePoint(BaseModel):
    """A single daily close. Immutable once ingested."""

    model_config = ConfigDict(frozen=True)

    date: dt.date
    close: float


class TimeSeries(BaseModel):
    """Cleaned daily closes for one symbol.

    Ascending by date, no duplicate dates, every close finite and > 0.
    Built once per fetch by the normalizer; recomputation replaces it wholesale.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str = ""
    points: tuple[PricePoint, ...] = ()

    @model_validator(mode="after")
    def _check_invariants(self) -> TimeSeries:
        previous: dt.date | None = None
        for point in self.points:
            if not math.isfinite(point.close) or point.close <= 0:
                raise ValueError(f"Invalid close {point.close!r} on {point.date}")
            if previous is not None and point.date <= previous:
                raise ValueError(f"Dates must be strictly ascending ({previous} -> {point.date})")
            previous = point.date
        return self

    def __len__(self) -> int:
        return len(self.points)

    @property
    def is_empty(self) -> bool:
        return not self.points

    @property
    def closes(self) -> list[float]:
        return [p.close for p in self.points]

    @property
    def dates(self) -> list[dt.date]:
        return [p.date for p in self.points]

    @property
    def latest(self) -> PricePoint | None:
        return self.points[-1] if self.points else None


class ReturnSeries(BaseModel):
    """Simple daily returns; values[i] is the return ending on dates[i]."""

    model_config = ConfigDict(frozen=True)

    symbol: str = ""
    dates: tuple[dt.date, ...] = ()
    values: tuple[float, ...] = ()

    @model_validator(mode="after")
    def _check_lengths(self) -> ReturnSeries:
        if len(self.dates) != len(self.values):
            raise ValueError("ReturnSeries dates and values must have the same length")
        return self

    def __len__(self) -> int:
        return len(self.values)
