"""Asset models -- the produced per-asset record and multi-asset comparison."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from core.models.market import ReturnSeries, TimeSeries
from core.models.metrics import CorrelationMatrix, DerivedMetrics, PerformanceSummary, RadarScore


class AssetRecord(BaseModel):
    """Everything rendering/export collaborators need for one asset.

    Missing upstream fields stay None; they are never fatal.
    """

    symbol: str
    name: str | None = None
    sector: str | None = None
    industry: str | None = None
    exchange: str | None = None
    currency: str | None = None
    country: str | None = None
    website: str | None = None
    description: str | None = None
    ceo: str | None = None
    employees: int | None = None
    image: str | None = None

    price: float | None = None
    market_cap: float | None = None
    beta: float | None = None
    volume: float | None = None
    average_volume: float | None = None
    last_dividend: float | None = None
    price_target: float | None = None
    range: str | None = None

    metrics: DerivedMetrics = Field(default_factory=DerivedMetrics)
    performance: PerformanceSummary = Field(default_factory=PerformanceSummary)
    indicators: dict[str, float | None] = Field(default_factory=dict)
    history: TimeSeries = Field(default_factory=TimeSeries)
    returns: ReturnSeries = Field(default_factory=ReturnSeries)

    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    stale: bool = False


class ComparisonResult(BaseModel):
    """Output of a multi-ticker comparison.

    Assets that failed are listed in `errors` (symbol -> message) and are
    left out of the correlation matrix and radar scores.
    """

    assets: dict[str, AssetRecord] = Field(default_factory=dict)
    errors: dict[str, str] = Field(default_factory=dict)
    correlation: CorrelationMatrix = Field(default_factory=CorrelationMatrix)
    radar: dict[str, list[RadarScore]] = Field(default_factory=dict)


class SymbolMatch(BaseModel):
    """One hit of an upstream symbol search."""

    symbol: str
    name: str = ""
    currency: str | None = None
    exchange: str | None = None
