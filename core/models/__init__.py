"""Pydantic data models shared across all components."""

from core.models.asset import AssetRecord, ComparisonResult, SymbolMatch
from core.models.limits import QuotaDecision, QuotaRecord, RateDecision
from core.models.market import PricePoint, ReturnSeries, TimeSeries
from core.models.metrics import (
    CorrelationMatrix,
    DerivedMetrics,
    PerformanceSummary,
    RadarScore,
    YearReturn,
)

__all__ = [
    "AssetRecord",
    "ComparisonResult",
    "SymbolMatch",
    "QuotaDecision",
    "QuotaRecord",
    "RateDecision",
    "PricePoint",
    "ReturnSeries",
    "TimeSeries",
    "CorrelationMatrix",
    "DerivedMetrics",
    "PerformanceSummary",
    "RadarScore",
    "YearReturn",
]
