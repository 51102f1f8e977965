"""Asset processor -- turns the raw upstream payloads of one asset into an AssetRecord.

Pipeline: normalize history -> daily returns -> {period changes, risk,
technical, performance} -> indicator catalog.

Every metric is computed in isolation. A failure is logged and that metric
becomes None; the rest of the record is still produced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from analytics import performance, returns, risk, technical
from analytics.indicators import resolve_indicators
from analytics.timeseries import normalize_history, to_float
from core.errors import SymbolNotFoundError
from core.models.asset import AssetRecord
from core.models.market import ReturnSeries, TimeSeries
from core.models.metrics import DerivedMetrics, PerformanceSummary

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RawAssetPayloads:
    """Decoded upstream responses for one symbol."""

    profile: dict | None
    key_metrics: dict = field(default_factory=dict)
    ratios: dict = field(default_factory=dict)
    quote: dict = field(default_factory=dict)
    history: Any = None
    price_target: dict = field(default_factory=dict)

    def merged(self) -> dict[str, Any]:
        """One flat map of every field; the live quote wins over the profile."""
        raw: dict[str, Any] = {}
        for part in (self.price_target, self.ratios, self.key_metrics, self.profile, self.quote):
            if isinstance(part, dict):
                raw.update(part)
        return raw


class AssetProcessor:
    """Builds AssetRecords. Stateless apart from its analytics settings."""

    def __init__(
        self,
        trading_days: int = 252,
        risk_free_rate: float = 0.0,
        std_dev_window: int = 30,
    ) -> None:
        self._trading_days = trading_days
        self._risk_free_rate = risk_free_rate
        self._std_dev_window = std_dev_window

    def process(self, symbol: str, payloads: RawAssetPayloads) -> AssetRecord:
        """Build the record for `symbol`. A missing profile means the symbol is unknown."""
        if not payloads.profile:
            raise SymbolNotFoundError(symbol)

        raw = payloads.merged()
        symbol = str(raw.get("symbol") or symbol).upper()

        series = _isolated("history", lambda: normalize_history(payloads.history, symbol))
        if series is None:
            series = TimeSeries(symbol=symbol)
        daily = _isolated("returns", lambda: returns.daily_returns(series))
        if daily is None:
            daily = ReturnSeries(symbol=symbol)

        metrics = self.compute_metrics(series, daily, to_float(raw.get("changePercentage")))
        summary = _isolated("performance", lambda: performance.summarize(series))
        indicators = resolve_indicators(raw, metrics)

        return AssetRecord(
            symbol=symbol,
            name=raw.get("companyName") or raw.get("name"),
            sector=raw.get("sector"),
            industry=raw.get("industry"),
            exchange=raw.get("exchangeFullName") or raw.get("exchange"),
            currency=raw.get("currency"),
            country=raw.get("country"),
            website=raw.get("website"),
            description=raw.get("description"),
            ceo=raw.get("ceo"),
            employees=_to_int(raw.get("fullTimeEmployees")),
            image=raw.get("image"),
            price=to_float(raw.get("price")),
            market_cap=to_float(raw.get("marketCap")),
            beta=to_float(raw.get("beta")),
            volume=to_float(raw.get("volume")),
            average_volume=to_float(raw.get("averageVolume") or raw.get("avgVolume")),
            last_dividend=to_float(raw.get("lastDividend")),
            price_target=to_float(raw.get("lastMonthAvgPriceTarget")),
            range=raw.get("range"),
            metrics=metrics,
            performance=summary or PerformanceSummary(),
            indicators=indicators,
            history=series,
            returns=daily,
        )

    def compute_metrics(
        self,
        series: TimeSeries,
        daily: ReturnSeries,
        quote_change_pct: float | None = None,
    ) -> DerivedMetrics:
        """Every derived metric, each one independent of the others."""
        closes = series.closes
        values = list(daily.values)

        changes = _isolated("period_changes", lambda: returns.period_changes(series)) or {}
        sma50 = _isolated("sma50", lambda: technical.sma(closes, 50))
        sma200 = _isolated("sma200", lambda: technical.sma(closes, 200))
        dist_high, dist_low = _isolated(
            "range_position", lambda: technical.range_position(closes)
        ) or (None, None)

        return DerivedMetrics(
            day_change=_isolated("day_change", lambda: returns.day_change(series, quote_change_pct)),
            week_change=changes.get("week_change"),
            month_change=changes.get("month_change"),
            quarter_change=changes.get("quarter_change"),
            year_change=changes.get("year_change"),
            ytd_change=changes.get("ytd_change"),
            std_dev_30=_isolated(
                "std_dev_30", lambda: risk.std_dev_pct(values, self._std_dev_window)
            ),
            sharpe_annualized=_isolated(
                "sharpe",
                lambda: risk.sharpe_ratio(values, self._trading_days, self._risk_free_rate),
            ),
            sma50=sma50,
            sma200=sma200,
            rsi14=_isolated("rsi14", lambda: technical.rsi(closes, 14)),
            dist_52w_high=dist_high,
            dist_52w_low=dist_low,
            sma_signal=technical.sma_signal(sma50, sma200),
        )


def _isolated(name: str, fn: Callable[[], T]) -> T | None:
    try:
        return fn()
    except Exception:
        logger.exception("Failed to compute %s", name)
        return None


def _to_int(value: Any) -> int | None:
    number = to_float(value)
    return int(number) if number is not None else None
