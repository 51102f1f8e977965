"""Indicator catalog -- named fundamental and technical indicators.

Each indicator knows where to find its value in the merged upstream payload
(first finite alias wins), how to compute a fallback when every alias is
missing, whether it is shown as a percentage, and how to rate a value
against its good/fair thresholds.

Thresholds are expressed in display units: a percent indicator's raw
fraction is scaled by 100 before it is rated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Literal

from analytics.timeseries import to_float
from core.models.metrics import DerivedMetrics

logger = logging.getLogger(__name__)

Rating = Literal["good", "fair", "poor"]
Category = Literal["valuation", "profitability", "health", "dividends", "risk", "technical"]


@dataclass(frozen=True)
class Indicator:
    """Definition of one named indicator."""

    key: str
    label: str
    category: Category
    api_fields: tuple[str, ...] = ()
    compute: Callable[[dict[str, Any]], float | None] | None = None
    lower_is_better: bool = False
    green: float | None = None
    yellow: float | None = None
    as_percent: bool = False
    metric: str | None = None  # DerivedMetrics field for technical entries

    def rate(self, value: float | None) -> Rating | None:
        """Traffic-light rating of a display value; None when unrated or missing."""
        if value is None or self.green is None or self.yellow is None:
            return None
        if self.lower_is_better:
            if value <= self.green:
                return "good"
            if value <= self.yellow:
                return "fair"
            return "poor"
        if value >= self.green:
            return "good"
        if value >= self.yellow:
            return "fair"
        return "poor"


# ---------------------------------------------------------------------------
# Fallback computations (raw payload -> fraction or ratio)
# ---------------------------------------------------------------------------

def _pe_from_earnings_yield(raw: dict[str, Any]) -> float | None:
    ey = to_float(raw.get("earningsYieldTTM"))
    if ey is None:
        ey = to_float(raw.get("earningsYield"))
    if not ey:
        return None
    return 1 / ey


def _dividend_yield(raw: dict[str, Any]) -> float | None:
    price = to_float(raw.get("price"))
    dividend = to_float(raw.get("lastDividend"))
    if price is None or price <= 0 or dividend is None or dividend < 0:
        return None
    return dividend / price


def _fcf_yield(raw: dict[str, Any]) -> float | None:
    pfcf = to_float(raw.get("priceToFreeCashFlowsRatioTTM"))
    if pfcf is None:
        pfcf = to_float(raw.get("priceToFreeCashFlowRatioTTM"))
    if pfcf is None or pfcf <= 0:
        return None
    return 1 / pfcf


def _relative_volume(raw: dict[str, Any]) -> float | None:
    volume = to_float(raw.get("volume"))
    average = to_float(raw.get("averageVolume") or raw.get("avgVolume"))
    if volume is None or average is None or average <= 0:
        return None
    return volume / average


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

_DEFINITIONS: list[Indicator] = [
    # Valuation
    Indicator("PER", "P/E", "valuation",
              ("pe", "peRatioTTM", "priceEarningsRatioTTM", "priceToEarningsRatioTTM"),
              compute=_pe_from_earnings_yield, lower_is_better=True, green=15, yellow=25),
    Indicator("priceToBook", "Price to Book", "valuation",
              ("priceToBookRatioTTM", "pbRatioTTM", "priceToBook"),
              lower_is_better=True, green=1.5, yellow=3),
    Indicator("priceToSales", "Price to Sales", "valuation",
              ("priceToSalesRatioTTM", "psTTM", "priceToSales"),
              lower_is_better=True, green=2, yellow=4),
    Indicator("pfc_ratio", "Price/FCF", "valuation",
              ("priceToFreeCashFlowsRatioTTM", "priceToFreeCashFlowRatioTTM", "pfcRatioTTM"),
              lower_is_better=True, green=15, yellow=25),
    Indicator("evToEbitda", "EV/EBITDA", "valuation",
              ("enterpriseValueOverEBITDATTM", "evToEBITDATTM", "evToEBITDA"),
              lower_is_better=True, green=10, yellow=15),
    Indicator("evToSales", "EV/Sales", "valuation",
              ("evToSalesTTM", "enterpriseValueToSalesTTM"),
              lower_is_better=True, green=3, yellow=5),
    Indicator("grahamNumber", "Graham number", "valuation", ("grahamNumberTTM",)),
    Indicator("earningsYield", "Earnings yield (%)", "valuation", ("earningsYieldTTM",),
              green=8, yellow=5, as_percent=True),

    # Profitability
    Indicator("grossMargin", "Gross margin (%)", "profitability",
              ("grossProfitMarginTTM", "grossMarginTTM"),
              green=40, yellow=20, as_percent=True),
    Indicator("operatingMargin", "Operating margin (%)", "profitability",
              ("operatingProfitMarginTTM", "operatingMarginTTM", "operatingIncomeMarginTTM"),
              green=15, yellow=5, as_percent=True),
    Indicator("roe", "ROE (%)", "profitability", ("returnOnEquityTTM", "roeTTM"),
              green=15, yellow=10, as_percent=True),
    Indicator("roa", "ROA (%)", "profitability", ("returnOnAssetsTTM", "roaTTM"),
              green=5, yellow=2, as_percent=True),
    Indicator("roic", "ROIC (%)", "profitability", ("returnOnInvestedCapitalTTM", "roicTTM"),
              green=10, yellow=7, as_percent=True),
    Indicator("rdToRevenue", "R&D / revenue (%)", "profitability",
              ("researchAndDevelopementToRevenueTTM", "researchAndDevelopmentToRevenueTTM"),
              green=10, yellow=5, as_percent=True),

    # Financial health
    Indicator("debtToEquity", "Debt/Equity", "health", ("debtToEquityRatioTTM", "debtToEquityTTM", "debtToEquity"),
              lower_is_better=True, green=0.5, yellow=1.0),
    Indicator("netDebtToEBITDA", "Net debt/EBITDA", "health", ("netDebtToEBITDATTM", "netDebtToEBITDA"),
              lower_is_better=True, green=1.5, yellow=3.0),
    Indicator("debt_to_assets", "Debt/Assets (%)", "health", ("debtToAssetsRatioTTM", "debtToAssetsTTM", "debtToAssets"),
              lower_is_better=True, green=40, yellow=60, as_percent=True),
    Indicator("currentRatio", "Current ratio", "health", ("currentRatioTTM", "currentRatio"),
              green=2.0, yellow=1.0),
    Indicator("cashConversionCycle", "Cash conversion cycle (days)", "health",
              ("cashConversionCycleTTM", "cashConversionCycle"),
              lower_is_better=True, green=0, yellow=20),
    Indicator("dso", "DSO (days)", "health", ("daysOfSalesOutstandingTTM",),
              lower_is_better=True, green=40, yellow=60),
    Indicator("dio", "DIO (days)", "health", ("daysOfInventoryOutstandingTTM",),
              lower_is_better=True, green=30, yellow=60),
    Indicator("incomeQualityTTM", "Income quality (%)", "health", ("incomeQualityTTM", "incomeQuality"),
              green=100, yellow=80, as_percent=True),

    # Dividends and cash flow
    Indicator("dividendYield", "Dividend yield (%)", "dividends", ("dividendYieldTTM", "dividendYield"),
              compute=_dividend_yield, green=3, yellow=1, as_percent=True),
    Indicator("dividendPerShare", "Annual dividend", "dividends", ("lastDividend", "lastDiv"),
              green=2, yellow=0.5),
    Indicator("payout_ratio", "Payout ratio (%)", "dividends", ("payoutRatioTTM", "dividendPayoutRatioTTM", "payoutRatio"),
              lower_is_better=True, green=60, yellow=80, as_percent=True),
    Indicator("fcfYield", "FCF yield (%)", "dividends", ("freeCashFlowYieldTTM", "fcfYieldTTM"),
              compute=_fcf_yield, green=5, yellow=2, as_percent=True),

    # Risk and size
    Indicator("beta", "Beta", "risk", ("beta",), lower_is_better=True, green=0.8, yellow=1.2),
    Indicator("marketCap", "Market cap", "risk", ("marketCap", "mktCap"),
              green=1e12, yellow=1e11),
    Indicator("relativeVolume", "Relative volume", "risk", (),
              compute=_relative_volume, green=2, yellow=1.5),

    # Technical, read from DerivedMetrics (already in display units)
    Indicator("rsi14", "RSI (14)", "technical", metric="rsi14", green=70, yellow=50),
    Indicator("sma50", "SMA 50", "technical", metric="sma50"),
    Indicator("sma200", "SMA 200", "technical", metric="sma200"),
    Indicator("smaSignal", "SMA 50/200 signal", "technical", metric="sma_signal", green=1, yellow=0),
    Indicator("dist52wHigh", "Distance to 52w high (%)", "technical", metric="dist_52w_high",
              lower_is_better=True, green=10, yellow=25),
    Indicator("dist52wLow", "Distance to 52w low (%)", "technical", metric="dist_52w_low",
              green=50, yellow=25),
]

INDICATORS: dict[str, Indicator] = {ind.key: ind for ind in _DEFINITIONS}


def first_present(raw: dict[str, Any], fields: tuple[str, ...]) -> float | None:
    """Value of the first alias that holds a finite number."""
    for field in fields:
        value = to_float(raw.get(field))
        if value is not None:
            return value
    return None


def resolve_indicator(
    indicator: Indicator,
    raw: dict[str, Any],
    metrics: DerivedMetrics | None = None,
) -> float | None:
    """Display value of one indicator, or None when unavailable."""
    if indicator.metric is not None:
        if metrics is None:
            return None
        value = getattr(metrics, indicator.metric)
        if isinstance(value, bool):
            return 1.0 if value else 0.0
        return value

    value = first_present(raw, indicator.api_fields)
    if value is None and indicator.compute is not None:
        value = to_float(indicator.compute(raw))
    if value is None:
        return None
    return value * 100 if indicator.as_percent else value


def resolve_indicators(
    raw: dict[str, Any],
    metrics: DerivedMetrics | None = None,
    catalog: dict[str, Indicator] | None = None,
) -> dict[str, float | None]:
    """Resolve every indicator of the catalog.

    One failing indicator never takes down the others: the error is logged
    and that indicator becomes None.
    """
    catalog = catalog if catalog is not None else INDICATORS
    values: dict[str, float | None] = {}
    for key, indicator in catalog.items():
        try:
            values[key] = resolve_indicator(indicator, raw, metrics)
        except Exception:
            logger.exception("Failed to resolve indicator %s", key)
            values[key] = None
    return values


def rate(key: str, value: float | None) -> Rating | None:
    """Rate a display value of a catalog indicator."""
    indicator = INDICATORS.get(key)
    if indicator is None:
        return None
    return indicator.rate(value)
