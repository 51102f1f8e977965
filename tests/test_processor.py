import asyncio
import logging

import pytest

from conftest import FakeProvider, history_payload, random_walk
from core.errors import SymbolNotFoundError
from engine.processor import AssetProcessor, RawAssetPayloads


def _payloads(provider: FakeProvider, symbol: str) -> RawAssetPayloads:
    async def collect():
        return RawAssetPayloads(
            profile=await provider.profile(symbol),
            key_metrics=await provider.key_metrics(symbol),
            ratios=await provider.ratios(symbol),
            quote=await provider.quote(symbol),
            history=await provider.history(symbol),
            price_target=await provider.price_target(symbol),
        )

    return asyncio.run(collect())


def test_builds_full_record(provider):
    record = AssetProcessor().process("AAPL", _payloads(provider, "AAPL"))

    assert record.symbol == "AAPL"
    assert record.name == "AAPL Inc."
    assert record.exchange == "NASDAQ Global Select"
    assert record.employees == 1200
    assert record.price_target == 200.0
    assert len(record.history) == 300
    assert len(record.returns) == 299
    assert record.history.closes[-1] == record.price

    metrics = record.metrics
    assert metrics.day_change == 1.5
    assert metrics.sma50 is not None and metrics.sma200 is not None
    assert metrics.sma_signal in (True, False)
    assert 0 <= metrics.rsi14 <= 100
    assert metrics.std_dev_30 > 0
    assert metrics.year_change is None

    assert record.indicators["PER"] == 25.0
    assert record.indicators["roic"] == pytest.approx(25.0)
    assert record.indicators["fcfYield"] == pytest.approx(100 / 30)
    assert record.indicators["relativeVolume"] == pytest.approx(2.0)
    assert record.indicators["rsi14"] == metrics.rsi14
    assert record.performance.max_drawdown <= 0


def test_short_history_leaves_long_metrics_absent(provider):
    record = AssetProcessor().process("KO", _payloads(provider, "KO"))

    assert len(record.history) == 120
    assert record.metrics.sma50 is not None
    assert record.metrics.sma200 is None
    assert record.metrics.sma_signal is None
    assert record.indicators["sma200"] is None


def test_missing_profile_means_unknown_symbol():
    with pytest.raises(SymbolNotFoundError):
        AssetProcessor().process("NOPE", RawAssetPayloads(profile=None))


def test_quote_fields_win_over_profile():
    payloads = RawAssetPayloads(
        profile={"symbol": "X", "price": 10.0, "companyName": "X Corp"},
        quote={"price": 11.0},
    )
    record = AssetProcessor().process("x", payloads)
    assert record.symbol == "X"
    assert record.price == 11.0


def test_no_history_yields_empty_metrics():
    payloads = RawAssetPayloads(profile={"symbol": "X"}, history={"historical": []})
    record = AssetProcessor().process("X", payloads)

    assert record.history.is_empty
    assert len(record.returns) == 0
    assert record.metrics.day_change is None
    assert record.metrics.sharpe_annualized is None
    assert record.performance.max_drawdown is None


def test_failing_metric_is_isolated(monkeypatch, caplog):
    def boom(*args, **kwargs):
        raise ZeroDivisionError("bad math")

    monkeypatch.setattr("analytics.technical.rsi", boom)
    payloads = RawAssetPayloads(
        profile={"symbol": "X"},
        history=history_payload(random_walk(7, n=60)),
    )

    with caplog.at_level(logging.ERROR, logger="engine.processor"):
        record = AssetProcessor().process("X", payloads)

    assert record.metrics.rsi14 is None
    assert record.metrics.sma50 is not None
    assert record.metrics.std_dev_30 is not None
    assert "rsi14" in caplog.text


def test_risk_free_rate_is_configurable(provider):
    payloads = _payloads(provider, "MSFT")
    base = AssetProcessor().process("MSFT", payloads)
    with_rf = AssetProcessor(risk_free_rate=0.05).process("MSFT", payloads)

    assert with_rf.metrics.sharpe_annualized < base.metrics.sharpe_annualized
