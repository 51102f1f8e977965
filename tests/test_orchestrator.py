import asyncio

import pytest

from core.config import AppConfig, TierConfig
from core.errors import (
    InvalidTickerError,
    QuotaExhaustedError,
    RateLimitExceededError,
    SymbolNotFoundError,
    TooManySymbolsError,
    UpstreamError,
)
from engine.orchestrator import normalize_ticker
from limits.quota import MemoryQuotaStore


def _config(tmp_path, **basico) -> AppConfig:
    config = AppConfig(home_dir=str(tmp_path))
    if basico:
        config.plans.tiers["basico"] = TierConfig(**{
            "daily_quota": 10, "requests_per_window": 20, "max_compare": 3, **basico,
        })
    return config


# ---------------------------------------------------------------------------
# Tickers
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw,expected", [
    ("aapl", "AAPL"),
    (" brk.b ", "BRK.B"),
    ("^GSPC", "^GSPC"),
    ("EURUSD=X", "EURUSD=X"),
])
def test_normalize_ticker(raw, expected):
    assert normalize_ticker(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", "AA PL", "../etc", "A" * 25, "$$$"])
def test_normalize_ticker_rejects(raw):
    with pytest.raises(InvalidTickerError):
        normalize_ticker(raw)


# ---------------------------------------------------------------------------
# Single asset
# ---------------------------------------------------------------------------

def test_cache_hit_does_not_spend_quota(provider, build_orchestrator):
    orchestrator = build_orchestrator(provider)

    async def scenario():
        first = await orchestrator.get_asset("aapl")
        second = await orchestrator.get_asset("AAPL")
        return first, second

    first, second = asyncio.run(scenario())
    assert first is second
    assert provider.calls_for("profile") == ["AAPL"]
    assert orchestrator.quota_status(None).calls_made == 1


def test_force_refresh_refetches_and_spends(provider, build_orchestrator):
    orchestrator = build_orchestrator(provider)

    async def scenario():
        await orchestrator.get_asset("AAPL")
        await orchestrator.get_asset("AAPL", force_refresh=True)

    asyncio.run(scenario())
    assert provider.calls_for("history") == ["AAPL", "AAPL"]
    assert orchestrator.quota_status(None).calls_made == 2


def test_invalid_ticker_spends_nothing(provider, build_orchestrator):
    orchestrator = build_orchestrator(provider)

    with pytest.raises(InvalidTickerError):
        asyncio.run(orchestrator.get_asset("not a ticker"))
    assert provider.calls == []
    assert orchestrator.quota_status(None).calls_made == 0


def test_unknown_symbol_is_cached_and_never_stale(provider, build_orchestrator, snapshots):
    snapshots.rows["ZZZZ"] = {"symbol": "ZZZZ"}
    orchestrator = build_orchestrator(provider)

    async def scenario():
        for _ in range(2):
            with pytest.raises(SymbolNotFoundError):
                await orchestrator.get_asset("ZZZZ")

    asyncio.run(scenario())
    assert provider.calls_for("profile") == ["ZZZZ"]
    assert orchestrator.quota_status(None).calls_made == 1


def test_successful_fetch_saves_snapshot(provider, build_orchestrator, snapshots):
    orchestrator = build_orchestrator(provider)
    asyncio.run(orchestrator.get_asset("MSFT"))

    assert snapshots.rows["MSFT"]["symbol"] == "MSFT"
    assert snapshots.rows["MSFT"]["stale"] is False


def test_quota_exhaustion_per_subject(provider, build_orchestrator, tmp_path):
    orchestrator = build_orchestrator(provider, config=_config(tmp_path, daily_quota=2))

    async def scenario():
        await orchestrator.get_asset("AAPL", "alice")
        await orchestrator.get_asset("MSFT", "alice")
        # a different subject has its own budget
        await orchestrator.get_asset("KO", "bob")
        # cached records are shared and free
        await orchestrator.get_asset("KO", "alice")
        await orchestrator.get_asset("ZZZZ", "alice")

    with pytest.raises(QuotaExhaustedError):
        asyncio.run(scenario())
    assert orchestrator.quota_status("alice").remaining == 0
    assert orchestrator.quota_status("bob").calls_made == 1
    assert "ZZZZ" not in provider.calls_for("profile")


def test_quota_exhaustion_serves_stale_snapshot(provider, build_orchestrator, tmp_path):
    asyncio.run(build_orchestrator(provider).get_asset("AAPL"))

    exhausted = build_orchestrator(provider, config=_config(tmp_path, daily_quota=0))
    record = asyncio.run(exhausted.get_asset("AAPL"))

    assert record.stale is True
    assert record.symbol == "AAPL"
    assert len(record.history) == 300
    assert provider.calls_for("profile") == ["AAPL"]


def test_upstream_failure_serves_stale_snapshot(provider, build_orchestrator):
    asyncio.run(build_orchestrator(provider).get_asset("MSFT"))

    provider.failing.add("ratios")
    record = asyncio.run(build_orchestrator(provider).get_asset("MSFT"))

    assert record.stale is True


def test_upstream_failure_without_snapshot_raises(provider, build_orchestrator):
    provider.failing.add("history")
    orchestrator = build_orchestrator(provider)

    with pytest.raises(UpstreamError):
        asyncio.run(orchestrator.get_asset("AAPL"))


def test_stale_fallback_can_be_disabled(provider, build_orchestrator, tmp_path):
    asyncio.run(build_orchestrator(provider).get_asset("AAPL"))

    config = _config(tmp_path)
    config.serve_stale_on_failure = False
    provider.failing.add("AAPL")

    with pytest.raises(UpstreamError):
        asyncio.run(build_orchestrator(provider, config=config).get_asset("AAPL"))


def test_rate_limit_applies_after_quota(provider, build_orchestrator, tmp_path):
    orchestrator = build_orchestrator(provider, config=_config(tmp_path, requests_per_window=1))

    async def scenario():
        await orchestrator.get_asset("AAPL")
        await orchestrator.get_asset("MSFT")

    with pytest.raises(RateLimitExceededError):
        asyncio.run(scenario())
    assert provider.calls_for("profile") == ["AAPL"]


def test_bypass_tier_skips_rate_limiter(provider, build_orchestrator, tmp_path):
    store = MemoryQuotaStore()
    store.set_subject_tier("root", "administrador")
    config = _config(tmp_path)
    config.plans.tiers["administrador"] = TierConfig(daily_quota=100, requests_per_window=1)
    orchestrator = build_orchestrator(provider, config=config, store=store)

    async def scenario():
        for symbol in ("AAPL", "MSFT", "KO"):
            await orchestrator.get_asset(symbol, "root")

    asyncio.run(scenario())
    assert orchestrator.resolve_tier("root")[0] == "administrador"
    assert orchestrator.quota_status("root").calls_made == 3


def test_unknown_tier_falls_back_to_default(provider, build_orchestrator):
    store = MemoryQuotaStore()
    store.set_subject_tier("ghost", "platinum")
    orchestrator = build_orchestrator(provider, store=store)

    _, tier = orchestrator.resolve_tier("ghost")
    assert tier.daily_quota == 10


def test_quote_is_cached_briefly_and_free(provider, build_orchestrator, clock):
    orchestrator = build_orchestrator(provider)

    async def scenario():
        first = await orchestrator.get_quote("ko")
        await orchestrator.get_quote("KO")
        clock.advance(30_000)
        await orchestrator.get_quote("KO")
        return first

    quote = asyncio.run(scenario())
    assert quote["symbol"] == "KO"
    assert provider.calls_for("quote") == ["KO", "KO"]
    assert orchestrator.quota_status(None).calls_made == 0


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------

def test_compare_collects_failures_per_symbol(provider, build_orchestrator):
    orchestrator = build_orchestrator(provider)

    result = asyncio.run(orchestrator.compare(["aapl", "MSFT", "bad sym!", "AAPL", "ZZZZ"]))

    assert list(result.assets) == ["AAPL", "MSFT"]
    assert set(result.errors) == {"bad sym!", "ZZZZ"}
    assert "not found" in result.errors["ZZZZ"]
    assert result.correlation.symbols == ["AAPL", "MSFT"]
    assert result.correlation.get("AAPL", "AAPL") == 1.0
    assert result.correlation.get("AAPL", "MSFT") == result.correlation.get("MSFT", "AAPL")


def test_compare_radar_scores(provider, build_orchestrator):
    orchestrator = build_orchestrator(provider)

    result = asyncio.run(orchestrator.compare(["AAPL", "KO"]))
    scores = {s.metric: s for s in result.radar["KO"]}

    assert set(scores) == {"netDebtToEBITDA", "evToEbitda", "PER", "beta", "roic", "fcfYield"}
    assert scores["PER"].label == "P/E"
    assert scores["PER"].value == pytest.approx(1 - 20 / 35)
    assert scores["roic"].value == pytest.approx(0.5)
    assert all(0.0 <= s.value <= 1.0 for s in scores.values())


def test_compare_rejects_more_symbols_than_tier_allows(provider, build_orchestrator):
    orchestrator = build_orchestrator(provider)

    with pytest.raises(TooManySymbolsError):
        asyncio.run(orchestrator.compare(["AAPL", "MSFT", "KO", "IBM"]))
    assert provider.calls == []


def test_compare_counts_unique_valid_symbols(provider, build_orchestrator):
    orchestrator = build_orchestrator(provider)

    result = asyncio.run(orchestrator.compare(["AAPL", "aapl", "MSFT", "KO", "??"]))
    assert len(result.assets) == 3


def test_compare_with_every_symbol_failing(provider, build_orchestrator):
    orchestrator = build_orchestrator(provider)

    result = asyncio.run(orchestrator.compare(["ZZZZ"]))

    assert result.assets == {}
    assert result.correlation.values == []
    assert result.radar == {}
