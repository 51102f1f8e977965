import datetime as dt
import random
from datetime import datetime, timezone

import pytest

from core.config import AppConfig
from core.errors import UpstreamError
from core.time_context import TimeContext
from engine.orchestrator import ComparisonOrchestrator
from limits.cache import TTLCache
from limits.quota import MemoryQuotaStore, QuotaGate
from limits.rate_limiter import RateLimiter


# =============================================================================
# SHARED HELPERS
# =============================================================================

HISTORY_START = dt.date(2023, 6, 1)


def random_walk(seed: int, n: int = 300, start: float = 100.0) -> list[float]:
    rng = random.Random(seed)
    closes = [start]
    for _ in range(n - 1):
        closes.append(max(1.0, closes[-1] * (1 + rng.uniform(-0.03, 0.03))))
    return closes


def history_payload(closes: list[float], start: dt.date = HISTORY_START) -> list[dict]:
    """Upstream-style history, newest first like the real endpoint."""
    rows = [
        {"date": (start + dt.timedelta(days=i)).isoformat(), "close": c, "adjClose": c}
        for i, c in enumerate(closes)
    ]
    return list(reversed(rows))


class FakeProvider:
    """In-memory MarketDataProvider. Symbols without a history are unknown."""

    name = "fake"

    def __init__(self, histories: dict[str, list[dict]] | None = None) -> None:
        self.histories = histories or {}
        self.calls: list[tuple[str, str]] = []
        self.failing: set[str] = set()
        self.closed = False

    def _record(self, endpoint: str, key: str) -> None:
        self.calls.append((endpoint, key))
        if endpoint in self.failing or key in self.failing:
            raise UpstreamError(f"{endpoint} failed for {key}", cause=RuntimeError("boom"))

    def calls_for(self, endpoint: str) -> list[str]:
        return [key for ep, key in self.calls if ep == endpoint]

    def _last_close(self, symbol: str) -> float:
        return self.histories[symbol][0]["close"]

    async def profile(self, symbol: str) -> dict | None:
        self._record("profile", symbol)
        if symbol not in self.histories:
            return None
        return {
            "symbol": symbol,
            "companyName": f"{symbol} Inc.",
            "sector": "Technology",
            "industry": "Software",
            "currency": "USD",
            "exchangeFullName": "NASDAQ Global Select",
            "price": self._last_close(symbol),
            "beta": 1.1,
            "lastDividend": 1.0,
            "marketCap": 2.5e12,
            "averageVolume": 1_000_000,
            "fullTimeEmployees": "1200",
            "range": "90.0-150.0",
        }

    async def key_metrics(self, symbol: str) -> dict:
        self._record("key_metrics", symbol)
        return {
            "returnOnInvestedCapitalTTM": 0.25,
            "netDebtToEBITDATTM": 1.0,
            "evToEBITDATTM": 20.0,
            "earningsYieldTTM": 0.04,
        }

    async def ratios(self, symbol: str) -> dict:
        self._record("ratios", symbol)
        return {
            "priceToEarningsRatioTTM": 25.0,
            "grossProfitMarginTTM": 0.45,
            "priceToFreeCashFlowRatioTTM": 30.0,
        }

    async def quote(self, symbol: str) -> dict:
        self._record("quote", symbol)
        if symbol not in self.histories:
            return {}
        return {
            "symbol": symbol,
            "price": self._last_close(symbol),
            "changePercentage": 1.5,
            "volume": 2_000_000,
        }

    async def history(self, symbol: str) -> list[dict]:
        self._record("history", symbol)
        return self.histories.get(symbol, [])

    async def price_target(self, symbol: str) -> dict:
        self._record("price_target", symbol)
        return {"lastMonthAvgPriceTarget": 200.0}

    async def search(self, query: str, limit: int = 10) -> list[dict]:
        self._record("search", query)
        hits = [s for s in sorted(self.histories) if query.upper() in s]
        return [
            {"symbol": s, "name": f"{s} Inc.", "currency": "USD", "exchange": "NASDAQ"}
            for s in hits[:limit]
        ]

    async def close(self) -> None:
        self.closed = True


class MemorySnapshots:
    def __init__(self) -> None:
        self.rows: dict[str, dict] = {}

    def save_snapshot(self, symbol: str, data: dict) -> None:
        self.rows[symbol] = data

    def load_snapshot(self, symbol: str) -> dict | None:
        return self.rows.get(symbol)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def clock() -> TimeContext:
    """Simulated clock frozen at 2024-06-03 12:00 UTC."""
    return TimeContext.at(datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider({
        "AAPL": history_payload(random_walk(1)),
        "MSFT": history_payload(random_walk(2)),
        "KO": history_payload(random_walk(3, n=120)),
    })


@pytest.fixture
def snapshots() -> MemorySnapshots:
    return MemorySnapshots()


@pytest.fixture
def build_orchestrator(tmp_path, clock, snapshots):
    """Factory wiring an orchestrator around in-memory collaborators."""

    def build(provider, config: AppConfig | None = None, store=None):
        config = config or AppConfig(home_dir=str(tmp_path))
        store = store if store is not None else MemoryQuotaStore()
        orchestrator = ComparisonOrchestrator(
            config=config,
            provider=provider,
            store=store,
            snapshots=snapshots,
            quota_gate=QuotaGate(store, time_context=clock, timezone=config.quota.timezone),
            cache=TTLCache(config.cache.ttl_ms, time_context=clock),
            rate_limiter=RateLimiter(time_context=clock),
        )
        return orchestrator

    return build
