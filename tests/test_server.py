import asyncio

import pytest
from aiohttp.test_utils import TestClient, TestServer

from core.config import AppConfig, TierConfig
from engine.search import SymbolSearch
from limits.quota import MemoryQuotaStore
from server import create_app


@pytest.fixture
def make_app(provider, build_orchestrator, tmp_path):
    def make(config: AppConfig | None = None, store=None):
        config = config or AppConfig(home_dir=str(tmp_path))
        orchestrator = build_orchestrator(provider, config=config, store=store)
        cache = orchestrator._cache
        search = SymbolSearch(provider, cache, ttl_ms=config.cache.ttl_for("search"))
        return create_app(config=config, orchestrator=orchestrator, search=search, cache=cache)

    return make


def _run(app, scenario):
    async def main():
        async with TestClient(TestServer(app)) as client:
            return await scenario(client)

    return asyncio.run(main())


def test_health(make_app):
    async def scenario(client):
        resp = await client.get("/health")
        return resp.status, await resp.json()

    status, body = _run(make_app(), scenario)
    assert status == 200
    assert body["status"] == "ok"
    assert body["cache"] == {"entries": 0, "hits": 0, "misses": 0}


def test_get_asset(make_app):
    async def scenario(client):
        resp = await client.get("/assets/aapl", headers={"X-Subject-Id": "alice"})
        return resp.status, await resp.json()

    status, body = _run(make_app(), scenario)
    assert status == 200
    assert body["symbol"] == "AAPL"
    assert body["stale"] is False
    assert body["indicators"]["PER"] == 25.0
    assert len(body["history"]["points"]) == 300


def test_asset_errors_map_to_statuses(make_app):
    async def scenario(client):
        invalid = await client.get("/assets/not%20valid")
        unknown = await client.get("/assets/ZZZZ")
        return invalid.status, unknown.status, await unknown.json()

    invalid, unknown, body = _run(make_app(), scenario)
    assert invalid == 400
    assert unknown == 404
    assert body["type"] == "SymbolNotFoundError"


def test_upstream_failure_is_bad_gateway(make_app, provider):
    provider.failing.add("history")

    async def scenario(client):
        resp = await client.get("/assets/MSFT")
        return resp.status

    assert _run(make_app(), scenario) == 502


def test_quota_exhaustion_is_429(make_app, tmp_path):
    config = AppConfig(home_dir=str(tmp_path))
    config.plans.tiers["basico"] = TierConfig(daily_quota=1, requests_per_window=20, max_compare=3)

    async def scenario(client):
        first = await client.get("/assets/AAPL")
        second = await client.get("/assets/MSFT")
        quota = await client.get("/quota")
        return first.status, second.status, await second.json(), await quota.json()

    first, second, body, quota = _run(make_app(config), scenario)
    assert (first, second) == (200, 429)
    assert body["type"] == "QuotaExhaustedError"
    assert quota["calls_made"] == 1
    assert quota["remaining"] == 0
    assert quota["subject_id"] == "global"


def test_rate_limit_sets_retry_after(make_app, tmp_path):
    config = AppConfig(home_dir=str(tmp_path))
    config.plans.tiers["basico"] = TierConfig(daily_quota=10, requests_per_window=1, window="60s")

    async def scenario(client):
        await client.get("/quotes/KO")
        resp = await client.get("/quotes/MSFT")
        return resp.status, resp.headers.get("Retry-After"), await resp.json()

    status, retry_after, body = _run(make_app(config), scenario)
    assert status == 429
    assert retry_after == "60"
    assert body["retry_after_ms"] == pytest.approx(60_000)


def test_quote(make_app):
    async def scenario(client):
        resp = await client.get("/quotes/msft")
        return resp.status, await resp.json()

    status, body = _run(make_app(), scenario)
    assert status == 200
    assert body["symbol"] == "MSFT"
    assert body["changePercentage"] == 1.5


def test_compare(make_app):
    async def scenario(client):
        resp = await client.get("/compare", params={"symbols": "AAPL,msft,ZZZZ"})
        return resp.status, await resp.json()

    status, body = _run(make_app(), scenario)
    assert status == 200
    assert sorted(body["assets"]) == ["AAPL", "MSFT"]
    assert "ZZZZ" in body["errors"]
    assert body["correlation"]["symbols"] == ["AAPL", "MSFT"]
    assert body["correlation"]["values"][0][0] == 1.0
    assert len(body["radar"]["AAPL"]) == 6


def test_compare_requires_symbols_and_respects_tier(make_app):
    async def scenario(client):
        missing = await client.get("/compare")
        too_many = await client.get("/compare", params={"symbols": "A,B,C,D"})
        return missing.status, too_many.status, await too_many.json()

    missing, too_many, body = _run(make_app(), scenario)
    assert missing == 400
    assert too_many == 400
    assert body["type"] == "TooManySymbolsError"


def test_premium_subject_compares_more(make_app):
    store = MemoryQuotaStore()
    store.set_subject_tier("vip", "premium")

    async def scenario(client):
        resp = await client.get(
            "/compare",
            params={"symbols": "AAPL,MSFT,KO,ZZZZ"},
            headers={"X-Subject-Id": "vip"},
        )
        return resp.status, await resp.json()

    status, body = _run(make_app(store=store), scenario)
    assert status == 200
    assert len(body["assets"]) == 3


def test_search(make_app):
    async def scenario(client):
        empty = await client.get("/search", params={"q": " "})
        hits = await client.get("/search", params={"q": "ko"})
        return await empty.json(), hits.status, await hits.json()

    empty, status, hits = _run(make_app(), scenario)
    assert empty == []
    assert status == 200
    assert hits == [{"symbol": "KO", "name": "KO Inc.", "currency": "USD", "exchange": "NASDAQ"}]
