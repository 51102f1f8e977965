import asyncio

from engine.search import SymbolSearch
from limits.cache import TTLCache


def test_search_maps_matches_and_caches(provider, clock):
    search = SymbolSearch(provider, TTLCache(60_000, time_context=clock))

    async def scenario():
        first = await search.search("aa")
        second = await search.search("AA ")
        return first, second

    first, second = asyncio.run(scenario())
    assert [m.symbol for m in first] == ["AAPL"]
    assert first[0].name == "AAPL Inc."
    assert first[0].exchange == "NASDAQ"
    assert second == first
    assert provider.calls_for("search") == ["aa"]


def test_empty_query_skips_upstream(provider, clock):
    search = SymbolSearch(provider, TTLCache(60_000, time_context=clock))

    assert asyncio.run(search.search("   ")) == []
    assert provider.calls == []


def test_submit_debounces_keystrokes(provider, clock):
    search = SymbolSearch(provider, TTLCache(60_000, time_context=clock), debounce_ms=20)

    async def scenario():
        handles = [search.submit(q) for q in ("M", "MS", "MSF")]
        return [await h.wait() for h in handles]

    results = asyncio.run(scenario())
    assert results[0] is None and results[1] is None
    assert [m.symbol for m in results[2]] == ["MSFT"]
    assert provider.calls_for("search") == ["MSF"]


def test_rows_without_symbol_are_skipped(clock):
    class Upstream:
        async def search(self, query, limit=10):
            return [{"name": "no symbol"}, {"symbol": "SPY", "exchangeFullName": "NYSE Arca"}]

    search = SymbolSearch(Upstream(), TTLCache(60_000, time_context=clock))
    matches = asyncio.run(search.search("spy"))

    assert [(m.symbol, m.name, m.exchange) for m in matches] == [("SPY", "", "NYSE Arca")]
