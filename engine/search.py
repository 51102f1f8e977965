"""Symbol search -- cached upstream lookups with a debounced type-ahead entry point."""

from __future__ import annotations

import logging

from core.models.asset import SymbolMatch
from core.protocols import MarketDataProvider
from limits.cache import TTLCache
from limits.debounce import Debouncer, TaskHandle

logger = logging.getLogger(__name__)


class SymbolSearch:
    """Looks up tickers by symbol or company name.

    `search()` answers immediately (through the cache); `submit()` is for
    keystroke-driven callers: only the last query of a burst reaches the
    upstream, earlier handles resolve to None.
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        cache: TTLCache,
        ttl_ms: int | None = None,
        limit: int = 10,
        debounce_ms: int = 300,
    ) -> None:
        self._provider = provider
        self._cache = cache
        self._ttl_ms = ttl_ms
        self._limit = limit
        self._debouncer = Debouncer(debounce_ms)

    async def search(self, query: str) -> list[SymbolMatch]:
        query = (query or "").strip()
        if not query:
            return []

        key = TTLCache.make_key("search", {"query": query.upper(), "limit": self._limit})
        return await self._cache.get(key, lambda: self._lookup(query), ttl_ms=self._ttl_ms)

    def submit(self, query: str) -> TaskHandle:
        """Debounced search; supersedes whatever was submitted before."""
        return self._debouncer.schedule(self.search, query)

    def cancel(self) -> None:
        self._debouncer.cancel()

    async def _lookup(self, query: str) -> list[SymbolMatch]:
        rows = await self._provider.search(query, limit=self._limit)
        matches = []
        for row in rows:
            symbol = row.get("symbol")
            if not symbol:
                continue
            matches.append(SymbolMatch(
                symbol=str(symbol),
                name=str(row.get("name") or ""),
                currency=row.get("currency"),
                exchange=row.get("exchangeFullName") or row.get("exchange"),
            ))
        logger.debug("Search %r returned %d matches", query, len(matches))
        return matches
