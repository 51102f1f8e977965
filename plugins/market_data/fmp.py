"""Financial Modeling Prep market data provider -- fetches via httpx.

Uses the `stable` REST endpoints. Every payload is returned as decoded JSON;
fields the core does not consume are left untouched.
Example tickers: AAPL, MSFT, KO, SPY
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from core.errors import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://financialmodelingprep.com/stable"


class FMPProvider:
    """Fetches per-symbol payloads from Financial Modeling Prep.

    Implements the MarketDataProvider protocol. Failures are never retried
    here; they surface as UpstreamError with the underlying cause attached.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            logger.warning("FMP API key is empty; upstream calls will be rejected")
        self._api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/",
            timeout=timeout,
            headers={"User-Agent": "TickerLens/0.1"},
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "fmp"

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def profile(self, symbol: str) -> dict | None:
        data = await self._get("profile", symbol=symbol)
        return _first(data)

    async def key_metrics(self, symbol: str) -> dict:
        return _first(await self._get("key-metrics-ttm", symbol=symbol)) or {}

    async def ratios(self, symbol: str) -> dict:
        return _first(await self._get("ratios-ttm", symbol=symbol)) or {}

    async def quote(self, symbol: str) -> dict:
        return _first(await self._get("quote", symbol=symbol)) or {}

    async def history(self, symbol: str) -> Any:
        data = await self._get("historical-price-eod/full", symbol=symbol)
        return data if data is not None else []

    async def price_target(self, symbol: str) -> dict:
        return _first(await self._get("price-target-summary", symbol=symbol)) or {}

    async def search(self, query: str, limit: int = 10) -> list[dict]:
        data = await self._get("search-symbol", query=query, limit=limit)
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict)]

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _get(self, endpoint: str, **params: Any) -> Any:
        """GET one endpoint and decode its JSON body."""
        label = f"{endpoint} {params.get('symbol') or params.get('query') or ''}".strip()
        try:
            response = await self._client.get(endpoint, params={**params, "apikey": self._api_key})
        except httpx.HTTPError as exc:
            logger.warning("FMP request failed for %s: %s", label, exc)
            raise UpstreamError(f"Could not reach market data provider ({label})", cause=exc) from exc

        if response.status_code != 200:
            logger.warning("FMP returned %d for %s", response.status_code, label)
            raise UpstreamError(
                f"Market data provider returned HTTP {response.status_code} ({label})",
                cause=httpx.HTTPStatusError(
                    f"HTTP {response.status_code}", request=response.request, response=response,
                ),
            )

        try:
            data = response.json()
        except ValueError as exc:
            logger.warning("FMP sent invalid JSON for %s", label)
            raise UpstreamError(f"Invalid response from market data provider ({label})", cause=exc) from exc

        if isinstance(data, dict) and "Error Message" in data:
            message = str(data["Error Message"])
            logger.warning("FMP error for %s: %s", label, message)
            raise UpstreamError(f"Market data provider error: {message}")

        return data

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


def _first(data: Any) -> dict | None:
    """FMP wraps single objects in a one-element list."""
    if isinstance(data, list):
        data = data[0] if data else None
    return data if isinstance(data, dict) else None
