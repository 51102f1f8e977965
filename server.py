"""Lightweight aiohttp server -- the HTTP API over the analytics core.

Rendering and export collaborators read asset records, comparisons, quota
status and symbol search results from here. The calling subject is taken
from the X-Subject-Id header; authenticating it is somebody else's job.
No framework magic, no middleware stack.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from aiohttp import web

from core.errors import (
    InvalidTickerError,
    LimitError,
    RateLimitExceededError,
    SymbolNotFoundError,
    TickerLensError,
    TooManySymbolsError,
    UpstreamError,
)

if TYPE_CHECKING:
    from core.config import AppConfig
    from engine.orchestrator import ComparisonOrchestrator
    from engine.search import SymbolSearch
    from limits.cache import TTLCache

logger = logging.getLogger(__name__)

SUBJECT_HEADER = "X-Subject-Id"


def create_app(
    config: AppConfig,
    orchestrator: ComparisonOrchestrator,
    search: SymbolSearch,
    cache: TTLCache,
) -> web.Application:
    """Create and configure the aiohttp application."""
    app = web.Application()

    # Store references for route handlers
    app["config"] = config
    app["orchestrator"] = orchestrator
    app["search"] = search
    app["cache"] = cache

    # Register routes
    app.router.add_get("/health", handle_health)
    app.router.add_get("/assets/{symbol}", handle_get_asset)
    app.router.add_get("/quotes/{symbol}", handle_get_quote)
    app.router.add_get("/compare", handle_compare)
    app.router.add_get("/quota", handle_get_quota)
    app.router.add_get("/search", handle_search)

    return app


def _subject(request: web.Request) -> str | None:
    return request.headers.get(SUBJECT_HEADER) or None


def _error_response(exc: TickerLensError) -> web.Response:
    """Map the error taxonomy onto HTTP statuses."""
    body: dict = {"error": str(exc), "type": type(exc).__name__}
    headers: dict[str, str] = {}

    if isinstance(exc, (InvalidTickerError, TooManySymbolsError)):
        status = 400
    elif isinstance(exc, SymbolNotFoundError):
        status = 404
    elif isinstance(exc, LimitError):
        status = 429
        if isinstance(exc, RateLimitExceededError):
            retry_after = max(1, math.ceil(exc.retry_after_ms / 1000))
            headers["Retry-After"] = str(retry_after)
            body["retry_after_ms"] = exc.retry_after_ms
    elif isinstance(exc, UpstreamError):
        status = 502
    else:
        status = 500

    return web.json_response(body, status=status, headers=headers)


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------

async def handle_health(request: web.Request) -> web.Response:
    """GET /health -- health check."""
    cache: TTLCache = request.app["cache"]
    return web.json_response({
        "status": "ok",
        "cache": {"entries": len(cache), "hits": cache.hits, "misses": cache.misses},
    })


async def handle_get_asset(request: web.Request) -> web.Response:
    """GET /assets/{symbol}[?refresh=1] -- the full processed record of one asset."""
    orchestrator: ComparisonOrchestrator = request.app["orchestrator"]
    symbol = request.match_info["symbol"]
    refresh = request.query.get("refresh", "").lower() in ("1", "true", "yes")

    try:
        record = await orchestrator.get_asset(symbol, _subject(request), force_refresh=refresh)
    except TickerLensError as exc:
        return _error_response(exc)

    return web.json_response(record.model_dump(mode="json"))


async def handle_get_quote(request: web.Request) -> web.Response:
    """GET /quotes/{symbol} -- live quote, short-lived cache, no quota spent."""
    orchestrator: ComparisonOrchestrator = request.app["orchestrator"]

    try:
        quote = await orchestrator.get_quote(request.match_info["symbol"], _subject(request))
    except TickerLensError as exc:
        return _error_response(exc)

    return web.json_response(quote)


async def handle_compare(request: web.Request) -> web.Response:
    """GET /compare?symbols=AAPL,MSFT -- multi-asset comparison.

    Per-symbol failures are reported in `errors`; the request still succeeds.
    """
    orchestrator: ComparisonOrchestrator = request.app["orchestrator"]

    raw = request.query.get("symbols", "")
    symbols = [s.strip() for s in raw.split(",") if s.strip()]
    if not symbols:
        return web.json_response({"error": "Missing query parameter: symbols"}, status=400)

    try:
        result = await orchestrator.compare(symbols, _subject(request))
    except TickerLensError as exc:
        return _error_response(exc)

    return web.json_response(result.model_dump(mode="json"))


async def handle_get_quota(request: web.Request) -> web.Response:
    """GET /quota -- today's quota usage of the calling subject."""
    orchestrator: ComparisonOrchestrator = request.app["orchestrator"]
    record = orchestrator.quota_status(_subject(request))
    body = record.model_dump(mode="json")
    body["remaining"] = record.remaining
    return web.json_response(body)


async def handle_search(request: web.Request) -> web.Response:
    """GET /search?q=apple -- symbol search by ticker or company name."""
    orchestrator: ComparisonOrchestrator = request.app["orchestrator"]
    search: SymbolSearch = request.app["search"]

    query = request.query.get("q", "").strip()
    if not query:
        return web.json_response([])

    try:
        matches = await orchestrator.run_limited(
            _subject(request), "search", lambda: search.search(query),
        )
    except TickerLensError as exc:
        return _error_response(exc)

    return web.json_response([m.model_dump(mode="json") for m in matches])
