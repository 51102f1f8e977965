"""TickerLens entrypoint -- wires all components together and starts the server.

Usage:
    python main.py
    python main.py --config /path/to/config.yaml
    python main.py --compare AAPL,MSFT,KO      # one-shot comparison, JSON to stdout
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging

from aiohttp import web

from core.config import AppConfig, load_config
from core.data.store import Store
from core.duration import parse_duration
from core.time_context import TimeContext
from engine.orchestrator import ComparisonOrchestrator
from engine.search import SymbolSearch
from limits.cache import TTLCache
from limits.quota import QuotaGate
from limits.rate_limiter import RateLimiter
from plugins.market_data.fmp import FMPProvider
from server import create_app


def setup_logging(level: str) -> None:
    """Configure logging for the application."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Quiet down noisy libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="TickerLens market analytics service")
    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to config.yaml (default: ~/.tickerlens/config.yaml)",
    )
    parser.add_argument(
        "--env",
        type=str,
        default=None,
        help="Path to .env file (default: ~/.tickerlens/.env)",
    )
    parser.add_argument(
        "--compare",
        type=str,
        default=None,
        help="Comma-separated tickers: print one comparison as JSON and exit",
    )
    parser.add_argument(
        "--subject",
        type=str,
        default=None,
        help="Subject id charged for --compare (default: global)",
    )
    return parser.parse_args()


class Services:
    """Everything built from one AppConfig, with a single shutdown path."""

    def __init__(self, config: AppConfig) -> None:
        self.config = config
        self.time_context = TimeContext.now()
        self.store = Store(config.home_path)
        self.provider = FMPProvider(
            api_key=config.provider.api_key,
            base_url=config.provider.base_url,
            timeout=parse_duration(config.provider.timeout).total_seconds(),
        )
        self.cache = TTLCache(config.cache.ttl_ms, time_context=self.time_context)
        self.rate_limiter = RateLimiter(time_context=self.time_context)
        self.quota_gate = QuotaGate(
            self.store,
            time_context=self.time_context,
            timezone=config.quota.timezone,
        )
        self.orchestrator = ComparisonOrchestrator(
            config=config,
            provider=self.provider,
            store=self.store,
            snapshots=self.store,
            quota_gate=self.quota_gate,
            cache=self.cache,
            rate_limiter=self.rate_limiter,
        )
        self.search = SymbolSearch(
            self.provider,
            self.cache,
            ttl_ms=config.cache.ttl_for("search"),
        )

    async def start(self) -> None:
        if self.config.cache.sweep:
            await self.cache.start()

    async def close(self) -> None:
        logger = logging.getLogger("tickerlens")
        self.search.cancel()
        await self.cache.stop()
        try:
            await self.provider.close()
        except Exception as e:
            logger.error("Error closing provider %s: %s", self.provider.name, e)
        self.store.close()


async def compare_once(config: AppConfig, symbols: list[str], subject: str | None) -> dict:
    """Run a single comparison and return it as plain JSON data."""
    services = Services(config)
    try:
        result = await services.orchestrator.compare(symbols, subject)
        return result.model_dump(mode="json")
    finally:
        await services.close()


async def run(config: AppConfig) -> None:
    """Initialize all components and start the server."""
    logger = logging.getLogger("tickerlens")
    logger.info("Configuration loaded from %s", config.home_path)

    services = Services(config)
    app = create_app(
        config=config,
        orchestrator=services.orchestrator,
        search=services.search,
        cache=services.cache,
    )

    await services.start()

    # Start server
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, config.server.host, config.server.port)
    await site.start()

    logger.info(
        "TickerLens running at http://%s:%d",
        config.server.host,
        config.server.port,
    )
    logger.info("State directory: %s", config.home_path)

    # Run until interrupted
    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    finally:
        logger.info("Shutting down...")
        await runner.cleanup()
        await services.close()
        logger.info("Shutdown complete")


def main() -> None:
    args = parse_args()
    setup_logging("INFO")
    config = load_config(config_path=args.config, env_path=args.env)
    logging.getLogger().setLevel(getattr(logging, config.logging.level.upper(), logging.INFO))

    try:
        if args.compare:
            symbols = [s.strip() for s in args.compare.split(",") if s.strip()]
            result = asyncio.run(compare_once(config, symbols, args.subject))
            print(json.dumps(result, indent=2))
        else:
            asyncio.run(run(config))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
