"""Comparison orchestrator -- the gated fetch path from ticker to analytics.

For one asset:
1. Validate the ticker
2. Serve a fresh cached record without spending quota
3. Spend one daily quota call (tier limit)
4. Pass the sliding-window rate limiter (tier window, bypass tiers skip it)
5. Fetch every upstream payload concurrently and process them (TTL cached)
6. Persist the record as the symbol's last good snapshot

When the quota is exhausted or the upstream fails, the last snapshot is
served marked stale (if enabled). For a comparison, all assets are fetched
concurrently, failures are collected per symbol, and the survivors feed
the correlation matrix and radar scores.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Awaitable, Callable

from analytics.correlation import correlation_matrix
from analytics.indicators import INDICATORS
from analytics.radar import RadarRange, radar_scores
from core.config import AppConfig, TierConfig
from core.errors import (
    InvalidTickerError,
    QuotaExhaustedError,
    SymbolNotFoundError,
    TickerLensError,
    TooManySymbolsError,
    UpstreamError,
)
from core.models.asset import AssetRecord, ComparisonResult
from core.models.limits import QuotaRecord
from core.protocols import MarketDataProvider, QuotaStore, SnapshotStore
from engine.processor import AssetProcessor, RawAssetPayloads
from limits.cache import TTLCache
from limits.quota import QuotaGate
from limits.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

# Letters, digits and the separators used by share classes, indices and FX
_TICKER_RE = re.compile(r"^[A-Z0-9^][A-Z0-9.\-=^]{0,19}$")

GLOBAL_SUBJECT = "global"


def normalize_ticker(symbol: str) -> str:
    """Upper-case and validate a ticker symbol."""
    cleaned = (symbol or "").strip().upper()
    if not _TICKER_RE.match(cleaned):
        raise InvalidTickerError(symbol)
    return cleaned


class ComparisonOrchestrator:
    """Runs the quota -> rate limit -> cache -> fetch -> analytics path."""

    def __init__(
        self,
        config: AppConfig,
        provider: MarketDataProvider,
        store: QuotaStore,
        snapshots: SnapshotStore | None,
        quota_gate: QuotaGate,
        cache: TTLCache,
        rate_limiter: RateLimiter,
        processor: AssetProcessor | None = None,
    ) -> None:
        self._config = config
        self._provider = provider
        self._store = store
        self._snapshots = snapshots
        self._quota = quota_gate
        self._cache = cache
        self._limiter = rate_limiter
        self._processor = processor or AssetProcessor(
            trading_days=config.analytics.trading_days,
            risk_free_rate=config.analytics.risk_free_rate,
            std_dev_window=config.analytics.std_dev_window,
        )
        self._radar_ranges = {
            key: RadarRange(r.min, r.max, r.lower_is_better)
            for key, r in config.analytics.radar_ranges.items()
        }
        self._radar_labels = {
            key: INDICATORS[key].label for key in self._radar_ranges if key in INDICATORS
        }

    # ------------------------------------------------------------------
    # Subjects and limits
    # ------------------------------------------------------------------

    def resolve_tier(self, subject_id: str | None) -> tuple[str, TierConfig]:
        """Tier name and limits of a subject, looked up at every check."""
        plans = self._config.plans
        name = self._store.get_subject_tier(subject_id) if subject_id else None
        name = name or plans.default_tier
        return name, plans.tier(name)

    def quota_status(self, subject_id: str | None) -> QuotaRecord:
        _, tier = self.resolve_tier(subject_id)
        return self._quota.status(subject_id or GLOBAL_SUBJECT, tier.daily_quota)

    async def run_limited(
        self,
        subject_id: str | None,
        category: str,
        fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Run `fn` under the subject's sliding window for `category`."""
        tier_name, tier = self.resolve_tier(subject_id)
        rl = self._config.rate_limits
        return await self._limiter.run(
            RateLimiter.scope_key(subject_id, category),
            fn,
            limit=tier.requests_per_window,
            window_ms=tier.window_ms,
            bypass=tier_name in self._config.plans.bypass_tiers,
            retry_on_limit=rl.retry_on_limit,
            max_retries=rl.max_retries,
            backoff=rl.backoff,
        )

    # ------------------------------------------------------------------
    # Single asset
    # ------------------------------------------------------------------

    async def get_asset(
        self,
        symbol: str,
        subject_id: str | None = None,
        force_refresh: bool = False,
    ) -> AssetRecord:
        """The processed record of one asset, gated by quota and rate limit."""
        symbol = normalize_ticker(symbol)
        key = TTLCache.make_key("asset", {"symbol": symbol})

        _, tier = self.resolve_tier(subject_id)
        try:
            if not force_refresh:
                entry = self._cache.peek(key)
                if entry is not None:
                    logger.debug("Serving %s from cache without spending quota", symbol)
                    if entry.error is not None:
                        raise entry.error
                    return entry.value

            self._quota.consume(subject_id or GLOBAL_SUBJECT, tier.daily_quota)
            return await self.run_limited(
                subject_id,
                self._config.rate_limits.category,
                lambda: self._cache.get(
                    key,
                    lambda: self._fetch_and_process(symbol),
                    force_refresh=force_refresh,
                    ttl_ms=self._config.cache.ttl_for("asset"),
                ),
            )
        except SymbolNotFoundError:
            raise
        except (QuotaExhaustedError, UpstreamError) as exc:
            stale = self._stale_snapshot(symbol)
            if stale is None:
                raise
            logger.warning("Serving stale snapshot of %s: %s", symbol, exc)
            return stale

    async def get_quote(self, symbol: str, subject_id: str | None = None) -> dict:
        """Live quote only; short TTL, rate limited, no quota spent."""
        symbol = normalize_ticker(symbol)
        key = TTLCache.make_key("quote", {"symbol": symbol})
        return await self.run_limited(
            subject_id,
            "real-time",
            lambda: self._cache.get(
                key,
                lambda: self._provider.quote(symbol),
                ttl_ms=self._config.cache.ttl_for("quote"),
            ),
        )

    async def _fetch_and_process(self, symbol: str) -> AssetRecord:
        # Any failing call aborts the whole asset; the others are left to finish
        profile, key_metrics, ratios, quote, history, price_target = await asyncio.gather(
            self._provider.profile(symbol),
            self._provider.key_metrics(symbol),
            self._provider.ratios(symbol),
            self._provider.quote(symbol),
            self._provider.history(symbol),
            self._provider.price_target(symbol),
        )
        record = self._processor.process(symbol, RawAssetPayloads(
            profile=profile,
            key_metrics=key_metrics,
            ratios=ratios,
            quote=quote,
            history=history,
            price_target=price_target,
        ))
        logger.info("Processed %s (%d price points)", symbol, len(record.history))
        self._save_snapshot(record)
        return record

    def _save_snapshot(self, record: AssetRecord) -> None:
        if self._snapshots is None:
            return
        try:
            self._snapshots.save_snapshot(record.symbol, record.model_dump(mode="json"))
        except Exception:
            logger.exception("Failed to save snapshot of %s", record.symbol)

    def _stale_snapshot(self, symbol: str) -> AssetRecord | None:
        if not self._config.serve_stale_on_failure or self._snapshots is None:
            return None
        data = self._snapshots.load_snapshot(symbol)
        if data is None:
            return None
        try:
            record = AssetRecord.model_validate(data)
        except ValueError:
            logger.exception("Unreadable snapshot for %s", symbol)
            return None
        return record.model_copy(update={"stale": True})

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    async def compare(self, symbols: list[str], subject_id: str | None = None) -> ComparisonResult:
        """Fetch several assets concurrently and compare the ones that succeed."""
        errors: dict[str, str] = {}
        unique: list[str] = []
        for raw in symbols:
            try:
                symbol = normalize_ticker(raw)
            except InvalidTickerError as exc:
                errors[str(raw)] = str(exc)
                continue
            if symbol not in unique:
                unique.append(symbol)

        _, tier = self.resolve_tier(subject_id)
        if len(unique) > tier.max_compare:
            raise TooManySymbolsError(len(unique), tier.max_compare)

        outcomes = await asyncio.gather(
            *(self.get_asset(symbol, subject_id) for symbol in unique),
            return_exceptions=True,
        )

        assets: dict[str, AssetRecord] = {}
        for symbol, outcome in zip(unique, outcomes):
            if isinstance(outcome, AssetRecord):
                assets[symbol] = outcome
            elif isinstance(outcome, TickerLensError):
                logger.warning("Comparison skipped %s: %s", symbol, outcome)
                errors[symbol] = str(outcome)
            elif isinstance(outcome, Exception):
                logger.error("Unexpected failure for %s", symbol, exc_info=outcome)
                errors[symbol] = "Internal error"
            else:
                raise outcome

        analytics = self._config.analytics
        correlation = correlation_matrix(
            [asset.returns.model_copy(update={"symbol": symbol}) for symbol, asset in assets.items()],
            alignment=analytics.correlation_alignment,
            min_overlap=analytics.min_correlation_overlap,
        )
        radar = {
            symbol: radar_scores(asset.indicators, self._radar_ranges, self._radar_labels)
            for symbol, asset in assets.items()
        }
        return ComparisonResult(assets=assets, errors=errors, correlation=correlation, radar=radar)
