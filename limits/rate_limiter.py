"""Sliding-window rate limiter -- admission control independent of quota.

Each scope key ("<subject or global>:<category>") keeps the timestamps of
its admitted requests inside the trailing window. Entries at or before
`now - window` are pruned before every check.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Literal

from core.errors import RateLimitExceededError
from core.models.limits import RateDecision
from core.time_context import TimeContext

logger = logging.getLogger(__name__)

Backoff = Literal["fixed", "exponential"]


class RateLimiter:
    """In-process sliding-window limiter shared by every request of the process."""

    def __init__(
        self,
        time_context: TimeContext | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._time = time_context or TimeContext.now()
        self._sleep = sleep
        self._windows: dict[str, deque[float]] = {}

    def __len__(self) -> int:
        """Scopes with requests still inside their window."""
        return len(self._windows)

    @staticmethod
    def scope_key(subject_id: str | None, category: str) -> str:
        return f"{subject_id or 'global'}:{category}"

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def _prune(self, key: str, window_ms: float, now: float) -> deque[float]:
        window = self._windows.get(key)
        if window is None:
            return deque()
        cutoff = now - window_ms
        while window and window[0] <= cutoff:
            window.popleft()
        if not window:
            del self._windows[key]
        return window

    def _decision(self, window: deque[float], limit: int, window_ms: float, now: float) -> RateDecision:
        current = len(window)
        if current < limit:
            return RateDecision(
                allowed=True,
                current=current,
                limit=limit,
                reset_at_ms=window[0] + window_ms if window else None,
            )
        oldest = window[0] if window else now
        return RateDecision(
            allowed=False,
            current=current,
            limit=limit,
            retry_after_ms=max(0.0, oldest + window_ms - now),
            reset_at_ms=oldest + window_ms,
        )

    def check(self, key: str, limit: int, window_ms: float) -> RateDecision:
        """Would a request be admitted right now? Reserves nothing."""
        now = self._time.now_ms()
        window = self._prune(key, window_ms, now)
        return self._decision(window, limit, window_ms, now)

    def check_and_reserve(self, key: str, limit: int, window_ms: float) -> RateDecision:
        """Admit and record a request, or deny it with the time until a slot frees up."""
        now = self._time.now_ms()
        window = self._prune(key, window_ms, now)
        decision = self._decision(window, limit, window_ms, now)
        if decision.allowed:
            window.append(now)
            self._windows[key] = window
            decision = decision.model_copy(update={
                "current": len(window),
                "reset_at_ms": window[0] + window_ms,
            })
        else:
            logger.warning(
                "Rate limit hit for %s (%d/%d), retry in %.0fms",
                key, decision.current, limit, decision.retry_after_ms,
            )
        return decision

    async def run(
        self,
        key: str,
        fn: Callable[[], Awaitable[Any]],
        limit: int,
        window_ms: float,
        bypass: bool = False,
        retry_on_limit: bool = False,
        max_retries: int = 3,
        backoff: Backoff = "fixed",
    ) -> Any:
        """Run `fn` once the scope admits it.

        With `retry_on_limit`, a denial waits out the retry delay (fixed, or
        doubled on each attempt) up to `max_retries` times before giving up
        with RateLimitExceededError.
        """
        if bypass:
            return await fn()

        attempt = 0
        while True:
            decision = self.check_and_reserve(key, limit, window_ms)
            if decision.allowed:
                return await fn()

            if not retry_on_limit or attempt >= max_retries:
                raise RateLimitExceededError(key, limit, int(window_ms), decision.retry_after_ms)

            delay_ms = decision.retry_after_ms
            if backoff == "exponential":
                delay_ms *= 2 ** attempt
            attempt += 1
            logger.info("Retrying %s in %.0fms (attempt %d/%d)", key, delay_ms, attempt, max_retries)
            await self._sleep(delay_ms / 1000)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def remaining(self, key: str, limit: int, window_ms: float) -> int:
        decision = self.check(key, limit, window_ms)
        return max(0, limit - decision.current)

    def time_until_reset(self, key: str, window_ms: float) -> float:
        """Milliseconds until the oldest recorded request leaves the window."""
        now = self._time.now_ms()
        window = self._prune(key, window_ms, now)
        if not window:
            return 0.0
        return max(0.0, window[0] + window_ms - now)

    def is_near_limit(self, key: str, limit: int, window_ms: float, threshold: float = 0.1) -> bool:
        """True when at most `threshold` of the budget is left."""
        if limit <= 0:
            return True
        return self.remaining(key, limit, window_ms) <= limit * threshold

    def reset(self, key: str | None = None) -> None:
        """Forget one scope, or every scope when no key is given."""
        if key is None:
            self._windows.clear()
        else:
            self._windows.pop(key, None)
