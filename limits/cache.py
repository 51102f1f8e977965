"""TTL cache -- short-lived in-memory memoization of upstream fetches.

Keys are deterministic signatures of (operation, params). Failures are
cached like successes so a failing upstream is not hammered. Concurrent
callers of the same key share one producer call.

The cache is an explicit instance with its own lifecycle:

    cache = TTLCache(ttl_ms=300_000)
    await cache.start()   # background sweep every ttl
    ...
    await cache.stop()
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from core.time_context import TimeContext

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """One stored outcome: a value or an error, stamped with its write time."""

    key: str
    value: Any = None
    error: BaseException | None = None
    timestamp_ms: float = 0.0
    ttl_ms: int = 0


class TTLCache:
    """Time-to-live cache with in-flight de-duplication and a background sweep."""

    def __init__(
        self,
        ttl_ms: int,
        time_context: TimeContext | None = None,
        sweep_interval_ms: int | None = None,
    ) -> None:
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be positive")
        self._ttl_ms = ttl_ms
        self._time = time_context or TimeContext.now()
        self._sweep_interval_ms = sweep_interval_ms or ttl_ms
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Future] = {}
        self._running = False
        self._task: asyncio.Task | None = None
        self.hits = 0
        self.misses = 0

    @property
    def ttl_ms(self) -> int:
        return self._ttl_ms

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    @staticmethod
    def make_key(operation: str, params: dict | None = None) -> str:
        """Deterministic signature of an operation and its parameters."""
        payload = json.dumps(params or {}, sort_keys=True, default=str, separators=(",", ":"))
        return f"{operation}:{payload}"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def is_fresh(self, entry: CacheEntry) -> bool:
        return self._time.now_ms() - entry.timestamp_ms < entry.ttl_ms

    def peek(self, key: str) -> CacheEntry | None:
        """The entry for `key` if it is still fresh, without invoking anything."""
        entry = self._entries.get(key)
        if entry is None or not self.is_fresh(entry):
            return None
        return entry

    async def get(
        self,
        key: str,
        producer: Callable[[], Awaitable[Any]],
        force_refresh: bool = False,
        ttl_ms: int | None = None,
    ) -> Any:
        """Return the cached outcome for `key`, producing it on a miss.

        A cached error is re-raised. `force_refresh` skips the freshness
        check but still writes the new outcome through.
        """
        if not force_refresh:
            entry = self.peek(key)
            if entry is not None:
                self.hits += 1
                logger.debug("Cache hit: %s", key)
                if entry.error is not None:
                    raise entry.error
                return entry.value

            pending = self._inflight.get(key)
            if pending is not None:
                logger.debug("Joining in-flight fetch: %s", key)
                return await asyncio.shield(pending)

        self.misses += 1
        logger.debug("Cache miss: %s (force_refresh=%s)", key, force_refresh)
        return await self._produce(key, producer, ttl_ms or self._ttl_ms)

    async def _produce(
        self,
        key: str,
        producer: Callable[[], Awaitable[Any]],
        ttl_ms: int,
    ) -> Any:
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            value = await producer()
        except Exception as exc:
            self._store(key, error=exc, ttl_ms=ttl_ms)
            future.set_exception(exc)
            future.exception()  # mark retrieved when nobody else is waiting
            raise
        except BaseException:
            future.cancel()
            raise
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]

        self._store(key, value=value, ttl_ms=ttl_ms)
        future.set_result(value)
        return value

    def _store(
        self,
        key: str,
        value: Any = None,
        error: BaseException | None = None,
        ttl_ms: int | None = None,
    ) -> None:
        # Entries are superseded, never merged
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            error=error,
            timestamp_ms=self._time.now_ms(),
            ttl_ms=ttl_ms or self._ttl_ms,
        )

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        """Evict entries older than twice their TTL. Returns the eviction count."""
        now = self._time.now_ms()
        expired = [
            key for key, entry in self._entries.items()
            if now - entry.timestamp_ms >= 2 * entry.ttl_ms
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info("Cache sweep evicted %d entries (%d left)", len(expired), len(self._entries))
        return len(expired)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the background sweep loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Cache sweep started (every %dms)", self._sweep_interval_ms)

    async def stop(self) -> None:
        """Stop the sweep loop and drop every entry."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.clear()
        logger.info("Cache stopped")

    async def _loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._sweep_interval_ms / 1000)
            try:
                self.sweep()
            except Exception:
                logger.exception("Error in cache sweep")
