"""Core protocols -- the extension points between the core and its collaborators.

The core imports these protocols. Plugins and stores implement them.
The core NEVER imports concrete implementations.

All protocols use Python's structural subtyping (typing.Protocol):
if your class has the right methods, it implements the protocol.
No inheritance required.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


# ---------------------------------------------------------------------------
# 1. MarketDataProvider -- the metered upstream data source
# ---------------------------------------------------------------------------

@runtime_checkable
class MarketDataProvider(Protocol):
    """Fetches raw per-symbol JSON payloads.

    Payloads are returned as decoded JSON; the core only reads the fields
    it needs and treats anything missing as unavailable. Network, HTTP and
    decoding failures surface as UpstreamError. No retries at this layer.
    """

    @property
    def name(self) -> str:
        """Unique provider name, e.g. 'fmp'."""
        ...

    async def profile(self, symbol: str) -> dict | None:
        """Company profile, or None when the symbol is unknown."""
        ...

    async def key_metrics(self, symbol: str) -> dict:
        """Trailing-twelve-month key metrics."""
        ...

    async def ratios(self, symbol: str) -> dict:
        """Trailing-twelve-month financial ratios."""
        ...

    async def quote(self, symbol: str) -> dict:
        """Live quote."""
        ...

    async def history(self, symbol: str) -> Any:
        """Full daily end-of-day price history (list or {'historical': [...]})."""
        ...

    async def price_target(self, symbol: str) -> dict:
        """Analyst price target summary."""
        ...

    async def search(self, query: str, limit: int = 10) -> list[dict]:
        """Symbol search by ticker or company name."""
        ...

    async def close(self) -> None:
        ...


# ---------------------------------------------------------------------------
# 2. QuotaStore -- persisted daily counters
# ---------------------------------------------------------------------------

@runtime_checkable
class QuotaStore(Protocol):
    """Storage behind the QuotaGate.

    `increment_quota_if_below` must be atomic: it resets the count when the
    stored day differs, refuses when the count has reached the limit, and
    otherwise increments, all in one step.
    """

    def get_quota(self, subject_id: str) -> tuple[str, int] | None:
        """Stored (date_key, calls_made) of a subject, or None if never seen."""
        ...

    def increment_quota_if_below(self, subject_id: str, date_key: str, limit: int) -> tuple[bool, int]:
        """Returns (allowed, calls_made on date_key after the operation)."""
        ...

    def get_subject_tier(self, subject_id: str) -> str | None:
        ...


# ---------------------------------------------------------------------------
# 3. SnapshotStore -- last good record per symbol
# ---------------------------------------------------------------------------

@runtime_checkable
class SnapshotStore(Protocol):
    """Keeps the last successfully processed record of each symbol, so a
    stale copy can be served when the upstream or the quota says no."""

    def save_snapshot(self, symbol: str, data: dict) -> None:
        ...

    def load_snapshot(self, symbol: str) -> dict | None:
        ...
