"""Quota gate -- per-subject, per-day budget of expensive upstream fetches.

The day key is computed in one reference timezone, so every caller rolls
over at the same instant. Consumption is a single atomic
increment-if-below operation at the store, never read-then-write.
"""

from __future__ import annotations

import logging
import threading

from core.errors import QuotaExhaustedError
from core.models.limits import QuotaDecision, QuotaRecord
from core.protocols import QuotaStore
from core.time_context import TimeContext

logger = logging.getLogger(__name__)


class MemoryQuotaStore:
    """In-process QuotaStore for tests and single-process deployments."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: dict[str, tuple[str, int]] = {}
        self._tiers: dict[str, str] = {}

    def get_quota(self, subject_id: str) -> tuple[str, int] | None:
        with self._lock:
            return self._rows.get(subject_id)

    def increment_quota_if_below(self, subject_id: str, date_key: str, limit: int) -> tuple[bool, int]:
        with self._lock:
            stored_day, count = self._rows.get(subject_id, (date_key, 0))
            if stored_day != date_key:
                count = 0
            if count >= limit:
                return False, count
            count += 1
            self._rows[subject_id] = (date_key, count)
            return True, count

    def get_subject_tier(self, subject_id: str) -> str | None:
        return self._tiers.get(subject_id)

    def set_subject_tier(self, subject_id: str, tier: str) -> None:
        self._tiers[subject_id] = tier


class QuotaGate:
    """Enforces the daily call budget before any expensive fetch."""

    def __init__(
        self,
        store: QuotaStore,
        time_context: TimeContext | None = None,
        timezone: str = "UTC",
    ) -> None:
        self._store = store
        self._time = time_context or TimeContext.now()
        self._timezone = timezone

    def today_key(self) -> str:
        return self._time.day_key(self._timezone)

    def status(self, subject_id: str, limit: int) -> QuotaRecord:
        """Today's usage of a subject, without consuming anything."""
        today = self.today_key()
        stored = self._store.get_quota(subject_id)
        calls = 0
        if stored is not None:
            stored_day, stored_calls = stored
            # A different stored day means nothing was spent today
            if stored_day == today:
                calls = stored_calls
        return QuotaRecord(subject_id=subject_id, date_key=today, calls_made=calls, limit=limit)

    def remaining(self, subject_id: str, limit: int) -> int:
        return self.status(subject_id, limit).remaining

    def try_consume(self, subject_id: str, limit: int) -> QuotaDecision:
        """Spend one call if the subject is below `limit` today."""
        today = self.today_key()
        allowed, calls = self._store.increment_quota_if_below(subject_id, today, limit)
        record = QuotaRecord(subject_id=subject_id, date_key=today, calls_made=calls, limit=limit)
        if allowed:
            logger.debug("Quota %s: %d/%d on %s", subject_id, calls, limit, today)
        else:
            logger.warning("Quota exhausted for %s (%d/%d on %s)", subject_id, calls, limit, today)
        return QuotaDecision(allowed=allowed, record=record)

    def consume(self, subject_id: str, limit: int) -> QuotaRecord:
        """Like try_consume, but raises QuotaExhaustedError on denial."""
        decision = self.try_consume(subject_id, limit)
        if not decision.allowed:
            raise QuotaExhaustedError(subject_id, limit, decision.record.date_key)
        return decision.record
