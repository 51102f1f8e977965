"""TimeContext -- the single source of 'now' for limits, caches and quotas.

In production mode, the current time is always the real wall clock.
In simulation mode, time is frozen at a given instant and only moves when
advanced explicitly, which makes TTL expiry, sliding windows and quota
day roll-over deterministic.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Literal
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field


class TimeContext(BaseModel):
    """Controls what time the gate components see."""

    current_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    mode: Literal["production", "simulation"] = "production"

    @classmethod
    def now(cls) -> TimeContext:
        """Create a production-mode TimeContext backed by the real clock."""
        return cls(mode="production")

    @classmethod
    def at(cls, dt: datetime) -> TimeContext:
        """Create a simulation-mode TimeContext frozen at `dt` (naive values are UTC)."""
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return cls(current_time=dt, mode="simulation")

    @property
    def is_simulation(self) -> bool:
        return self.mode == "simulation"

    def current(self) -> datetime:
        """Return the current instant as an aware UTC datetime."""
        if self.is_simulation:
            return self.current_time
        return datetime.now(timezone.utc)

    def now_ms(self) -> float:
        """Current time in epoch milliseconds."""
        return self.current().timestamp() * 1000.0

    def day_key(self, tz_name: str = "UTC") -> str:
        """Calendar day (YYYY-MM-DD) of the current instant in the given timezone."""
        return self.current().astimezone(ZoneInfo(tz_name)).strftime("%Y-%m-%d")

    def advance(self, ms: float) -> None:
        """Move simulated time forward by `ms` milliseconds."""
        if not self.is_simulation:
            raise RuntimeError("Cannot advance time in production mode")
        self.current_time = self.current_time + timedelta(milliseconds=ms)
