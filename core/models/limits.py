"""Gate models -- quota records and rate limit decisions."""

from __future__ import annotations

from pydantic import BaseModel, Field


class QuotaRecord(BaseModel):
    """Daily call budget of one subject.

    `calls_made` counts calls on `date_key` only; a different stored day
    means the count is 0 for today. `limit` is resolved from the subject's
    tier at check time and is not persisted.
    """

    subject_id: str
    date_key: str
    calls_made: int = Field(default=0, ge=0)
    limit: int = 0

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.calls_made)


class QuotaDecision(BaseModel):
    allowed: bool
    record: QuotaRecord


class RateDecision(BaseModel):
    """Outcome of one sliding-window admission check."""

    allowed: bool
    current: int
    limit: int
    retry_after_ms: float = 0.0
    reset_at_ms: float | None = None
