"""Radar normalization -- maps heterogeneous indicator scales onto [0, 1].

Metrics where lower is better are inverted so every axis reads
"further out is better".
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping

from core.models.metrics import RadarScore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RadarRange:
    min: float
    max: float
    lower_is_better: bool = False


DEFAULT_RADAR_RANGES: dict[str, RadarRange] = {
    "netDebtToEBITDA": RadarRange(0, 5, lower_is_better=True),
    "evToEbitda": RadarRange(4, 100, lower_is_better=True),
    "PER": RadarRange(5, 40, lower_is_better=True),
    "beta": RadarRange(0.3, 3.0, lower_is_better=True),
    "roic": RadarRange(0, 50, lower_is_better=False),
    "fcfYield": RadarRange(0, 4, lower_is_better=False),
}


def normalize_for_radar(value: Any, rng: RadarRange) -> float | None:
    """Scale a raw value into [0, 1] for its configured range.

    Missing or non-finite values are absent (None). A degenerate range
    (min == max) scores 0.5. A range with min > max is rejected.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        raw = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(raw):
        return None

    if rng.min > rng.max:
        raise ValueError(f"Radar range min {rng.min} is above max {rng.max}")
    if rng.min == rng.max:
        return 0.5

    clamped = min(rng.max, max(rng.min, raw))
    normalized = (clamped - rng.min) / (rng.max - rng.min)
    if rng.lower_is_better:
        normalized = 1 - normalized
    return normalized


def radar_scores(
    indicators: Mapping[str, float | None],
    ranges: Mapping[str, RadarRange] | None = None,
    labels: Mapping[str, str] | None = None,
) -> list[RadarScore]:
    """Score every configured metric of one asset.

    A malformed range is logged and its score is left absent; the other
    metrics are still scored.
    """
    ranges = ranges if ranges is not None else DEFAULT_RADAR_RANGES
    labels = labels or {}
    scores: list[RadarScore] = []
    for metric, rng in ranges.items():
        raw = indicators.get(metric)
        try:
            value = normalize_for_radar(raw, rng)
        except ValueError:
            logger.warning("Skipping radar metric %s: malformed range %s", metric, rng)
            value = None
        scores.append(RadarScore(
            metric=metric,
            label=labels.get(metric, metric),
            value=value,
            raw=raw if value is not None else None,
        ))
    return scores


def mean_score(scores: list[RadarScore]) -> float | None:
    """Average of the present scores only; absent ones are never counted as 0."""
    present = [s.value for s in scores if s.value is not None]
    if not present:
        return None
    return sum(present) / len(present)
