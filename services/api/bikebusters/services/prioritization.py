"""Pursuit order for a field agent.

Candidates are bucketed by signal age ``h`` (hours) and driving time ``d``
(minutes), then emitted bucket 1, 2, 3, 4, nearest first inside a bucket:

    h <= 1            d <= 60 -> 3    d > 60 -> 4
    1 < h <= 24       d <= 60 -> 1    d > 60 -> 2
    24 < h <= 72      d <= 60 -> 2    d > 60 -> 3
    h > 72            any d   -> 4

Very fresh but far bikes rank below moderately stale reachable ones. The
bucket numbers are emission ranks, not a freshness scale.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, TypeVar

from bikebusters.core.clock import ensure_utc

T = TypeVar("T")

REACHABLE_MINUTES = 60.0
FRESH_HOURS = 1.0
RECENT_HOURS = 24.0
STALE_HOURS = 72.0

TIER_ORDER = (1, 2, 3, 4)


@dataclass(frozen=True)
class Candidate(Generic[T]):
    bike: T
    last_signal: datetime | None
    driving_time_seconds: float | None = None

    @property
    def driving_minutes(self) -> float:
        if self.driving_time_seconds is None:
            return math.inf
        return self.driving_time_seconds / 60.0


def signal_age_hours(last_signal: datetime | None, now: datetime) -> float:
    if last_signal is None:
        return math.inf
    return abs((ensure_utc(now) - ensure_utc(last_signal)).total_seconds()) / 3600.0


def tier_for(hours: float, driving_minutes: float) -> int:
    reachable = driving_minutes <= REACHABLE_MINUTES
    if FRESH_HOURS < hours <= RECENT_HOURS:
        return 1 if reachable else 2
    if RECENT_HOURS < hours <= STALE_HOURS:
        return 2 if reachable else 3
    if hours <= FRESH_HOURS:
        return 3 if reachable else 4
    return 4


def prioritize(candidates: list[Candidate[T]], now: datetime) -> list[T]:
    buckets: dict[int, list[Candidate[T]]] = {tier: [] for tier in TIER_ORDER}
    for candidate in candidates:
        hours = signal_age_hours(candidate.last_signal, now)
        buckets[tier_for(hours, candidate.driving_minutes)].append(candidate)

    ordered: list[T] = []
    for tier in TIER_ORDER:
        # sorted() is stable, so equal driving times keep their input order
        for candidate in sorted(buckets[tier], key=lambda c: c.driving_minutes):
            ordered.append(candidate.bike)
    return ordered


def explain(candidates: list[Candidate[Any]], now: datetime) -> list[dict[str, Any]]:
    """Per-candidate tier and inputs, in pursuit order."""
    rows = [
        {
            "candidate": c,
            "hours_since_signal": signal_age_hours(c.last_signal, now),
            "driving_minutes": c.driving_minutes,
        }
        for c in candidates
    ]
    for row in rows:
        row["tier"] = tier_for(row["hours_since_signal"], row["driving_minutes"])
    rows.sort(key=lambda r: (TIER_ORDER.index(r["tier"]), r["driving_minutes"]))
    return rows
