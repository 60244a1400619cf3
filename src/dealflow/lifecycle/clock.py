"""Injectable time source and day arithmetic for lifecycle evaluation.

Every classification and ranking call evaluates a deal against a single
instant. Components accept a ``Clock`` (a zero-argument callable returning an
aware UTC datetime) so tests and distributed callers can pin that instant.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]

SECONDS_PER_DAY = 86_400


def utc_now() -> datetime:
    """Default clock: current wall-clock time in UTC."""
    return datetime.now(timezone.utc)


def fixed_clock(instant: datetime) -> Clock:
    """Return a clock that always reports ``instant`` (normalized to UTC)."""
    pinned = as_utc(instant)

    def _clock() -> datetime:
        return pinned

    return _clock


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC. Naive values are assumed to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def whole_days_between(start: datetime, end: datetime) -> int:
    """Whole days elapsed from ``start`` to ``end``, floored and never negative."""
    elapsed = (as_utc(end) - as_utc(start)).total_seconds()
    return max(0, math.floor(elapsed / SECONDS_PER_DAY))


def days_until(deadline: datetime, now: datetime) -> int:
    """Whole days remaining until ``deadline``, rounded up (0 or less when past)."""
    remaining = (as_utc(deadline) - as_utc(now)).total_seconds()
    return math.ceil(remaining / SECONDS_PER_DAY)


__all__ = [
    "Clock",
    "SECONDS_PER_DAY",
    "as_utc",
    "days_until",
    "fixed_clock",
    "utc_now",
    "whole_days_between",
]
