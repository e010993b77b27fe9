"""Occupied-time windows for reservations on a 24h, minute-granular day.

Minutes are counted from midnight of the reservation's own date. An end above
``DAY_MINUTES`` means the block spills over midnight into the next calendar
day; the spilled part occupies ``[0, end - DAY_MINUTES)`` on that day.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from backend.app.services.models import Adjustment, Reservation

DAY_MINUTES = 1440
MAX_SPILLOVER_MINUTES = 360
MAX_END_MINUTES = DAY_MINUTES + MAX_SPILLOVER_MINUTES
MIN_BLOCK_MINUTES = 15
SNAP_STEP_MINUTES = 5
DEFAULT_GUEST_COUNT = 2


@dataclass(frozen=True)
class Interval:
    start: int
    end: int

    @property
    def duration(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "Interval") -> bool:
        return overlaps(self, other)

    def label(self) -> str:
        return f"{format_minutes(self.start)}-{format_minutes(self.end)}"


def estimate_duration(guest_count: Any) -> int:
    """Default occupancy in minutes for a party size."""
    guests = guest_count
    if isinstance(guests, bool) or not isinstance(guests, (int, float)) or guests != guests:
        guests = DEFAULT_GUEST_COUNT
    if guests <= 2:
        return 60
    if guests <= 4:
        return 120
    return 150


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def snap_minutes(minutes: float, step: int = SNAP_STEP_MINUTES) -> int:
    # Half-up rounding; Python's round() would send 2.5 to 2.
    return int(math.floor(minutes / step + 0.5)) * step


def parse_time_to_minutes(value: Any) -> int:
    """``"HH:MM"`` to minutes after midnight; anything unparseable is 00:00."""
    parts = str(value if value is not None else "").strip().split(":")
    if len(parts) < 2:
        return 0
    try:
        hours = float(parts[0])
        minutes = float(parts[1])
    except ValueError:
        return 0
    if not (math.isfinite(hours) and math.isfinite(minutes)):
        return 0
    hh = int(clamp(math.floor(hours), 0, 23))
    mm = int(clamp(math.floor(minutes), 0, 59))
    return hh * 60 + mm


def minutes_to_time(minutes: int) -> str:
    """Base-time string for a minute of the day (wraps past midnight)."""
    hh, mm = divmod(int(minutes) % DAY_MINUTES, 60)
    return f"{hh:02d}:{mm:02d}"


def format_minutes(minutes: float) -> str:
    total = max(0, int(round(minutes)))
    if total > DAY_MINUTES:
        total -= DAY_MINUTES
    hh, mm = divmod(total, 60)
    return f"{hh:02d}:{mm:02d}"


def overlaps(a: Interval, b: Interval) -> bool:
    """Half-open overlap: touching blocks do not collide."""
    return a.start < b.end and b.start < a.end


def default_interval(reservation: Reservation) -> Interval:
    start = int(clamp(parse_time_to_minutes(reservation.time), 0, DAY_MINUTES - 1))
    end = min(DAY_MINUTES, start + estimate_duration(reservation.guest_count))
    return Interval(start, end)


def effective_interval(reservation: Reservation, adjustment: Adjustment | None = None) -> Interval:
    """The single source of truth for where a reservation sits on its own day."""
    default = default_interval(reservation)
    raw_start = default.start
    raw_end = default.end
    if adjustment is not None:
        if adjustment.start is not None:
            raw_start = clamp(adjustment.start, 0, DAY_MINUTES)
        if adjustment.end is not None:
            raw_end = adjustment.end

    start = snap_minutes(raw_start)
    end = snap_minutes(clamp(raw_end, start + MIN_BLOCK_MINUTES, MAX_END_MINUTES))
    return Interval(start, max(end, start + MIN_BLOCK_MINUTES))


def spillover_window(interval: Interval) -> Interval | None:
    """Part of ``interval`` that lands on the following calendar day."""
    if interval.end <= DAY_MINUTES:
        return None
    spill_end = min(DAY_MINUTES, interval.end - DAY_MINUTES)
    if spill_end <= 0:
        return None
    return Interval(0, spill_end)


def day_key(value: str | date) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def previous_day(value: str | date) -> str | None:
    try:
        current = value if isinstance(value, date) else date.fromisoformat(str(value))
    except ValueError:
        return None
    return (current - timedelta(days=1)).isoformat()


def next_day(value: str | date) -> str | None:
    try:
        current = value if isinstance(value, date) else date.fromisoformat(str(value))
    except ValueError:
        return None
    return (current + timedelta(days=1)).isoformat()


def reservation_range_on(
    reservation: Reservation,
    day: str | date,
    adjustment: Adjustment | None = None,
) -> Interval | None:
    """Window the reservation occupies on ``day``.

    ``adjustment`` must be the one stored under the reservation's own date.
    """
    interval = effective_interval(reservation, adjustment)
    key = day_key(day)
    if reservation.date == key:
        return interval
    if next_day(reservation.date) == key:
        return spillover_window(interval)
    return None
