import pytest

from backend.app.services.intervals import (
    Interval,
    effective_interval,
    estimate_duration,
    format_minutes,
    minutes_to_time,
    overlaps,
    parse_time_to_minutes,
    reservation_range_on,
    snap_minutes,
    spillover_window,
)
from backend.app.services.models import Adjustment, Reservation

from backend.tests.conftest import DAY, NEXT_DAY, make_reservation


@pytest.mark.parametrize(
    "guests, minutes",
    [(0, 60), (1, 60), (2, 60), (3, 120), (4, 120), (5, 150), (12, 150), (-3, 60)],
)
def test_estimate_duration_buckets(guests, minutes):
    assert estimate_duration(guests) == minutes


@pytest.mark.parametrize("guests", [None, "abc", float("nan"), True])
def test_estimate_duration_falls_back_to_two_guests(guests):
    assert estimate_duration(guests) == 60


def test_estimate_duration_is_monotonic():
    values = [estimate_duration(n) for n in range(0, 40)]
    assert values == sorted(values)


def test_snap_rounds_half_up():
    assert snap_minutes(1142.5) == 1145
    assert snap_minutes(1142.4) == 1140
    assert snap_minutes(2.5) == 5
    assert snap_minutes(0) == 0


@pytest.mark.parametrize("raw, expected", [("19:00", 1140), ("7:05", 425), ("25:70", 1439), ("", 0), ("abc", 0), (None, 0)])
def test_parse_time_to_minutes(raw, expected):
    assert parse_time_to_minutes(raw) == expected


def test_minute_formatting():
    assert minutes_to_time(1170) == "19:30"
    assert minutes_to_time(1470) == "00:30"
    assert format_minutes(1440) == "24:00"
    assert format_minutes(1470) == "00:30"


def test_overlap_is_half_open_and_symmetric():
    a = Interval(1140, 1200)
    b = Interval(1170, 1230)
    c = Interval(1200, 1260)
    assert overlaps(a, b) and overlaps(b, a)
    assert not overlaps(a, c) and not overlaps(c, a)


def test_default_interval_from_time_and_guests():
    assert effective_interval(make_reservation("a", "19:00", 2)) == Interval(1140, 1200)
    assert effective_interval(make_reservation("b", "19:30", 4)) == Interval(1170, 1290)


def test_default_interval_is_capped_at_midnight():
    assert effective_interval(make_reservation("late", "23:00", 5)) == Interval(1380, 1440)


def test_malformed_reservation_degrades_to_midnight():
    reservation = Reservation(id=1, date=DAY, time="soon", guest_count="lots")
    assert effective_interval(reservation) == Interval(0, 60)


def test_adjustment_overrides_and_snaps():
    reservation = make_reservation("a", "19:00", 2)
    assert effective_interval(reservation, Adjustment(start=1142, end=1213)) == Interval(1140, 1215)


def test_adjustment_end_keeps_minimum_block():
    reservation = make_reservation("a", "19:00", 2)
    interval = effective_interval(reservation, Adjustment(start=1200, end=1201))
    assert interval == Interval(1200, 1215)


def test_partial_adjustment_uses_defaults():
    reservation = make_reservation("a", "19:00", 2)
    assert effective_interval(reservation, Adjustment(end=1260)) == Interval(1140, 1260)
    assert effective_interval(reservation, Adjustment(start=1100)) == Interval(1100, 1200)


def test_adjustment_end_is_capped_at_max_spillover():
    reservation = make_reservation("a", "23:00", 2)
    assert effective_interval(reservation, Adjustment(start=1380, end=4000)).end == 1800


@pytest.mark.parametrize("start", range(0, 1441, 37))
def test_effective_interval_is_aligned_and_long_enough(start):
    reservation = make_reservation("a", "12:00", 3)
    interval = effective_interval(reservation, Adjustment(start=start, end=start + 3))
    assert interval.start % 5 == 0 and interval.end % 5 == 0
    assert interval.end - interval.start >= 15


def test_spillover_window():
    assert spillover_window(Interval(1380, 1470)) == Interval(0, 30)
    assert spillover_window(Interval(1380, 1440)) is None


def test_spillover_round_trip_to_next_day():
    reservation = make_reservation("a", "23:00", 2)
    adjustment = Adjustment(start=1380, end=1440 + 45)
    assert reservation_range_on(reservation, NEXT_DAY, adjustment) == Interval(0, 45)
    assert reservation_range_on(reservation, DAY, adjustment) == Interval(1380, 1485)
    assert reservation_range_on(reservation, "2025-11-07", adjustment) is None


def test_seated_late_party_with_extension_occupies_next_morning():
    reservation = make_reservation("late", "23:00", 5, status="arrived")
    assert reservation_range_on(reservation, NEXT_DAY, Adjustment(start=1380, end=1470)) == Interval(0, 30)
