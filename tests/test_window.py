from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from safety_net.services.missed_dose import compute_window

LOW = timedelta(minutes=90)
HIGH = timedelta(minutes=60)


def test_window_ninety_to_sixty_minutes_back():
    w = compute_window(datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc), timezone.utc, LOW, HIGH)
    assert (w.window_start, w.window_end) == ("08:30:00", "09:00:00")
    assert w.today == date(2024, 5, 1)
    assert len(w.segments) == 1
    seg = w.segments[0]
    assert seg.on == date(2024, 5, 1)
    assert seg.after == time(8, 30) and seg.until == time(9, 0)


def test_window_uses_configured_zone_not_utc():
    # 02:00 UTC is 07:30 in Kolkata (+05:30)
    w = compute_window(datetime(2024, 5, 1, 2, 0, tzinfo=timezone.utc), ZoneInfo("Asia/Kolkata"), LOW, HIGH)
    assert (w.window_start, w.window_end) == ("06:00:00", "06:30:00")
    assert w.today == date(2024, 5, 1)


def test_today_follows_civil_date():
    # 20:00 UTC on Apr 30 is already May 1 in Tokyo
    w = compute_window(datetime(2024, 4, 30, 20, 0, tzinfo=timezone.utc), ZoneInfo("Asia/Tokyo"), LOW, HIGH)
    assert w.today == date(2024, 5, 1)
    assert (w.window_start, w.window_end) == ("03:30:00", "04:00:00")


def test_seconds_are_truncated_so_windows_tile():
    first = compute_window(datetime(2024, 5, 1, 10, 0, 42, tzinfo=timezone.utc), timezone.utc, LOW, HIGH)
    second = compute_window(datetime(2024, 5, 1, 10, 30, 3, tzinfo=timezone.utc), timezone.utc, LOW, HIGH)
    assert first.window_end == "09:00:00"
    assert second.window_start == first.window_end


def test_naive_now_is_treated_as_utc():
    w = compute_window(datetime(2024, 5, 1, 10, 0), ZoneInfo("UTC"), LOW, HIGH)
    assert (w.window_start, w.window_end) == ("08:30:00", "09:00:00")


def test_window_entirely_on_previous_day():
    w = compute_window(datetime(2024, 5, 1, 0, 30, tzinfo=timezone.utc), timezone.utc, LOW, HIGH)
    assert (w.window_start, w.window_end) == ("23:00:00", "23:30:00")
    assert w.today == date(2024, 5, 1)
    assert [s.on for s in w.segments] == [date(2024, 4, 30)]


def test_window_crossing_midnight_is_split_per_date():
    w = compute_window(datetime(2024, 5, 1, 1, 15, tzinfo=timezone.utc), timezone.utc, LOW, HIGH)
    assert (w.window_start, w.window_end) == ("23:45:00", "00:15:00")
    first, second = w.segments
    assert (first.on, first.after, first.until) == (date(2024, 4, 30), time(23, 45), time(23, 59, 59))
    assert (second.on, second.after, second.until) == (date(2024, 5, 1), None, time(0, 15))


def test_window_is_measured_in_elapsed_time_across_dst():
    # US spring-forward: 03:30 EDT is 07:30 UTC; 90 minutes earlier is 01:00 EST
    w = compute_window(datetime(2024, 3, 10, 7, 30, tzinfo=timezone.utc), ZoneInfo("America/New_York"), LOW, HIGH)
    assert (w.window_start, w.window_end) == ("01:00:00", "01:30:00")


def test_fall_back_repeated_hour_queries_nothing():
    # US fall-back: 07:15 UTC is 02:15 EST; the window runs 01:45 EDT to 01:15 EST
    w = compute_window(datetime(2024, 11, 3, 7, 15, tzinfo=timezone.utc), ZoneInfo("America/New_York"), LOW, HIGH)
    assert (w.window_start, w.window_end) == ("01:45:00", "01:15:00")
    assert w.segments == []


@pytest.mark.parametrize("low,high", [(60, 60), (30, 60), (90, -5)])
def test_invalid_lookbacks_rejected(low, high):
    with pytest.raises(ValueError):
        compute_window(datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc), timezone.utc,
                       timedelta(minutes=low), timedelta(minutes=high))
