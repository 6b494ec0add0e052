from datetime import date, datetime, timedelta

import pytest

from periods import (
    DateRange,
    InvalidRangeError,
    days_in_range,
    previous_range,
    resolve_period,
    shift_months,
)

# Wednesday
NOW = datetime(2024, 3, 13, 15, 30)


@pytest.mark.parametrize("period", ["day", "week", "month"])
@pytest.mark.parametrize("live", [False, True])
def test_ranges_are_ordered(period, live):
    for hours in range(0, 24 * 40, 7):
        now = datetime(2024, 2, 25) + timedelta(hours=hours)
        date_range = resolve_period(period, now, live=live)
        assert date_range.start_date <= date_range.end_date


def test_week_always_starts_on_sunday_midnight():
    for offset in range(14):
        now = NOW + timedelta(days=offset)
        start = resolve_period("week", now).start_date
        assert start.weekday() == 6
        assert start.time() == datetime.min.time()
        assert start <= now


def test_week_on_a_sunday_starts_that_day():
    now = datetime(2024, 3, 10, 10, 0)
    date_range = resolve_period("week", now)
    assert date_range.start_date == datetime(2024, 3, 10)
    assert date_range.end_date == datetime(2024, 3, 16, 23, 59, 59, 999999)


def test_calendar_day_covers_whole_day():
    date_range = resolve_period("day", NOW)
    assert date_range.start_date == datetime(2024, 3, 13)
    assert date_range.end_date == datetime(2024, 3, 13, 23, 59, 59, 999999)
    assert date_range.period == "day"


def test_live_day_ends_now_and_keeps_day_token():
    date_range = resolve_period("day", NOW, live=True)
    assert date_range.start_date == datetime(2024, 3, 13)
    assert date_range.end_date == NOW
    assert date_range.period == "day"


def test_month_bounds():
    date_range = resolve_period("month", NOW)
    assert date_range.start_date == datetime(2024, 3, 1)
    assert date_range.end_date == datetime(2024, 3, 31, 23, 59, 59, 999999)

    live = resolve_period("month", NOW, live=True)
    assert live.start_date == datetime(2024, 3, 1)
    assert live.end_date == NOW


def test_month_offset_goes_back_to_february():
    date_range = resolve_period("month", NOW, offset=1, live=True)
    assert date_range.start_date == datetime(2024, 2, 1)
    assert date_range.end_date == datetime(2024, 2, 29, 23, 59, 59, 999999)


def test_quarter_and_year():
    quarter = resolve_period("quarter", NOW)
    assert quarter.start_date == datetime(2024, 1, 1)
    assert quarter.end_date.date().isoformat() == "2024-03-31"
    year = resolve_period("year", NOW, offset=1)
    assert year.start_date == datetime(2023, 1, 1)
    assert year.end_date.date().isoformat() == "2023-12-31"


def test_custom_range_accepts_iso_dates():
    date_range = resolve_period("custom", start="2024-01-01", end="2024-01-31")
    assert date_range.start_date == datetime(2024, 1, 1)
    assert date_range.end_date == datetime(2024, 1, 31, 23, 59, 59, 999999)
    assert date_range.period == "custom"


def test_custom_range_rejects_inverted_bounds():
    with pytest.raises(InvalidRangeError):
        resolve_period(
            "custom", start=datetime(2024, 2, 1), end=datetime(2024, 1, 1)
        )


def test_custom_range_requires_both_bounds():
    with pytest.raises(InvalidRangeError):
        resolve_period("custom", start="2024-01-01")


def test_unknown_period_is_rejected():
    with pytest.raises(ValueError):
        resolve_period("fortnight", NOW)


def test_date_range_never_swaps_bounds():
    with pytest.raises(InvalidRangeError):
        DateRange(datetime(2024, 1, 2), datetime(2024, 1, 1), "custom")


def test_days_in_range():
    assert days_in_range(resolve_period("week", NOW)) == 7
    assert days_in_range(resolve_period("day", NOW, live=True)) == 1
    assert days_in_range(resolve_period("month", NOW)) == 31


def test_previous_range_has_identical_length():
    week = resolve_period("week", NOW)
    previous = previous_range(week)
    assert previous.start_date == datetime(2024, 3, 3)
    assert previous.end_date == datetime(2024, 3, 9, 23, 59, 59, 999999)
    assert days_in_range(previous) == days_in_range(week)


def test_previous_range_of_live_week_ends_where_current_starts():
    week = resolve_period("week", NOW, live=True)
    previous = previous_range(week)
    assert previous.end_date == datetime(2024, 3, 9, 23, 59, 59, 999999)
    assert previous.start_date == datetime(2024, 3, 6, 8, 30)
    assert week.start_date - previous.start_date == week.end_date - week.start_date


def test_previous_range_of_live_day_at_midnight():
    midnight = datetime(2024, 3, 13)
    previous = previous_range(resolve_period("day", midnight, live=True))
    assert previous.end_date == datetime(2024, 3, 12, 23, 59, 59, 999999)
    assert previous.start_date <= previous.end_date


def test_shift_months_crosses_year_boundaries():
    assert shift_months(date(2024, 1, 31), -1) == date(2023, 12, 1)
    assert shift_months(date(2024, 11, 15), 3) == date(2025, 2, 1)
