from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

CALENDAR_PERIODS = ("day", "week", "month", "quarter", "year")

DateLike = Union[datetime, date, str]


class InvalidRangeError(ValueError):
    pass


@dataclass(frozen=True)
class DateRange:
    start_date: datetime
    end_date: datetime
    period: str

    def __post_init__(self) -> None:
        if self.start_date > self.end_date:
            raise InvalidRangeError(
                f"Start {self.start_date.isoformat()} is after end {self.end_date.isoformat()}"
            )

    def contains(self, moment: datetime) -> bool:
        return self.start_date <= moment <= self.end_date


def _start_of_day(d: date) -> datetime:
    return datetime.combine(d, time.min)


def _end_of_day(d: date) -> datetime:
    return datetime.combine(d, time.max)


def shift_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    return date(month_index // 12, (month_index % 12) + 1, 1)


def week_start(d: date) -> date:
    """Sunday on or before ``d``."""
    return d - timedelta(days=(d.weekday() + 1) % 7)


def _coerce(value: Optional[DateLike], *, is_end: bool) -> datetime:
    if value is None or value == "":
        raise InvalidRangeError("Custom period requires start and end dates")
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return _end_of_day(value) if is_end else _start_of_day(value)
    try:
        if len(value) == 10:
            parsed = date.fromisoformat(value)
            return _end_of_day(parsed) if is_end else _start_of_day(parsed)
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise InvalidRangeError(f"Invalid date: {value!r}") from exc


def _calendar_bounds(period: str, anchor: date) -> tuple[date, date]:
    if period == "day":
        return anchor, anchor
    if period == "week":
        first = week_start(anchor)
        return first, first + timedelta(days=6)
    if period == "month":
        first = anchor.replace(day=1)
        return first, shift_months(first, 1) - date.resolution
    if period == "quarter":
        first = date(anchor.year, ((anchor.month - 1) // 3) * 3 + 1, 1)
        return first, shift_months(first, 3) - date.resolution
    return date(anchor.year, 1, 1), date(anchor.year, 12, 31)


def _shift_anchor(period: str, today: date, offset: int) -> date:
    if period == "day":
        return today - timedelta(days=offset)
    if period == "week":
        return today - timedelta(weeks=offset)
    if period == "month":
        return shift_months(today, -offset)
    if period == "quarter":
        return shift_months(today, -3 * offset)
    return date(today.year - offset, 1, 1)


def resolve_period(
    period: Optional[str],
    now: Optional[datetime] = None,
    *,
    live: bool = False,
    start: Optional[DateLike] = None,
    end: Optional[DateLike] = None,
    offset: int = 0,
) -> DateRange:
    """Turn a period token into a concrete local-time ``DateRange``.

    Calendar buckets end at 23:59:59.999999 of their last day. With ``live``
    set, the current bucket (``offset == 0``) ends at ``now`` instead, which
    is what the period view model asks for. Weeks always start on Sunday.
    """
    now = now or datetime.now()
    if period == "custom":
        start_dt = _coerce(start, is_end=False)
        end_dt = _coerce(end, is_end=True)
        if start_dt > end_dt:
            raise InvalidRangeError("Start date must be before end date")
        return DateRange(start_dt, end_dt, "custom")

    if period not in CALENDAR_PERIODS:
        raise InvalidRangeError(f"Unknown period: {period!r}")
    if offset < 0:
        raise InvalidRangeError("Period offset cannot be negative")

    anchor = _shift_anchor(period, now.date(), offset)
    first, last = _calendar_bounds(period, anchor)
    start_dt = _start_of_day(first)
    end_dt = now if live and offset == 0 else _end_of_day(last)
    return DateRange(start_dt, end_dt, period)


def days_in_range(date_range: DateRange) -> int:
    return (date_range.end_date - date_range.start_date).days + 1


def _covers_whole_days(date_range: DateRange) -> bool:
    return (
        date_range.start_date.time() == time.min
        and date_range.end_date.time() == time.max
    )


def previous_range(date_range: DateRange) -> DateRange:
    """The window of identical length ending right before ``date_range``.

    Whole-day ranges step back by their day count. Ranges ending mid-day,
    such as live ones ending at ``now``, step back by their exact span so the
    two windows meet without a gap.
    """
    start = date_range.start_date
    if _covers_whole_days(date_range):
        shift = timedelta(days=days_in_range(date_range))
        return DateRange(start - shift, date_range.end_date - shift, date_range.period)
    span = max(date_range.end_date - start, timedelta.resolution)
    return DateRange(start - span, start - timedelta.resolution, date_range.period)
