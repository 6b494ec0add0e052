import math
from collections import defaultdict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Iterable, Optional

from models import RecurringInterval, Transaction
from schemas import RecurringPattern

PATTERN_MIN_OCCURRENCES = 3
PATTERN_TOLERANCE_DAYS = 3


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def _add_months(base: datetime, months: int, *, desired_day: int) -> datetime:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(desired_day, days_in_month(year, month))
    return base.replace(year=year, month=month, day=day)


def last_materialized(template: Transaction) -> datetime:
    return template.last_materialized_date or template.date


def _weekly_due(last: datetime, now: datetime) -> bool:
    return (now - last).days >= 7


def _monthly_due(last: datetime, now: datetime) -> bool:
    return (now.year, now.month) > (last.year, last.month)


def _yearly_due(last: datetime, now: datetime) -> bool:
    return now.year > last.year


def _weekly_next(template: Transaction, last: datetime) -> datetime:
    return last + timedelta(days=7)


def _monthly_next(template: Transaction, last: datetime) -> datetime:
    anchor_day = template.recurring_day or last.day
    return _add_months(last, 1, desired_day=anchor_day)


def _yearly_next(template: Transaction, last: datetime) -> datetime:
    return _add_months(last, 12, desired_day=last.day)


def _weekly_bucket(occurrence: datetime) -> str:
    return occurrence.date().isoformat()


def _monthly_bucket(occurrence: datetime) -> str:
    return f"{occurrence.year:04d}-{occurrence.month:02d}"


def _yearly_bucket(occurrence: datetime) -> str:
    return f"{occurrence.year:04d}"


# Weekly counts elapsed days; monthly and yearly compare calendar buckets.
_DUE_CHECKS: dict[RecurringInterval, Callable[[datetime, datetime], bool]] = {
    RecurringInterval.weekly: _weekly_due,
    RecurringInterval.monthly: _monthly_due,
    RecurringInterval.yearly: _yearly_due,
}

_NEXT_DATES: dict[
    RecurringInterval, Callable[[Transaction, datetime], datetime]
] = {
    RecurringInterval.weekly: _weekly_next,
    RecurringInterval.monthly: _monthly_next,
    RecurringInterval.yearly: _yearly_next,
}

_BUCKETS: dict[RecurringInterval, Callable[[datetime], str]] = {
    RecurringInterval.weekly: _weekly_bucket,
    RecurringInterval.monthly: _monthly_bucket,
    RecurringInterval.yearly: _yearly_bucket,
}


def _interval(template: Transaction) -> Optional[RecurringInterval]:
    value = template.recurring_interval
    if value is None:
        return None
    try:
        return RecurringInterval(value)
    except ValueError:
        return None


def next_occurrence_date(template: Transaction) -> datetime:
    """Date of the occurrence following the last materialized one.

    Monthly steps land on ``min(anchor day, days in month)`` so a 31st anchor
    yields Feb 28/29 rather than spilling into March.
    """
    interval = _interval(template)
    if interval is None:
        raise ValueError(f"Template {template.id} has no recurring interval")
    return _NEXT_DATES[interval](template, last_materialized(template))


def is_retired(template: Transaction) -> bool:
    end_date = template.recurring_end_date
    if end_date is None or _interval(template) is None:
        return False
    return next_occurrence_date(template) > end_date


def is_due(template: Transaction, now: datetime) -> bool:
    if not template.is_recurring:
        return False
    interval = _interval(template)
    if interval is None or is_retired(template):
        return False
    return _DUE_CHECKS[interval](last_materialized(template), now)


def occurrence_key(template: Transaction, occurrence_date: datetime) -> str:
    interval = _interval(template)
    if interval is None:
        raise ValueError(f"Template {template.id} has no recurring interval")
    return f"{template.id}:{_BUCKETS[interval](occurrence_date)}"


def _whole_days(delta: timedelta) -> int:
    # half-day rounds up
    return math.floor(delta.total_seconds() / 86400 + 0.5)


def _pattern_frequency(average_days: float) -> str:
    if average_days <= 1:
        return "daily"
    if average_days <= 7:
        return "weekly"
    if average_days <= 35:
        return "monthly"
    return "yearly"


def detect_recurring_patterns(
    transactions: Iterable[Transaction],
) -> list[RecurringPattern]:
    """Find one-off transactions that repeat on a steady schedule.

    Transactions are grouped by description, amount and category. A group
    with at least ``PATTERN_MIN_OCCURRENCES`` members whose gaps all sit
    within ``PATTERN_TOLERANCE_DAYS`` of the average gap becomes a pattern;
    the next due date is the last date plus the average gap in whole days.
    Templates and their materialized occurrences are already recurring and
    are ignored.
    """
    groups: dict[tuple[str, Decimal, str], list[Transaction]] = defaultdict(list)
    for txn in transactions:
        if txn.is_recurring or txn.parent_template_id is not None:
            continue
        key = (txn.description or "", Decimal(str(txn.amount)), txn.category)
        groups[key].append(txn)

    patterns: list[RecurringPattern] = []
    for (description, amount, category), group in groups.items():
        if len(group) < PATTERN_MIN_OCCURRENCES:
            continue
        group.sort(key=lambda t: t.date)
        intervals = [
            _whole_days(later.date - earlier.date)
            for earlier, later in zip(group, group[1:])
        ]
        average = sum(intervals) / len(intervals)
        if any(abs(gap - average) > PATTERN_TOLERANCE_DAYS for gap in intervals):
            continue
        last = group[-1]
        patterns.append(
            RecurringPattern(
                frequency=_pattern_frequency(average),
                amount=amount,
                category=category,
                description=description,
                type=last.type,
                occurrences=len(group),
                average_interval_days=average,
                last_date=last.date,
                next_due_date=last.date + timedelta(days=int(average)),
            )
        )
    patterns.sort(key=lambda p: (p.next_due_date, p.description))
    return patterns
