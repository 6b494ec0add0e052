from datetime import datetime
from decimal import Decimal
from typing import Optional

from models import RecurringInterval, Transaction, TransactionType
from recurrence import (
    days_in_month,
    detect_recurring_patterns,
    is_due,
    is_retired,
    next_occurrence_date,
    occurrence_key,
)


def _template(
    interval: RecurringInterval,
    last: Optional[datetime],
    *,
    day: Optional[int] = None,
    end: Optional[datetime] = None,
) -> Transaction:
    return Transaction(
        id=7,
        amount=Decimal("1200.00"),
        type=TransactionType.expense,
        category="Rent",
        description="Rent",
        date=datetime(2023, 12, 1, 9, 0),
        account_id="acc-1",
        is_recurring=True,
        recurring_interval=interval,
        recurring_day=day,
        recurring_end_date=end,
        last_materialized_date=last,
    )


def test_days_in_month():
    assert days_in_month(2024, 2) == 29
    assert days_in_month(2023, 2) == 28
    assert days_in_month(2024, 12) == 31


def test_monthly_due_only_in_a_later_calendar_month():
    template = _template(RecurringInterval.monthly, datetime(2024, 1, 1))
    assert is_due(template, datetime(2024, 2, 1)) is True
    assert is_due(template, datetime(2024, 1, 15)) is False
    assert is_due(template, datetime(2024, 1, 31, 23, 59)) is False


def test_monthly_due_across_year_boundary():
    template = _template(RecurringInterval.monthly, datetime(2023, 12, 20))
    assert is_due(template, datetime(2024, 1, 2)) is True


def test_weekly_due_after_seven_full_days():
    template = _template(RecurringInterval.weekly, datetime(2024, 1, 1, 9, 0))
    assert is_due(template, datetime(2024, 1, 8, 8, 59)) is False
    assert is_due(template, datetime(2024, 1, 8, 9, 0)) is True


def test_yearly_due_in_a_later_year():
    template = _template(RecurringInterval.yearly, datetime(2023, 6, 1))
    assert is_due(template, datetime(2023, 12, 31)) is False
    assert is_due(template, datetime(2024, 1, 1)) is True


def test_monthly_anchor_clamps_to_end_of_february():
    template = _template(RecurringInterval.monthly, datetime(2024, 1, 31), day=31)
    assert next_occurrence_date(template) == datetime(2024, 2, 29)

    template = _template(RecurringInterval.monthly, datetime(2023, 1, 31), day=31)
    assert next_occurrence_date(template) == datetime(2023, 2, 28)


def test_monthly_anchor_restores_day_after_short_month():
    template = _template(RecurringInterval.monthly, datetime(2024, 2, 29), day=31)
    assert next_occurrence_date(template) == datetime(2024, 3, 31)


def test_monthly_without_anchor_keeps_day_and_rolls_year():
    template = _template(RecurringInterval.monthly, datetime(2024, 12, 15, 8, 30))
    assert next_occurrence_date(template) == datetime(2025, 1, 15, 8, 30)


def test_weekly_and_yearly_steps():
    weekly = _template(RecurringInterval.weekly, datetime(2024, 2, 26))
    assert next_occurrence_date(weekly) == datetime(2024, 3, 4)

    yearly = _template(RecurringInterval.yearly, datetime(2024, 2, 29))
    assert next_occurrence_date(yearly) == datetime(2025, 2, 28)


def test_missing_last_materialized_falls_back_to_template_date():
    template = _template(RecurringInterval.monthly, None)
    assert next_occurrence_date(template) == datetime(2024, 1, 1, 9, 0)
    assert is_due(template, datetime(2024, 1, 2)) is True


def test_template_past_end_date_is_retired():
    template = _template(
        RecurringInterval.monthly,
        datetime(2024, 1, 31),
        day=31,
        end=datetime(2024, 2, 15),
    )
    assert is_retired(template) is True
    assert is_due(template, datetime(2024, 3, 1)) is False


def test_occurrence_on_end_date_is_still_due():
    template = _template(
        RecurringInterval.monthly,
        datetime(2024, 1, 15),
        end=datetime(2024, 2, 15),
    )
    assert is_retired(template) is False
    assert is_due(template, datetime(2024, 2, 1)) is True


def test_is_due_is_pure_and_deterministic():
    template = _template(RecurringInterval.weekly, datetime(2024, 1, 1))
    now = datetime(2024, 1, 20)
    assert is_due(template, now) == is_due(template, now)
    next_occurrence_date(template)
    assert template.last_materialized_date == datetime(2024, 1, 1)


def test_non_recurring_transaction_is_never_due():
    template = _template(RecurringInterval.monthly, datetime(2024, 1, 1))
    template.is_recurring = False
    assert is_due(template, datetime(2025, 1, 1)) is False


def test_occurrence_keys_bucket_by_interval():
    monthly = _template(RecurringInterval.monthly, datetime(2024, 1, 1))
    assert occurrence_key(monthly, datetime(2024, 2, 1)) == "7:2024-02"
    yearly = _template(RecurringInterval.yearly, datetime(2024, 1, 1))
    assert occurrence_key(yearly, datetime(2025, 1, 1)) == "7:2025"
    weekly = _template(RecurringInterval.weekly, datetime(2024, 1, 1))
    assert occurrence_key(weekly, datetime(2024, 1, 8, 9)) == "7:2024-01-08"


def _spend(description: str, amount: str, when: datetime, **extra) -> Transaction:
    return Transaction(
        amount=Decimal(amount),
        type=TransactionType.expense,
        category="Subscriptions",
        description=description,
        date=when,
        account_id="acc-1",
        **extra,
    )


def test_detects_monthly_and_weekly_patterns():
    txns = [
        _spend("Streaming", "9.99", datetime(2024, 1, 15)),
        _spend("Streaming", "9.99", datetime(2024, 2, 15)),
        _spend("Streaming", "9.99", datetime(2024, 3, 15)),
        _spend("Gym", "12.00", datetime(2024, 3, 1, 7)),
        _spend("Gym", "12.00", datetime(2024, 3, 8, 7)),
        _spend("Gym", "12.00", datetime(2024, 3, 15, 7)),
    ]
    patterns = {p.description: p for p in detect_recurring_patterns(txns)}

    streaming = patterns["Streaming"]
    assert streaming.frequency == "monthly"
    assert streaming.average_interval_days == 30
    assert streaming.occurrences == 3
    assert streaming.amount == Decimal("9.99")
    assert streaming.next_due_date == datetime(2024, 4, 14)

    gym = patterns["Gym"]
    assert gym.frequency == "weekly"
    assert gym.next_due_date == datetime(2024, 3, 22, 7)


def test_irregular_or_short_series_is_not_a_pattern():
    txns = [
        _spend("Coffee", "4.50", datetime(2024, 1, 1)),
        _spend("Coffee", "4.50", datetime(2024, 1, 3)),
        _spend("Coffee", "4.50", datetime(2024, 1, 20)),
        _spend("Books", "20.00", datetime(2024, 1, 1)),
        _spend("Books", "20.00", datetime(2024, 2, 1)),
    ]
    assert detect_recurring_patterns(txns) == []


def test_different_amounts_are_grouped_apart():
    txns = [
        _spend("Phone", "30.00", datetime(2024, 1, 5)),
        _spend("Phone", "35.00", datetime(2024, 2, 5)),
        _spend("Phone", "30.00", datetime(2024, 3, 5)),
    ]
    assert detect_recurring_patterns(txns) == []


def test_existing_templates_and_occurrences_are_ignored():
    txns = [
        _spend("Rent", "950.00", datetime(2024, 1, 1), parent_template_id=1),
        _spend("Rent", "950.00", datetime(2024, 2, 1), parent_template_id=1),
        _spend("Rent", "950.00", datetime(2024, 3, 1), parent_template_id=1),
    ]
    assert detect_recurring_patterns(txns) == []
