from datetime import datetime
from decimal import Decimal

import pytest

from aggregation import (
    aggregate,
    category_breakdown,
    compare_periods,
    daily_breakdown,
    monthly_trend,
)
from models import Category, Transaction, TransactionType
from periods import resolve_period

WEEK = resolve_period("week", datetime(2024, 3, 13, 12, 0))


def _txn(amount, category, *, kind=TransactionType.expense, when=None) -> Transaction:
    return Transaction(
        amount=Decimal(str(amount)),
        type=kind,
        category=category,
        description=category,
        date=when or datetime(2024, 3, 12, 12, 0),
        account_id="acc-1",
    )


def test_empty_list_has_zero_totals_and_no_division_error():
    data = aggregate([], WEEK)
    assert data.total_income == 0
    assert data.total_expenses == 0
    assert data.net_income == 0
    assert data.daily_average == 0
    assert data.category_breakdown == []
    assert data.top_categories == []
    assert data.period == WEEK


def test_totals_and_net_income():
    txns = [
        _txn(5000, "Salary", kind=TransactionType.income),
        _txn(2000, "Rent"),
        _txn("750.50", "Food"),
    ]
    data = aggregate(txns, WEEK)
    assert data.total_income == Decimal("5000")
    assert data.total_expenses == Decimal("2750.50")
    assert data.net_income == Decimal("2249.50")


def test_daily_average_uses_days_in_range():
    data = aggregate([_txn(700, "Rent")], WEEK)
    assert data.daily_average == Decimal("100")


def test_percentages_are_relative_to_expenses_only():
    txns = [
        _txn(10000, "Salary", kind=TransactionType.income),
        _txn(75, "Food"),
        _txn(25, "Transport"),
    ]
    breakdown = aggregate(txns, WEEK).category_breakdown
    assert [c.percentage for c in breakdown] == [75.0, 25.0]


def test_percentages_stay_within_bounds():
    txns = [_txn(amount, f"cat-{i}") for i, amount in enumerate([1, 2, 3, "0.01", 7, 11])]
    breakdown = aggregate(txns, WEEK).category_breakdown
    assert sum(c.percentage for c in breakdown) == pytest.approx(100.0)
    assert sum(c.percentage for c in breakdown) <= 100 + 1e-9
    assert all(0 <= c.percentage <= 100 for c in breakdown)


def test_breakdown_sorted_by_amount_with_ties_by_category_id():
    txns = [_txn(50, "b"), _txn(50, "a"), _txn(100, "c"), _txn(10, "d")]
    breakdown = aggregate(txns, WEEK).category_breakdown
    assert [c.category_id for c in breakdown] == ["c", "a", "b", "d"]


def test_top_categories_are_first_five():
    txns = [_txn(amount, f"cat-{amount}") for amount in range(1, 8)]
    data = aggregate(txns, WEEK)
    assert len(data.category_breakdown) == 7
    assert data.top_categories == data.category_breakdown[:5]
    assert data.top_categories[0].category_id == "cat-7"


def test_counts_are_per_category():
    txns = [_txn(5, "Food"), _txn(7, "Food"), _txn(3, "Transport")]
    breakdown = category_breakdown(txns)
    food = next(c for c in breakdown if c.category_id == "Food")
    assert food.transaction_count == 2
    assert food.amount == Decimal("12")


def test_trend_defaults_to_stable_without_previous_period():
    breakdown = aggregate([_txn(100, "Food")], WEEK).category_breakdown
    assert breakdown[0].trend == "stable"
    assert breakdown[0].previous_period_amount == 0


def test_trend_against_previous_period():
    current = [_txn(150, "Food"), _txn(98, "Transport"), _txn(100, "Rent"), _txn(40, "Gifts")]
    previous = [_txn(100, "Food"), _txn(100, "Transport"), _txn(200, "Rent")]
    breakdown = {c.category_id: c for c in aggregate(current, WEEK, previous).category_breakdown}
    assert breakdown["Food"].trend == "up"
    assert breakdown["Food"].previous_period_amount == Decimal("100")
    assert breakdown["Transport"].trend == "stable"
    assert breakdown["Rent"].trend == "down"
    assert breakdown["Gifts"].trend == "stable"
    assert breakdown["Gifts"].previous_period_amount == 0


def test_category_catalog_resolves_name_color_and_budget():
    catalog = [
        Category(
            id=3,
            name="Food",
            type=TransactionType.expense,
            color="#FF6B6B",
            budget_limit=Decimal("200"),
        )
    ]
    breakdown = aggregate([_txn(150, "Food"), _txn(10, "Misc")], WEEK, categories=catalog).category_breakdown
    food, misc = breakdown
    assert food.category_id == "3"
    assert food.category_name == "Food"
    assert food.category_color == "#FF6B6B"
    assert food.budget_limit == Decimal("200")
    assert food.budget_used == pytest.approx(75.0)
    assert misc.category_color == "#007AFF"
    assert misc.budget_used is None


def test_daily_breakdown_has_one_row_per_day():
    date_range = resolve_period("custom", start="2024-03-10", end="2024-03-12")
    txns = [
        _txn(20, "Food", when=datetime(2024, 3, 10, 9)),
        _txn(30, "Transport", when=datetime(2024, 3, 10, 18)),
        _txn(100, "Salary", kind=TransactionType.income, when=datetime(2024, 3, 12, 8)),
    ]
    rows = daily_breakdown(txns, date_range)
    assert [r.date for r in rows] == ["2024-03-10", "2024-03-11", "2024-03-12"]
    assert rows[0].expenses == Decimal("50")
    assert rows[0].primary_category == "Transport"
    assert rows[1].transaction_count == 0
    assert rows[1].primary_category is None
    assert rows[2].net == Decimal("100")


def test_monthly_trend_covers_trailing_months():
    date_range = resolve_period("month", datetime(2024, 3, 13))
    txns = [
        _txn(1000, "Salary", kind=TransactionType.income, when=datetime(2024, 1, 5)),
        _txn(250, "Rent", when=datetime(2024, 1, 6)),
        _txn(80, "Food", when=datetime(2024, 3, 2)),
    ]
    trend = monthly_trend(txns, date_range, months=3)
    assert [m.month for m in trend] == ["2024-01", "2024-02", "2024-03"]
    assert trend[0].savings == Decimal("750")
    assert trend[0].savings_rate == pytest.approx(75.0)
    assert trend[0].top_category == "Rent"
    assert trend[1].transaction_count == 0
    assert trend[2].savings_rate == 0.0


def test_compare_periods_reports_deltas():
    current = aggregate([_txn(150, "Food"), _txn(300, "Salary", kind=TransactionType.income)], WEEK)
    previous = aggregate([_txn(100, "Food")], WEEK)
    comparison = compare_periods(current, previous)
    assert comparison.total_expenses_change == Decimal("50")
    assert comparison.total_income_change == Decimal("300")
    assert comparison.net_income_change == Decimal("250")
    food = comparison.category_changes[0]
    assert food.change == Decimal("50")
    assert food.percentage_change == pytest.approx(50.0)


def test_amounts_are_taken_as_stored():
    data = aggregate([_txn(100, "Food"), _txn(-20, "Food")], WEEK)
    assert data.total_expenses == Decimal("80")
