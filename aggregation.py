from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from models import Category, Transaction, TransactionType
from periods import DateRange, days_in_range, shift_months
from schemas import (
    CategoryChange,
    CategorySpending,
    DailySpending,
    MonthlySpending,
    PeriodComparison,
    SpendingData,
)

DEFAULT_CATEGORY_COLOR = "#007AFF"
TREND_THRESHOLD_PERCENT = 5.0
TOP_CATEGORY_COUNT = 5

ZERO = Decimal("0")


@dataclass
class _CategoryTotal:
    label: str
    amount: Decimal = ZERO
    count: int = 0


def _amount(txn: Transaction) -> Decimal:
    # amounts are positive; direction lives in ``type``
    return Decimal(str(txn.amount))


def total_income(transactions: Iterable[Transaction]) -> Decimal:
    return sum(
        (_amount(t) for t in transactions if t.type == TransactionType.income),
        ZERO,
    )


def total_expenses(transactions: Iterable[Transaction]) -> Decimal:
    return sum(
        (_amount(t) for t in transactions if t.type == TransactionType.expense),
        ZERO,
    )


def _catalog(categories: Optional[Iterable[Category]]) -> dict[str, Category]:
    lookup: dict[str, Category] = {}
    for category in categories or []:
        lookup[str(category.id)] = category
        lookup.setdefault(category.name, category)
    return lookup


def _category_totals(
    transactions: Iterable[Transaction], catalog: dict[str, Category]
) -> dict[str, _CategoryTotal]:
    totals: dict[str, _CategoryTotal] = {}
    for txn in transactions:
        if txn.type != TransactionType.expense:
            continue
        category = catalog.get(txn.category)
        key = str(category.id) if category else txn.category
        bucket = totals.get(key)
        if bucket is None:
            bucket = totals[key] = _CategoryTotal(label=txn.category)
        bucket.amount += _amount(txn)
        bucket.count += 1
    return totals


def _trend(amount: Decimal, previous: Decimal, threshold: float) -> str:
    if previous <= 0:
        return "stable"
    change_percent = float((amount - previous) / previous * 100)
    if abs(change_percent) > threshold:
        return "up" if change_percent > 0 else "down"
    return "stable"


def category_breakdown(
    transactions: Sequence[Transaction],
    previous_transactions: Optional[Sequence[Transaction]] = None,
    categories: Optional[Iterable[Category]] = None,
    *,
    trend_threshold: float = TREND_THRESHOLD_PERCENT,
) -> list[CategorySpending]:
    """Per-category expense totals, largest first.

    Percentages are shares of the expenses in ``transactions``. Trends need
    ``previous_transactions`` from the preceding window of the same length;
    without it every category is ``stable`` with a previous amount of zero.
    """
    catalog = _catalog(categories)
    current = _category_totals(transactions, catalog)
    previous = (
        _category_totals(previous_transactions, catalog)
        if previous_transactions is not None
        else {}
    )
    expenses = sum((bucket.amount for bucket in current.values()), ZERO)

    breakdown: list[CategorySpending] = []
    for key, bucket in current.items():
        category = catalog.get(key)
        percentage = float(bucket.amount / expenses * 100) if expenses > 0 else 0.0
        previous_amount = previous[key].amount if key in previous else ZERO
        trend = (
            _trend(bucket.amount, previous_amount, trend_threshold)
            if previous_transactions is not None
            else "stable"
        )
        budget_limit = (
            Decimal(str(category.budget_limit))
            if category and category.budget_limit
            else None
        )
        budget_used = (
            float(bucket.amount / budget_limit * 100) if budget_limit else None
        )
        color = category.color if category and category.color else None
        breakdown.append(
            CategorySpending(
                category_id=key,
                category_name=category.name if category else bucket.label,
                category_color=color or DEFAULT_CATEGORY_COLOR,
                amount=bucket.amount,
                percentage=min(percentage, 100.0),
                transaction_count=bucket.count,
                trend=trend,
                budget_limit=budget_limit,
                budget_used=budget_used,
                previous_period_amount=previous_amount,
            )
        )
    breakdown.sort(key=lambda item: item.category_id)
    breakdown.sort(key=lambda item: item.amount, reverse=True)
    return breakdown


def aggregate(
    transactions: Sequence[Transaction],
    date_range: DateRange,
    previous_transactions: Optional[Sequence[Transaction]] = None,
    categories: Optional[Iterable[Category]] = None,
    *,
    trend_threshold: float = TREND_THRESHOLD_PERCENT,
) -> SpendingData:
    """Reduce ``transactions`` into a ``SpendingData`` summary.

    The caller restricts ``transactions`` to ``date_range``; nothing here
    filters by date. The range is only used for the daily average.
    """
    categories = list(categories) if categories is not None else None
    income = total_income(transactions)
    expenses = total_expenses(transactions)
    breakdown = category_breakdown(
        transactions,
        previous_transactions,
        categories,
        trend_threshold=trend_threshold,
    )
    return SpendingData(
        total_income=income,
        total_expenses=expenses,
        category_breakdown=breakdown,
        daily_average=expenses / max(1, days_in_range(date_range)),
        top_categories=breakdown[:TOP_CATEGORY_COUNT],
        period=date_range,
    )


def _primary_category(transactions: Sequence[Transaction]) -> Optional[str]:
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for txn in transactions:
        if txn.type == TransactionType.expense:
            totals[txn.category] += _amount(txn)
    if not totals:
        return None
    return max(sorted(totals), key=lambda name: totals[name])


def daily_breakdown(
    transactions: Sequence[Transaction], date_range: DateRange
) -> list[DailySpending]:
    by_day: dict[date, list[Transaction]] = defaultdict(list)
    for txn in transactions:
        by_day[txn.date.date()].append(txn)

    out: list[DailySpending] = []
    current = date_range.start_date.date()
    last = date_range.end_date.date()
    while current <= last:
        day_txns = by_day.get(current, [])
        income = total_income(day_txns)
        expenses = total_expenses(day_txns)
        out.append(
            DailySpending(
                date=current.isoformat(),
                income=income,
                expenses=expenses,
                net=income - expenses,
                transaction_count=len(day_txns),
                primary_category=_primary_category(day_txns),
            )
        )
        current += timedelta(days=1)
    return out


def monthly_trend(
    transactions: Sequence[Transaction],
    date_range: DateRange,
    *,
    months: int = 6,
) -> list[MonthlySpending]:
    end_month = date_range.end_date.date().replace(day=1)
    start_month = shift_months(
        date_range.start_date.date().replace(day=1), -(months - 1)
    )

    by_month: dict[tuple[int, int], list[Transaction]] = defaultdict(list)
    for txn in transactions:
        by_month[(txn.date.year, txn.date.month)].append(txn)

    out: list[MonthlySpending] = []
    current = start_month
    while current <= end_month:
        month_txns = by_month.get((current.year, current.month), [])
        income = total_income(month_txns)
        expenses = total_expenses(month_txns)
        savings = income - expenses
        breakdown = category_breakdown(month_txns)
        out.append(
            MonthlySpending(
                month=f"{current.year:04d}-{current.month:02d}",
                year=current.year,
                month_name=current.strftime("%B"),
                total_income=income,
                total_expenses=expenses,
                net_income=savings,
                transaction_count=len(month_txns),
                top_category=breakdown[0].category_name if breakdown else None,
                savings=savings,
                savings_rate=float(savings / income * 100) if income > 0 else 0.0,
            )
        )
        current = shift_months(current, 1)
    return out


def compare_periods(current: SpendingData, comparison: SpendingData) -> PeriodComparison:
    previous_by_id = {c.category_id: c.amount for c in comparison.category_breakdown}
    changes = []
    for item in current.category_breakdown:
        comparison_amount = previous_by_id.get(item.category_id, ZERO)
        change = item.amount - comparison_amount
        changes.append(
            CategoryChange(
                category_id=item.category_id,
                category_name=item.category_name,
                current_amount=item.amount,
                comparison_amount=comparison_amount,
                change=change,
                percentage_change=(
                    float(change / comparison_amount * 100)
                    if comparison_amount > 0
                    else 0.0
                ),
            )
        )
    return PeriodComparison(
        current=current,
        comparison=comparison,
        total_expenses_change=current.total_expenses - comparison.total_expenses,
        total_income_change=current.total_income - comparison.total_income,
        net_income_change=current.net_income - comparison.net_income,
        category_changes=changes,
    )
