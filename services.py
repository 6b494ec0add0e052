from __future__ import annotations

import logging
from datetime import datetime, time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

import aggregation
import recurrence
from models import Category, Transaction
from periods import DateRange, previous_range, shift_months
from schemas import (
    CategoryIn,
    CategorySpending,
    DailySpending,
    PeriodComparison,
    RecurringPattern,
    SpendingData,
    TransactionIn,
    TransactionUpdate,
)

logger = logging.getLogger(__name__)


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Category]:
        stmt = select(Category).order_by(Category.type, Category.name)
        return self.session.scalars(stmt).all()

    def create(self, data: CategoryIn) -> Category:
        existing = self.session.scalar(
            select(Category).where(
                Category.type == data.type, Category.name == data.name.strip()
            )
        )
        if existing:
            raise ValueError("Category already exists")
        category = Category(
            name=data.name.strip(),
            type=data.type,
            color=data.color,
            budget_limit=data.budget_limit,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category


class TransactionService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, data: TransactionIn) -> Transaction:
        if data.parent_template_id is not None:
            template = self.session.get(Transaction, data.parent_template_id)
            if not template or not template.is_recurring:
                raise ValueError("Recurring template not found")
            if data.occurrence_key and self.occurrence_exists(
                data.parent_template_id, data.occurrence_key
            ):
                raise ValueError(
                    f"Occurrence {data.occurrence_key} already materialized"
                )

        txn = self.build(data)
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def occurrence_exists(self, template_id: int, occurrence_key: str) -> bool:
        stmt = (
            select(Transaction.id)
            .where(
                Transaction.parent_template_id == template_id,
                Transaction.occurrence_key == occurrence_key,
            )
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none() is not None

    @staticmethod
    def build(data: TransactionIn) -> Transaction:
        return Transaction(
            amount=data.amount,
            type=data.type,
            category=data.category.strip(),
            description=data.description,
            notes=data.notes,
            date=data.date,
            account_id=data.account_id,
            receipt_id=data.receipt_id,
            is_recurring=data.is_recurring,
            recurring_interval=data.recurring_interval,
            recurring_day=data.recurring_day,
            recurring_end_date=data.recurring_end_date,
            last_materialized_date=data.date if data.is_recurring else None,
            parent_template_id=data.parent_template_id,
            occurrence_key=data.occurrence_key,
        )

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn:
            raise ValueError("Transaction not found")
        return txn

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        txn = self.get(transaction_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(txn, field, value)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()

    def all_for_range(self, date_range: DateRange) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.date.between(date_range.start_date, date_range.end_date))
            .order_by(Transaction.date.asc(), Transaction.id.asc())
        )
        return self.session.scalars(stmt).all()

    def recent(self, limit: int = 5) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .limit(limit)
        )
        return self.session.scalars(stmt).all()


class RecurringTemplateService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(self) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.is_recurring.is_(True))
            .order_by(Transaction.id)
        )
        return self.session.scalars(stmt).all()

    def get(self, template_id: int) -> Transaction:
        template = self.session.get(Transaction, template_id)
        if not template or not template.is_recurring:
            raise ValueError("Recurring template not found")
        return template

    def occurrences(self, template_id: int) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.parent_template_id == template_id)
            .order_by(Transaction.date)
        )
        return self.session.scalars(stmt).all()

    def mark_materialized(self, template_id: int, occurrence_date: datetime) -> None:
        self._advance(self.get(template_id), occurrence_date)
        self.session.commit()

    def materialize(
        self, template_id: int, data: TransactionIn
    ) -> Optional[Transaction]:
        """Insert one occurrence and advance its template in a single commit.

        An occurrence whose key is already stored is not inserted again; the
        template is still advanced past it. Returns the new row, or ``None``
        when the occurrence already existed.
        """
        template = self.get(template_id)
        transactions = TransactionService(self.session)
        txn = None
        if data.occurrence_key and transactions.occurrence_exists(
            template_id, data.occurrence_key
        ):
            logger.info(
                f"recurring_occurrence_exists: template={template_id} "
                f"key={data.occurrence_key}"
            )
        else:
            txn = transactions.build(data)
            self.session.add(txn)
        self._advance(template, data.date)
        self.session.commit()
        if txn is not None:
            self.session.refresh(txn)
        return txn

    def _advance(self, template: Transaction, occurrence_date: datetime) -> None:
        current = template.last_materialized_date or template.date
        if occurrence_date <= current:
            logger.info(
                f"recurring_advance_skipped: template={template.id} "
                f"current={current.isoformat()} requested={occurrence_date.isoformat()}"
            )
            return
        template.last_materialized_date = occurrence_date

    def detect_patterns(self) -> list[RecurringPattern]:
        stmt = select(Transaction).order_by(Transaction.date, Transaction.id)
        return recurrence.detect_recurring_patterns(self.session.scalars(stmt))

    def end(self, template_id: int, end_date: Optional[datetime]) -> Transaction:
        template = self.get(template_id)
        template.recurring_end_date = end_date
        self.session.commit()
        self.session.refresh(template)
        return template


class MetricsService:
    def __init__(
        self,
        session: Session,
        *,
        trend_threshold: float = aggregation.TREND_THRESHOLD_PERCENT,
    ) -> None:
        self.session = session
        self.trend_threshold = trend_threshold
        self.transactions = TransactionService(session)

    def spending_data(
        self, date_range: DateRange, *, include_trend: bool = False
    ) -> SpendingData:
        current = self.transactions.all_for_range(date_range)
        previous = self.transactions.all_for_range(previous_range(date_range))
        categories = CategoryService(self.session).list_all()
        data = aggregation.aggregate(
            current,
            date_range,
            previous,
            categories,
            trend_threshold=self.trend_threshold,
        )
        if include_trend:
            months = 6
            history_start = shift_months(
                date_range.start_date.date().replace(day=1), -(months - 1)
            )
            history = self.transactions.all_for_range(
                DateRange(
                    datetime.combine(history_start, time.min),
                    date_range.end_date,
                    "custom",
                )
            )
            data.monthly_trend = aggregation.monthly_trend(
                history, date_range, months=months
            )
        return data

    def compare(
        self, date_range: DateRange, comparison_range: DateRange
    ) -> PeriodComparison:
        return aggregation.compare_periods(
            self.spending_data(date_range), self.spending_data(comparison_range)
        )

    def category_breakdown(self, date_range: DateRange) -> list[CategorySpending]:
        return self.spending_data(date_range).category_breakdown

    def daily_breakdown(self, date_range: DateRange) -> list[DailySpending]:
        return aggregation.daily_breakdown(
            self.transactions.all_for_range(date_range), date_range
        )
