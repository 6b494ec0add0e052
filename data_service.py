import asyncio
from datetime import datetime
from typing import Optional, Protocol, Sequence

from sqlalchemy.orm import Session, sessionmaker

import aggregation
from database import session_scope
from models import Transaction
from periods import DateRange
from schemas import CategorySpending, SpendingData, TransactionIn, TransactionOut
from services import MetricsService, RecurringTemplateService, TransactionService


class SpendingDataSource(Protocol):
    async def fetch_spending_data(self, date_range: DateRange) -> SpendingData: ...

    async def fetch_recent_transactions(self, count: int) -> Sequence[object]: ...

    async def fetch_category_breakdown(
        self, date_range: DateRange
    ) -> list[CategorySpending]: ...


class RecurringStore(Protocol):
    async def list_recurring_templates(self) -> Sequence[Transaction]: ...

    async def materialize(
        self, template_id: int, data: TransactionIn
    ) -> Optional[TransactionOut]: ...

    async def create_transaction(self, data: TransactionIn) -> TransactionOut: ...

    async def mark_materialized(
        self, template_id: int, occurrence_date: datetime
    ) -> None: ...


class DataService:
    """Async access to the SQL store for the view model and the processor.

    Each call opens its own session and runs in a worker thread so the
    event loop is never blocked by database I/O.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        trend_threshold: float = aggregation.TREND_THRESHOLD_PERCENT,
    ) -> None:
        self.session_factory = session_factory
        self.trend_threshold = trend_threshold

    async def fetch_spending_data(
        self, date_range: DateRange, *, include_trend: bool = False
    ) -> SpendingData:
        return await asyncio.to_thread(self._spending_data, date_range, include_trend)

    async def fetch_recent_transactions(self, count: int) -> list[TransactionOut]:
        return await asyncio.to_thread(self._recent, count)

    async def fetch_category_breakdown(
        self, date_range: DateRange
    ) -> list[CategorySpending]:
        return await asyncio.to_thread(self._category_breakdown, date_range)

    async def list_recurring_templates(self) -> list[Transaction]:
        return await asyncio.to_thread(self._templates)

    async def create_transaction(self, data: TransactionIn) -> TransactionOut:
        return await asyncio.to_thread(self._create, data)

    async def mark_materialized(
        self, template_id: int, occurrence_date: datetime
    ) -> None:
        await asyncio.to_thread(self._mark_materialized, template_id, occurrence_date)

    async def materialize(
        self, template_id: int, data: TransactionIn
    ) -> Optional[TransactionOut]:
        return await asyncio.to_thread(self._materialize, template_id, data)

    def _spending_data(
        self, date_range: DateRange, include_trend: bool = False
    ) -> SpendingData:
        with session_scope(self.session_factory) as session:
            metrics = MetricsService(session, trend_threshold=self.trend_threshold)
            return metrics.spending_data(date_range, include_trend=include_trend)

    def _category_breakdown(self, date_range: DateRange) -> list[CategorySpending]:
        with session_scope(self.session_factory) as session:
            metrics = MetricsService(session, trend_threshold=self.trend_threshold)
            return metrics.category_breakdown(date_range)

    def _recent(self, count: int) -> list[TransactionOut]:
        with session_scope(self.session_factory) as session:
            return [
                TransactionOut.model_validate(txn)
                for txn in TransactionService(session).recent(count)
            ]

    def _templates(self) -> list[Transaction]:
        with session_scope(self.session_factory) as session:
            return list(RecurringTemplateService(session).list())

    def _create(self, data: TransactionIn) -> TransactionOut:
        with session_scope(self.session_factory) as session:
            txn = TransactionService(session).create(data)
            return TransactionOut.model_validate(txn)

    def _mark_materialized(self, template_id: int, occurrence_date: datetime) -> None:
        with session_scope(self.session_factory) as session:
            RecurringTemplateService(session).mark_materialized(
                template_id, occurrence_date
            )

    def _materialize(
        self, template_id: int, data: TransactionIn
    ) -> Optional[TransactionOut]:
        with session_scope(self.session_factory) as session:
            txn = RecurringTemplateService(session).materialize(template_id, data)
            return TransactionOut.model_validate(txn) if txn is not None else None
