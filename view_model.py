from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from data_service import SpendingDataSource
from periods import DateRange, resolve_period
from schemas import CategorySpending, SpendingData

logger = logging.getLogger(__name__)

LOAD_ERROR_MESSAGE = "Failed to load spending data"
DEFAULT_PERIOD = "week"
RECENT_TRANSACTIONS_COUNT = 5

Listener = Callable[["PeriodViewState"], None]


class FetchFailure(RuntimeError):
    def __init__(self, operation: str, period: str, cause: BaseException) -> None:
        super().__init__(f"{operation} failed for period {period}: {cause!r}")
        self.operation = operation
        self.period = period
        self.cause = cause


@dataclass(frozen=True)
class LoadToken:
    generation: int
    period: str
    date_range: DateRange
    refresh: bool = False


@dataclass
class PeriodViewState:
    selected_period: str = DEFAULT_PERIOD
    spending_data: Optional[SpendingData] = None
    recent_transactions: list[Any] = field(default_factory=list)
    category_breakdown: list[CategorySpending] = field(default_factory=list)
    is_loading: bool = True
    is_refreshing: bool = False
    error_message: Optional[str] = None


async def _settle(fetch: Callable[..., Awaitable[Any]], *args: Any) -> Any:
    return await fetch(*args)


class PeriodViewModel:
    """Period selection and the three summary fetches behind the home screen.

    ``mount``, ``change_period`` and ``refresh`` update state right away and
    return the ``asyncio.Task`` doing the loading. Every load carries a
    ``LoadToken``; results are committed only while that token is still the
    latest one, so a slow fetch for an abandoned period never overwrites a
    newer selection.
    """

    def __init__(
        self,
        data_source: SpendingDataSource,
        *,
        period: str = DEFAULT_PERIOD,
        recent_count: int = RECENT_TRANSACTIONS_COUNT,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.data_source = data_source
        self.recent_count = recent_count
        self.clock = clock
        self.state = PeriodViewState(selected_period=period)
        self._generation = 0
        self._listeners: list[Listener] = []
        self._pending: set[asyncio.Task] = set()

    @property
    def selected_period(self) -> str:
        return self.state.selected_period

    @property
    def spending_data(self) -> Optional[SpendingData]:
        return self.state.spending_data

    @property
    def recent_transactions(self) -> list[Any]:
        return self.state.recent_transactions

    @property
    def category_breakdown(self) -> list[CategorySpending]:
        return self.state.category_breakdown

    @property
    def is_loading(self) -> bool:
        return self.state.is_loading

    @property
    def is_refreshing(self) -> bool:
        return self.state.is_refreshing

    @property
    def error_message(self) -> Optional[str]:
        return self.state.error_message

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def resolve_range(self, period: str) -> DateRange:
        return resolve_period(period, self.clock(), live=True)

    def mount(self) -> asyncio.Task:
        return self._start_load(self.resolve_range(self.state.selected_period))

    def change_period(self, new_period: str) -> Optional[asyncio.Task]:
        if new_period == self.state.selected_period:
            return None
        date_range = self.resolve_range(new_period)
        self.state.selected_period = new_period
        return self._start_load(date_range)

    def refresh(self) -> asyncio.Task:
        return self._start_load(
            self.resolve_range(self.state.selected_period), refresh=True
        )

    async def settle(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _start_load(
        self, date_range: DateRange, *, refresh: bool = False
    ) -> asyncio.Task:
        self._generation += 1
        token = LoadToken(
            generation=self._generation,
            period=self.state.selected_period,
            date_range=date_range,
            refresh=refresh,
        )
        self.state.error_message = None
        if refresh:
            self.state.is_refreshing = True
        else:
            self.state.is_loading = True
        self._notify()

        task = asyncio.get_running_loop().create_task(self._load(token))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def _is_current(self, token: LoadToken) -> bool:
        return (
            token.generation == self._generation
            and token.period == self.state.selected_period
        )

    async def _load(self, token: LoadToken) -> bool:
        results = await asyncio.gather(
            _settle(self.data_source.fetch_spending_data, token.date_range),
            _settle(self.data_source.fetch_recent_transactions, self.recent_count),
            _settle(self.data_source.fetch_category_breakdown, token.date_range),
            return_exceptions=True,
        )
        if not self._is_current(token):
            logger.debug(
                f"period_load_discarded: period={token.period} "
                f"generation={token.generation} current={self._generation}"
            )
            return False

        operations = (
            "fetch_spending_data",
            "fetch_recent_transactions",
            "fetch_category_breakdown",
        )
        failures = [
            FetchFailure(operation, token.period, result)
            for operation, result in zip(operations, results)
            if isinstance(result, BaseException)
        ]
        if failures:
            for failure in failures:
                logger.warning(f"period_load_failed: {failure}", exc_info=failure.cause)
            self.state.spending_data = None
            self.state.recent_transactions = []
            self.state.category_breakdown = []
            self.state.error_message = LOAD_ERROR_MESSAGE
        else:
            spending, recent, breakdown = results
            self.state.spending_data = spending
            self.state.recent_transactions = list(recent)
            self.state.category_breakdown = list(breakdown)
            self.state.error_message = None
        self.state.is_loading = False
        self.state.is_refreshing = False
        self._notify()
        return not failures

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = replace(
            self.state,
            recent_transactions=list(self.state.recent_transactions),
            category_breakdown=list(self.state.category_breakdown),
        )
        for listener in list(self._listeners):
            listener(snapshot)
