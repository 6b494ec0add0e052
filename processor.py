from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

import recurrence
from data_service import RecurringStore
from models import Transaction
from schemas import TransactionIn

logger = logging.getLogger(__name__)


class OccurrenceState(str, Enum):
    pending = "pending"
    not_due = "not_due"
    retired = "retired"
    due = "due"
    materializing = "materializing"
    materialized = "materialized"
    failed = "failed"


class MaterializationFailure(RuntimeError):
    def __init__(
        self, template_id: int, occurrence_date: datetime, cause: BaseException
    ) -> None:
        super().__init__(
            f"Failed to materialize template {template_id} "
            f"for {occurrence_date.date().isoformat()}: {cause}"
        )
        self.template_id = template_id
        self.occurrence_date = occurrence_date
        self.cause = cause


@dataclass
class TemplateOutcome:
    template_id: int
    state: OccurrenceState = OccurrenceState.pending
    materialized: list[datetime] = field(default_factory=list)
    error: Optional[MaterializationFailure] = None


@dataclass
class ProcessResult:
    processed_count: int = 0
    errors: list[MaterializationFailure] = field(default_factory=list)
    outcomes: list[TemplateOutcome] = field(default_factory=list)


class RecurringTransactionProcessor:
    """Materializes due occurrences of recurring templates.

    Each occurrence is written together with its template's new
    ``last_materialized_date`` in one store call. A failure on one template is
    recorded and the batch carries on; the failed template is not advanced, so
    the same occurrence is attempted again next run. The store skips an
    occurrence key it already holds and still advances the template.
    """

    def __init__(
        self,
        store: RecurringStore,
        *,
        max_catch_up: int = 1,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        if max_catch_up < 1:
            raise ValueError("max_catch_up must be at least 1")
        self.store = store
        self.max_catch_up = max_catch_up
        self.clock = clock

    async def process_due(self, now: Optional[datetime] = None) -> ProcessResult:
        now = now or self.clock()
        templates = await self.store.list_recurring_templates()
        result = ProcessResult()
        for template in templates:
            outcome = await self._process_template(template, now)
            result.outcomes.append(outcome)
            result.processed_count += len(outcome.materialized)
            if outcome.error is not None:
                result.errors.append(outcome.error)
        logger.info(
            f"recurring_run: templates={len(templates)} "
            f"processed={result.processed_count} errors={len(result.errors)}"
        )
        return result

    async def _process_template(
        self, template: Transaction, now: datetime
    ) -> TemplateOutcome:
        outcome = TemplateOutcome(template_id=template.id)
        for _ in range(self.max_catch_up):
            if not recurrence.is_due(template, now):
                if not outcome.materialized:
                    outcome.state = (
                        OccurrenceState.retired
                        if recurrence.is_retired(template)
                        else OccurrenceState.not_due
                    )
                break
            outcome.state = OccurrenceState.due
            occurrence_date = recurrence.next_occurrence_date(template)

            outcome.state = OccurrenceState.materializing
            try:
                await self.store.materialize(
                    template.id, self._occurrence_payload(template, occurrence_date)
                )
            except Exception as exc:
                failure = MaterializationFailure(template.id, occurrence_date, exc)
                logger.warning(f"recurring_failed: {failure}", exc_info=exc)
                outcome.state = OccurrenceState.failed
                outcome.error = failure
                return outcome

            # mirror what the store now holds so catch-up can continue
            template.last_materialized_date = occurrence_date
            outcome.materialized.append(occurrence_date)
            outcome.state = OccurrenceState.materialized
        return outcome

    @staticmethod
    def _occurrence_payload(
        template: Transaction, occurrence_date: datetime
    ) -> TransactionIn:
        return TransactionIn(
            amount=template.amount,
            type=template.type,
            category=template.category,
            description=template.description or "",
            notes=template.notes,
            date=occurrence_date,
            account_id=template.account_id,
            parent_template_id=template.id,
            occurrence_key=recurrence.occurrence_key(template, occurrence_date),
        )


class RecurringProcessingGate:
    """Runs the processor on read, at most once per ``interval``."""

    def __init__(
        self,
        processor: RecurringTransactionProcessor,
        *,
        interval: timedelta = timedelta(hours=24),
        last_processed: Optional[datetime] = None,
    ) -> None:
        self.processor = processor
        self.interval = interval
        self.last_processed = last_processed
        self.last_result: Optional[ProcessResult] = None
        self._lock = asyncio.Lock()

    def should_process(self, now: datetime) -> bool:
        if self.last_processed is None:
            return True
        return now - self.last_processed >= self.interval

    async def run_if_stale(
        self, now: Optional[datetime] = None
    ) -> Optional[ProcessResult]:
        now = now or self.processor.clock()
        async with self._lock:
            if not self.should_process(now):
                return None
            return await self._run(now)

    async def run(self, now: Optional[datetime] = None) -> ProcessResult:
        now = now or self.processor.clock()
        async with self._lock:
            return await self._run(now)

    async def _run(self, now: datetime) -> ProcessResult:
        # claimed before awaiting so a concurrent caller sees the gate closed
        self.last_processed = now
        result = await self.processor.process_due(now)
        self.last_result = result
        return result
