import logging
from datetime import timedelta
from typing import Iterator, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from sqlalchemy.orm import Session, sessionmaker

from config import Settings, get_settings
from data_service import DataService
from database import build_engine, build_session_factory
from periods import DateRange, InvalidRangeError, previous_range, resolve_period
from processor import RecurringProcessingGate, RecurringTransactionProcessor
from schemas import CategoryIn, TransactionIn, TransactionOut
from services import (
    CategoryService,
    MetricsService,
    RecurringTemplateService,
    TransactionService,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def period_from_request(request: Request, settings: Settings) -> DateRange:
    params = request.query_params
    period = params.get("period") or settings.default_period
    live = params.get("live", "false").lower() in ("1", "true", "yes")
    try:
        offset = int(params.get("offset", "0"))
        return resolve_period(
            period,
            live=live,
            start=params.get("start"),
            end=params.get("end"),
            offset=offset,
        )
    except (InvalidRangeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker[Session]] = None,
) -> FastAPI:
    settings = settings or get_settings()
    if session_factory is None:
        session_factory = build_session_factory(build_engine(settings.database_url))

    app = FastAPI(title="FinSync")
    data_service = DataService(
        session_factory, trend_threshold=settings.trend_threshold_percent
    )
    processor = RecurringTransactionProcessor(
        data_service, max_catch_up=settings.recurring_max_catch_up
    )
    gate = RecurringProcessingGate(
        processor, interval=timedelta(hours=settings.recurring_interval_hours)
    )
    app.state.settings = settings
    app.state.data_service = data_service
    app.state.processor = processor
    app.state.recurring_gate = gate

    def get_db() -> Iterator[Session]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    def requested_range(request: Request) -> DateRange:
        return period_from_request(request, settings)

    @app.get("/api/summary")
    async def api_summary(
        include_trend: bool = False,
        date_range: DateRange = Depends(requested_range),
    ):
        result = await gate.run_if_stale()
        if result is not None and result.processed_count:
            logger.info(f"summary_read: materialized={result.processed_count}")
        data = await data_service.fetch_spending_data(
            date_range, include_trend=include_trend
        )
        return data.model_dump(mode="json")

    @app.get("/api/transactions/recent")
    def api_recent(count: int = 0, db: Session = Depends(get_db)):
        limit = count or settings.recent_transactions_count
        limit = min(max(limit, 1), 100)
        return [
            TransactionOut.model_validate(txn).model_dump(mode="json")
            for txn in TransactionService(db).recent(limit)
        ]

    @app.get("/api/category-breakdown")
    def api_category_breakdown(
        date_range: DateRange = Depends(requested_range), db: Session = Depends(get_db)
    ):
        service = MetricsService(db, trend_threshold=settings.trend_threshold_percent)
        return [
            item.model_dump(mode="json")
            for item in service.category_breakdown(date_range)
        ]

    @app.get("/api/compare")
    def api_compare(
        request: Request,
        date_range: DateRange = Depends(requested_range),
        db: Session = Depends(get_db),
    ):
        params = request.query_params
        try:
            if params.get("compare_start") or params.get("compare_end"):
                comparison_range = resolve_period(
                    "custom",
                    start=params.get("compare_start"),
                    end=params.get("compare_end"),
                )
            else:
                comparison_range = previous_range(date_range)
        except InvalidRangeError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        service = MetricsService(db, trend_threshold=settings.trend_threshold_percent)
        return service.compare(date_range, comparison_range).model_dump(mode="json")

    @app.get("/api/daily-breakdown")
    def api_daily_breakdown(
        date_range: DateRange = Depends(requested_range), db: Session = Depends(get_db)
    ):
        return [
            item.model_dump(mode="json")
            for item in MetricsService(db).daily_breakdown(date_range)
        ]

    @app.post("/api/transactions", status_code=201)
    def api_create_transaction(payload: TransactionIn, db: Session = Depends(get_db)):
        try:
            txn = TransactionService(db).create(payload)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return TransactionOut.model_validate(txn).model_dump(mode="json")

    @app.post("/api/categories", status_code=201)
    def api_create_category(payload: CategoryIn, db: Session = Depends(get_db)):
        try:
            category = CategoryService(db).create(payload)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"id": category.id, "name": category.name, "type": category.type.value}

    @app.get("/api/recurring")
    def api_recurring(db: Session = Depends(get_db)):
        return [
            TransactionOut.model_validate(t).model_dump(mode="json")
            for t in RecurringTemplateService(db).list()
        ]

    @app.get("/api/recurring/patterns")
    def api_recurring_patterns(db: Session = Depends(get_db)):
        return [
            pattern.model_dump(mode="json")
            for pattern in RecurringTemplateService(db).detect_patterns()
        ]

    @app.post("/api/recurring/process")
    async def api_process_recurring():
        result = await gate.run()
        return {
            "processed_count": result.processed_count,
            "errors": [str(error) for error in result.errors],
            "outcomes": [
                {
                    "template_id": outcome.template_id,
                    "state": outcome.state.value,
                    "materialized": [d.isoformat() for d in outcome.materialized],
                }
                for outcome in result.outcomes
            ],
        }

    return app
