import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        default_period: str,
        recent_transactions_count: int,
        trend_threshold_percent: float,
        recurring_max_catch_up: int,
        recurring_interval_hours: float,
    ) -> None:
        self.database_url = database_url
        self.default_period = default_period
        self.recent_transactions_count = recent_transactions_count
        self.trend_threshold_percent = trend_threshold_percent
        self.recurring_max_catch_up = recurring_max_catch_up
        self.recurring_interval_hours = recurring_interval_hours


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINSYNC_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("FINSYNC_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "finsync.db"
        database_url = f"sqlite:///{default_db}"
    default_period = os.getenv("FINSYNC_DEFAULT_PERIOD", "week")
    recent_transactions_count = int(os.getenv("FINSYNC_RECENT_COUNT", "5"))
    trend_threshold_percent = float(os.getenv("FINSYNC_TREND_THRESHOLD", "5"))
    recurring_max_catch_up = int(os.getenv("FINSYNC_RECURRING_MAX_CATCH_UP", "1"))
    recurring_interval_hours = float(
        os.getenv("FINSYNC_RECURRING_INTERVAL_HOURS", "24")
    )
    return Settings(
        database_url=database_url,
        default_period=default_period,
        recent_transactions_count=recent_transactions_count,
        trend_threshold_percent=trend_threshold_percent,
        recurring_max_catch_up=recurring_max_catch_up,
        recurring_interval_hours=recurring_interval_hours,
    )
