from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from models import RecurringInterval, TransactionType
from periods import DateRange

Trend = Literal["up", "down", "stable"]


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    budget_limit: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)


class TransactionIn(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    type: TransactionType
    category: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=200)
    notes: Optional[str] = None
    date: datetime
    account_id: str = Field(..., min_length=1, max_length=64)
    receipt_id: Optional[str] = Field(default=None, max_length=64)
    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None
    recurring_day: Optional[int] = Field(default=None, ge=0, le=31)
    recurring_end_date: Optional[datetime] = None
    parent_template_id: Optional[int] = None
    occurrence_key: Optional[str] = Field(default=None, max_length=64)

    @model_validator(mode="after")
    def _check_recurrence(self) -> "TransactionIn":
        if self.is_recurring and self.recurring_interval is None:
            raise ValueError("Recurring transactions need an interval")
        if not self.is_recurring and self.recurring_interval is not None:
            raise ValueError("Interval set on a non-recurring transaction")
        if self.recurring_end_date and self.recurring_end_date < self.date:
            raise ValueError("Recurring end date is before the first occurrence")
        return self


class TransactionUpdate(BaseModel):
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = None
    date: Optional[datetime] = None


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: Decimal
    type: TransactionType
    category: str
    description: str
    notes: Optional[str]
    date: datetime
    account_id: str
    receipt_id: Optional[str]
    is_recurring: bool
    recurring_interval: Optional[RecurringInterval]
    parent_template_id: Optional[int]
    created_at: datetime
    updated_at: datetime


class CategorySpending(BaseModel):
    category_id: str
    category_name: str
    category_color: str = "#007AFF"
    amount: Decimal
    percentage: float = Field(..., ge=0, le=100)
    transaction_count: int = 0
    trend: Trend = "stable"
    budget_limit: Optional[Decimal] = None
    budget_used: Optional[float] = None
    previous_period_amount: Decimal = Decimal("0")


class MonthlySpending(BaseModel):
    month: str
    year: int
    month_name: str
    total_income: Decimal
    total_expenses: Decimal
    net_income: Decimal
    transaction_count: int
    top_category: Optional[str] = None
    savings: Decimal
    savings_rate: float


class DailySpending(BaseModel):
    date: str
    income: Decimal
    expenses: Decimal
    net: Decimal
    transaction_count: int
    primary_category: Optional[str] = None


class SpendingData(BaseModel):
    total_income: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    category_breakdown: list[CategorySpending] = Field(default_factory=list)
    daily_average: Decimal = Decimal("0")
    top_categories: list[CategorySpending] = Field(default_factory=list)
    monthly_trend: list[MonthlySpending] = Field(default_factory=list)
    period: DateRange

    @computed_field
    @property
    def net_income(self) -> Decimal:
        return self.total_income - self.total_expenses


class CategoryChange(BaseModel):
    category_id: str
    category_name: str
    current_amount: Decimal
    comparison_amount: Decimal
    change: Decimal
    percentage_change: float


class PeriodComparison(BaseModel):
    current: SpendingData
    comparison: SpendingData
    total_expenses_change: Decimal
    total_income_change: Decimal
    net_income_change: Decimal
    category_changes: list[CategoryChange] = Field(default_factory=list)


class RecurringPattern(BaseModel):
    frequency: Literal["daily", "weekly", "monthly", "yearly"]
    amount: Decimal
    category: str
    description: str
    type: TransactionType
    occurrences: int
    average_interval_days: float
    last_date: datetime
    next_due_date: datetime
