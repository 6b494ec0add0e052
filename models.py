from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class RecurringInterval(str, Enum):
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


MONEY = Numeric(12, 2, asdecimal=True)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    color: Mapped[Optional[str]] = mapped_column(String(7))
    budget_limit: Mapped[Optional[Decimal]] = mapped_column(MONEY)

    __table_args__ = (
        UniqueConstraint("type", "name", name="uq_category_type_name"),
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    account_id: Mapped[str] = mapped_column(String(64), nullable=False)
    receipt_id: Mapped[Optional[str]] = mapped_column(String(64))

    # recurring template fields
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurring_interval: Mapped[Optional[RecurringInterval]] = mapped_column(
        SAEnum(RecurringInterval)
    )
    recurring_day: Mapped[Optional[int]] = mapped_column(Integer)
    recurring_end_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_materialized_date: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # materialized occurrence fields
    parent_template_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("transactions.id", ondelete="SET NULL")
    )
    occurrence_key: Mapped[Optional[str]] = mapped_column(String(64))

    parent_template: Mapped[Optional["Transaction"]] = relationship(
        "Transaction", remote_side="Transaction.id", back_populates="occurrences"
    )
    occurrences: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="parent_template"
    )

    __table_args__ = (
        UniqueConstraint(
            "parent_template_id",
            "occurrence_key",
            name="uq_txn_template_occurrence",
        ),
        Index("ix_transactions_date", "date"),
        Index("ix_transactions_type_date", "type", "date"),
        Index("ix_transactions_is_recurring", "is_recurring"),
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        CheckConstraint(
            "recurring_day IS NULL OR (recurring_day >= 0 AND recurring_day <= 31)",
            name="ck_transactions_recurring_day_range",
        ),
    )
