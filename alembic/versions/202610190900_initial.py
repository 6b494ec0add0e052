"""initial schema

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type", sa.Enum("income", "expense", name="transactiontype"), nullable=False
        ),
        sa.Column("color", sa.String(length=7)),
        sa.Column("budget_limit", sa.Numeric(12, 2)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("type", "name", name="uq_category_type_name"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "type", sa.Enum("income", "expense", name="transactiontype"), nullable=False
        ),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=200), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("account_id", sa.String(length=64), nullable=False),
        sa.Column("receipt_id", sa.String(length=64)),
        sa.Column(
            "is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "recurring_interval",
            sa.Enum("weekly", "monthly", "yearly", name="recurringinterval"),
        ),
        sa.Column("recurring_day", sa.Integer()),
        sa.Column("recurring_end_date", sa.DateTime()),
        sa.Column("last_materialized_date", sa.DateTime()),
        sa.Column(
            "parent_template_id",
            sa.Integer(),
            sa.ForeignKey("transactions.id", ondelete="SET NULL"),
        ),
        sa.Column("occurrence_key", sa.String(length=64)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "parent_template_id",
            "occurrence_key",
            name="uq_txn_template_occurrence",
        ),
        sa.CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        sa.CheckConstraint(
            "recurring_day IS NULL OR (recurring_day >= 0 AND recurring_day <= 31)",
            name="ck_transactions_recurring_day_range",
        ),
    )
    op.create_index("ix_transactions_date", "transactions", ["date"])
    op.create_index("ix_transactions_type_date", "transactions", ["type", "date"])
    op.create_index(
        "ix_transactions_is_recurring", "transactions", ["is_recurring"]
    )


def downgrade():
    op.drop_index("ix_transactions_is_recurring", table_name="transactions")
    op.drop_index("ix_transactions_type_date", table_name="transactions")
    op.drop_index("ix_transactions_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("categories")
