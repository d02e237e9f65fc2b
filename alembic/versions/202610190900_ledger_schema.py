"""ledger schema

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


FREQUENCY = sa.Enum("daily", "weekly", "monthly", "yearly", name="frequency")
END_KIND = sa.Enum("never", "after_count", "until_date", name="endkind")


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("limit_minor_units", sa.Integer()),
        sa.Column("limit_currency", sa.String(length=3)),
        sa.Column("archived_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "limit_minor_units IS NULL OR limit_minor_units >= 0",
            name="ck_category_limit_positive",
        ),
        sa.CheckConstraint(
            "(limit_minor_units IS NULL) = (limit_currency IS NULL)",
            name="ck_category_limit_currency",
        ),
    )

    op.create_table(
        "recurrence_templates",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("amount_minor_units", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("frequency", FREQUENCY, nullable=False),
        sa.Column("interval_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("end_kind", END_KIND, nullable=False, server_default="never"),
        sa.Column("end_count", sa.Integer()),
        sa.Column("end_until", sa.Date()),
        sa.Column("weekday", sa.Integer()),
        sa.Column("day_of_month", sa.Integer()),
        sa.Column("note", sa.Text()),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_materialized_date", sa.Date()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("interval_count > 0", name="ck_template_interval_positive"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount_minor_units", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False
        ),
        sa.Column("note", sa.Text()),
        sa.Column("amends", sa.Integer()),
        sa.Column("superseded_by", sa.Integer()),
        sa.Column("voided", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "template_id", sa.Integer(), sa.ForeignKey("recurrence_templates.id")
        ),
        sa.Column("occurrence_date", sa.Date()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_transactions_date_seq", "transactions", ["date", "seq"])
    op.create_index(
        "ix_transactions_category_date", "transactions", ["category_id", "date"]
    )
    op.create_index(
        "ix_transactions_template_occurrence",
        "transactions",
        ["template_id", "occurrence_date"],
    )


def downgrade():
    op.drop_index("ix_transactions_template_occurrence", table_name="transactions")
    op.drop_index("ix_transactions_category_date", table_name="transactions")
    op.drop_index("ix_transactions_date_seq", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("recurrence_templates")
    op.drop_table("categories")
    END_KIND.drop(op.get_bind(), checkfirst=True)
    FREQUENCY.drop(op.get_bind(), checkfirst=True)
