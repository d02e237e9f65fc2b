import datetime as dt
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base
from domain import EndKind, Frequency


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class CategoryRecord(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    parent_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    limit_minor_units: Mapped[Optional[int]] = mapped_column(Integer)
    limit_currency: Mapped[Optional[str]] = mapped_column(String(3))
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        CheckConstraint(
            "limit_minor_units IS NULL OR limit_minor_units >= 0",
            name="ck_category_limit_positive",
        ),
        CheckConstraint(
            "(limit_minor_units IS NULL) = (limit_currency IS NULL)",
            name="ck_category_limit_currency",
        ),
    )


class RecurrenceTemplateRecord(Base, TimestampMixin):
    __tablename__ = "recurrence_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_minor_units: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    frequency: Mapped[Frequency] = mapped_column(SAEnum(Frequency), nullable=False)
    interval_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    end_kind: Mapped[EndKind] = mapped_column(
        SAEnum(EndKind), nullable=False, default=EndKind.never
    )
    end_count: Mapped[Optional[int]] = mapped_column(Integer)
    end_until: Mapped[Optional[date]] = mapped_column(Date)
    weekday: Mapped[Optional[int]] = mapped_column(Integer)
    day_of_month: Mapped[Optional[int]] = mapped_column(Integer)
    note: Mapped[Optional[str]] = mapped_column(Text)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_materialized_date: Mapped[Optional[date]] = mapped_column(Date)

    __table_args__ = (
        CheckConstraint("interval_count > 0", name="ck_template_interval_positive"),
    )


class TransactionRecord(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    amount_minor_units: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    note: Mapped[Optional[str]] = mapped_column(Text)
    # Version chain links; no foreign keys so a void marker and its
    # successor can be written in either order.
    amends: Mapped[Optional[int]] = mapped_column(Integer)
    superseded_by: Mapped[Optional[int]] = mapped_column(Integer)
    voided: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    template_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("recurrence_templates.id")
    )
    occurrence_date: Mapped[Optional[dt.date]] = mapped_column(Date)

    __table_args__ = (
        Index("ix_transactions_date_seq", "date", "seq"),
        Index("ix_transactions_category_date", "category_id", "date"),
        Index("ix_transactions_template_occurrence", "template_id", "occurrence_date"),
    )
