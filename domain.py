from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional

from money import Money


class TransactionKind(str, Enum):
    actual = "actual"
    projected = "projected"


class Frequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


class EndKind(str, Enum):
    never = "never"
    after_count = "after_count"
    until_date = "until_date"


@dataclass(frozen=True)
class Category:
    id: int
    name: str
    parent_id: Optional[int] = None
    monthly_limit: Optional[Money] = None
    archived_at: Optional[datetime] = None

    @property
    def archived(self) -> bool:
        return self.archived_at is not None


@dataclass(frozen=True)
class Transaction:
    id: Optional[int]
    date: date
    amount: Money
    category_id: int
    note: str = ""
    kind: TransactionKind = TransactionKind.actual
    seq: int = 0
    amends: Optional[int] = None
    voided: bool = False
    superseded_by: Optional[int] = None
    template_id: Optional[int] = None
    occurrence_date: Optional[date] = None

    @property
    def is_expense(self) -> bool:
        return self.amount.is_negative()

    @property
    def is_live(self) -> bool:
        return self.kind == TransactionKind.actual and not self.voided


@dataclass(frozen=True)
class EndCondition:
    kind: EndKind = EndKind.never
    count: Optional[int] = None
    until: Optional[date] = None

    @classmethod
    def never(cls) -> EndCondition:
        return cls()

    @classmethod
    def after_count(cls, count: int) -> EndCondition:
        return cls(EndKind.after_count, count=count)

    @classmethod
    def until_date(cls, until: date) -> EndCondition:
        return cls(EndKind.until_date, until=until)


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: Frequency
    interval: int = 1
    end: EndCondition = field(default_factory=EndCondition)
    weekday: Optional[int] = None  # 0 = Monday, weekly rules only
    day_of_month: Optional[int] = None  # monthly rules only


@dataclass(frozen=True)
class RecurrenceTemplate:
    id: int
    amount: Money
    category_id: int
    start_date: date
    rule: RecurrenceRule
    note: str = ""
    active: bool = True
    seq: int = 0
    last_materialized_date: Optional[date] = None
