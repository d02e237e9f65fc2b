import datetime as dt
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from domain import EndCondition, EndKind, Frequency, RecurrenceRule
from money import Money


class MoneyIn(BaseModel):
    minor_units: int
    currency: str = Field(..., min_length=3, max_length=3)

    def to_money(self) -> Money:
        return Money(self.minor_units, self.currency)


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    parent_id: Optional[int] = None
    monthly_limit: Optional[MoneyIn] = None


class CategoryRenameIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class CategoryLimitIn(BaseModel):
    monthly_limit: Optional[MoneyIn] = None


class CategoryMoveIn(BaseModel):
    parent_id: Optional[int] = None


class TransactionIn(BaseModel):
    date: date
    amount: MoneyIn
    category_id: int
    note: str = Field(default="", max_length=200)


class AmendmentIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    date: Optional[dt.date] = None
    amount: Optional[MoneyIn] = None
    category_id: Optional[int] = None
    note: Optional[str] = Field(default=None, max_length=200)

    def changes(self) -> dict[str, object]:
        changes: dict[str, object] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if value is None:
                continue
            changes[name] = value.to_money() if isinstance(value, MoneyIn) else value
        return changes


class EndConditionIn(BaseModel):
    kind: EndKind = EndKind.never
    count: Optional[int] = None
    until: Optional[date] = None

    def to_end(self) -> EndCondition:
        return EndCondition(self.kind, count=self.count, until=self.until)


class RecurrenceRuleIn(BaseModel):
    frequency: Frequency
    interval: int = 1
    end: EndConditionIn = Field(default_factory=EndConditionIn)
    weekday: Optional[int] = None
    day_of_month: Optional[int] = None

    def to_rule(self) -> RecurrenceRule:
        return RecurrenceRule(
            frequency=self.frequency,
            interval=self.interval,
            end=self.end.to_end(),
            weekday=self.weekday,
            day_of_month=self.day_of_month,
        )


class RecurrenceTemplateIn(BaseModel):
    amount: MoneyIn
    category_id: int
    start_date: date
    rule: RecurrenceRuleIn
    note: str = Field(default="", max_length=200)
    active: bool = True


class RecurrenceTemplateUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: Optional[MoneyIn] = None
    category_id: Optional[int] = None
    start_date: Optional[date] = None
    rule: Optional[RecurrenceRuleIn] = None
    note: Optional[str] = Field(default=None, max_length=200)
    active: Optional[bool] = None

    def changes(self) -> dict[str, object]:
        changes: dict[str, object] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, MoneyIn):
                value = value.to_money()
            elif isinstance(value, RecurrenceRuleIn):
                value = value.to_rule()
            changes[name] = value
        return changes
