from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(base: date, months: int, *, desired_day: int) -> date:
    """Shift ``base`` by whole months, clamping ``desired_day`` to the month end."""
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    return date(year, month, min(desired_day, days_in_month(year, month)))


def day_after(day: date) -> Optional[date]:
    """The following day, or ``None`` when ``day`` is ``date.max``."""
    if day == date.max:
        return None
    return day + timedelta(days=1)


@dataclass(frozen=True, order=True)
class YearMonth:
    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"Month out of range: {self.month}")

    @classmethod
    def parse(cls, value: str) -> YearMonth:
        try:
            year_text, month_text = value.split("-")
            return cls(int(year_text), int(month_text))
        except ValueError as exc:
            raise ValueError(f"Expected YYYY-MM, got {value!r}") from exc

    @classmethod
    def of(cls, day: date) -> YearMonth:
        return cls(day.year, day.month)

    @property
    def start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end(self) -> date:
        """First day of the following month (exclusive bound)."""
        return add_months(self.start, 1, desired_day=1)

    def date_range(self) -> DateRange:
        return DateRange(self.start, self.end)

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


@dataclass(frozen=True)
class DateRange:
    """Half-open ``[start, end)`` range of days."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError("Start date must be before end date")

    def __contains__(self, day: date) -> bool:
        return self.start <= day < self.end

    @classmethod
    def inclusive(cls, first: date, last: date) -> DateRange:
        return cls(first, last + timedelta(days=1))

    @property
    def is_empty(self) -> bool:
        return self.start == self.end


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> DateRange:
    today = today or date.today()
    if period == "all":
        return DateRange.inclusive(date(1970, 1, 1), today)
    if period == "last_month":
        return YearMonth.of(today.replace(day=1) - timedelta(days=1)).date_range()
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return DateRange.inclusive(start_date, end_date)
    if period and period != "this_month":
        return YearMonth.parse(period).date_range()
    return YearMonth.of(today).date_range()
