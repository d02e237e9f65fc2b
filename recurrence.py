from __future__ import annotations

from datetime import date, timedelta
from typing import Iterator, Optional

from domain import (
    EndKind,
    Frequency,
    RecurrenceRule,
    RecurrenceTemplate,
    Transaction,
    TransactionKind,
)
from errors import InvalidRecurrenceRule
from periods import add_months, day_after


def validate_rule(rule: RecurrenceRule, start_date: date) -> None:
    try:
        Frequency(rule.frequency)
    except ValueError as exc:
        raise InvalidRecurrenceRule("frequency", rule.frequency) from exc
    if not isinstance(rule.interval, int) or rule.interval < 1:
        raise InvalidRecurrenceRule("interval", rule.interval)

    end = rule.end
    if end.kind == EndKind.after_count:
        if end.count is None or end.count < 1:
            raise InvalidRecurrenceRule("count", end.count)
    elif end.kind == EndKind.until_date:
        if end.until is None or end.until < start_date:
            raise InvalidRecurrenceRule("until", end.until)

    if rule.weekday is not None:
        if rule.frequency != Frequency.weekly:
            raise InvalidRecurrenceRule("weekday", rule.weekday)
        if not 0 <= rule.weekday <= 6:
            raise InvalidRecurrenceRule("weekday", rule.weekday)
    if rule.day_of_month is not None:
        if rule.frequency != Frequency.monthly:
            raise InvalidRecurrenceRule("day_of_month", rule.day_of_month)
        if not 1 <= rule.day_of_month <= 31:
            raise InvalidRecurrenceRule("day_of_month", rule.day_of_month)


def _first_occurrence(rule: RecurrenceRule, start_date: date) -> date:
    if rule.frequency == Frequency.weekly:
        anchor = start_date.weekday() if rule.weekday is None else rule.weekday
        return start_date + timedelta(days=(anchor - start_date.weekday()) % 7)
    if rule.frequency == Frequency.monthly:
        anchor = rule.day_of_month or start_date.day
        first = add_months(start_date, 0, desired_day=anchor)
        if first < start_date:
            first = add_months(start_date, 1, desired_day=anchor)
        return first
    return start_date


def _nth_occurrence(rule: RecurrenceRule, first: date, start_date: date, n: int) -> date:
    # Computed from the anchor, never from the previous occurrence, so a
    # clamped month (Feb 28) does not drag later months off day 31.
    step = rule.interval * n
    if rule.frequency == Frequency.daily:
        return first + timedelta(days=step)
    if rule.frequency == Frequency.weekly:
        return first + timedelta(weeks=step)
    if rule.frequency == Frequency.monthly:
        anchor = rule.day_of_month or start_date.day
        return add_months(first, step, desired_day=anchor)
    return add_months(start_date, 12 * step, desired_day=start_date.day)


def _index_before(rule: RecurrenceRule, first: date, window_from: date) -> int:
    """A lower bound on the index of the first occurrence on or after ``window_from``."""
    if window_from <= first:
        return 0
    if rule.frequency == Frequency.daily:
        return (window_from - first).days // rule.interval
    if rule.frequency == Frequency.weekly:
        return (window_from - first).days // (7 * rule.interval)
    months = (window_from.year - first.year) * 12 + window_from.month - first.month
    months_per_step = rule.interval * (12 if rule.frequency == Frequency.yearly else 1)
    return max(0, months // months_per_step - 1)


def occurrence_dates(
    rule: RecurrenceRule,
    start_date: date,
    window_from: date,
    window_to: Optional[date],
) -> Iterator[date]:
    """Yield occurrence dates within ``[window_from, window_to)``.

    Occurrences before ``window_from`` are skipped but still count towards
    an ``after_count`` end condition. The sequence ends at ``window_to``,
    the ``until`` date (inclusive) or the count boundary, whichever comes
    first. A ``window_to`` of ``None`` leaves the window open up to
    ``date.max``.
    """
    validate_rule(rule, start_date)
    try:
        first = _first_occurrence(rule, start_date)
    except (OverflowError, ValueError):
        return
    end = rule.end
    n = _index_before(rule, first, window_from)
    while True:
        if end.kind == EndKind.after_count and n >= end.count:
            return
        try:
            day = _nth_occurrence(rule, first, start_date, n)
        except (OverflowError, ValueError):
            # Stepped past date.max.
            return
        if end.kind == EndKind.until_date and day > end.until:
            return
        if window_to is not None and day >= window_to:
            return
        if day >= window_from:
            yield day
        n += 1


def project(template: RecurrenceTemplate, day: date) -> Transaction:
    return Transaction(
        id=None,
        date=day,
        amount=template.amount,
        category_id=template.category_id,
        note=template.note,
        kind=TransactionKind.projected,
        seq=template.seq,
        template_id=template.id,
        occurrence_date=day,
    )


def expand(
    template: RecurrenceTemplate,
    window_from: date,
    window_to: date,
) -> Iterator[Transaction]:
    for day in occurrence_dates(template.rule, template.start_date, window_from, window_to):
        yield project(template, day)


def expand_pending(
    template: RecurrenceTemplate,
    window_from: date,
    window_to: date,
) -> Iterator[Transaction]:
    """Like :func:`expand`, minus occurrences already materialized as actuals."""
    if template.last_materialized_date is not None:
        after = day_after(template.last_materialized_date)
        if after is None:
            return iter(())
        window_from = max(window_from, after)
    if window_from >= window_to:
        return iter(())
    return expand(template, window_from, window_to)


def next_occurrence(template: RecurrenceTemplate, after: date) -> Optional[date]:
    following = day_after(after)
    if following is None:
        return None
    dates = occurrence_dates(template.rule, template.start_date, following, None)
    return next(dates, None)


def due_occurrences(template: RecurrenceTemplate, through: date) -> list[date]:
    """Occurrences not yet materialized, up to and including ``through``."""
    start = template.start_date
    if template.last_materialized_date is not None:
        after = day_after(template.last_materialized_date)
        if after is None:
            return []
        start = max(start, after)
    if start > through:
        return []
    return list(occurrence_dates(template.rule, template.start_date, start, day_after(through)))
