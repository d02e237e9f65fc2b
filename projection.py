from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from categories import CategorySnapshot
from domain import Transaction, TransactionKind
from errors import CurrencyMismatch
from fx_rates import PinnedRates
from ledger import LedgerState
from money import Money
from periods import DateRange
from recurrence import expand_pending


@dataclass(frozen=True)
class ForecastPoint:
    date: date
    balance: Money
    transaction: Transaction


@dataclass(frozen=True)
class ForecastSummary:
    starting_balance: Money
    ending_balance: Money
    lowest_balance: Money
    lowest_date: Optional[date]
    steps: int


def _merge_key(txn: Transaction) -> tuple:
    projected = txn.kind == TransactionKind.projected
    return (txn.date, projected, txn.seq, txn.id or 0)


def merged_stream(
    state: LedgerState,
    window: DateRange,
    categories: Optional[CategorySnapshot] = None,
) -> list[Transaction]:
    """Live actuals and pending projections in ``window``, in forecast order.

    Ordered by date, then actuals before projections, then insertion or
    template sequence. With ``categories``, templates in archived categories
    are not projected.
    """
    merged = state.query(window)
    for template in state.projecting(categories):
        merged.extend(expand_pending(template, window.start, window.end))
    merged.sort(key=_merge_key)
    return merged


def forecast(
    state: LedgerState,
    as_of: date,
    horizon_end: date,
    starting_balance: Money,
    *,
    rates: Optional[PinnedRates] = None,
    categories: Optional[CategorySnapshot] = None,
) -> list[ForecastPoint]:
    """Running balance over ``(as_of, horizon_end]``.

    ``starting_balance`` is the balance at the end of ``as_of``. Amounts in
    another currency need a pinned rate in ``rates``. Pass ``categories`` to
    leave out templates whose category has been archived.
    """
    if horizon_end <= as_of:
        return []
    if horizon_end == date.max:
        raise ValueError("Forecast horizon must end before the last representable date")
    window = DateRange(as_of + timedelta(days=1), horizon_end + timedelta(days=1))
    currency = starting_balance.currency
    balance = starting_balance
    points: list[ForecastPoint] = []
    for txn in merged_stream(state, window, categories):
        amount = txn.amount
        if amount.currency != currency:
            if rates is None:
                raise CurrencyMismatch(currency, amount.currency)
            amount = rates.normalize(amount, currency)
        balance = balance.add(amount)
        points.append(ForecastPoint(txn.date, balance, txn))
    return points


def summarize(points: list[ForecastPoint], starting_balance: Money) -> ForecastSummary:
    lowest = starting_balance
    lowest_date = None
    for point in points:
        if point.balance < lowest:
            lowest = point.balance
            lowest_date = point.date
    return ForecastSummary(
        starting_balance=starting_balance,
        ending_balance=points[-1].balance if points else starting_balance,
        lowest_balance=lowest,
        lowest_date=lowest_date,
        steps=len(points),
    )
