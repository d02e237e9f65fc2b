from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from categories import CategorySnapshot
from domain import Transaction
from errors import CurrencyMismatch
from fx_rates import PinnedRates
from ledger import LedgerState
from money import Money
from periods import YearMonth
from recurrence import expand_pending


class BudgetStatus(str, Enum):
    under = "under"
    at = "at"
    over = "over"
    unlimited = "unlimited"


@dataclass(frozen=True)
class BudgetLine:
    category_id: int
    name: str
    parent_id: Optional[int]
    depth: int
    archived: bool
    spent: Money
    income: Money
    net: Money
    limit: Optional[Money]
    remaining: Optional[Money]
    status: BudgetStatus


def _status(spent: Money, limit: Optional[Money]) -> BudgetStatus:
    if limit is None:
        return BudgetStatus.unlimited
    if spent.is_zero():
        return BudgetStatus.under
    order = spent.compare(limit)
    if order < 0:
        return BudgetStatus.under
    if order == 0:
        return BudgetStatus.at
    return BudgetStatus.over


def month_transactions(
    state: LedgerState,
    year_month: YearMonth,
    *,
    include_projected: bool,
    categories: Optional[CategorySnapshot] = None,
) -> list[Transaction]:
    window = year_month.date_range()
    txns = state.query(window)
    if include_projected:
        for template in state.projecting(categories):
            txns.extend(expand_pending(template, window.start, window.end))
    return txns


def evaluate(
    categories: CategorySnapshot,
    state: LedgerState,
    year_month: YearMonth,
    *,
    currency: str,
    include_projected: bool = False,
    rates: Optional[PinnedRates] = None,
) -> list[BudgetLine]:
    """Spending against the effective limit for every category in a month.

    Each line is in the currency of its effective limit, or ``currency`` for
    unlimited categories. Categories without activity report zero spent.
    """
    by_category: dict[int, list[Transaction]] = {}
    for txn in month_transactions(
        state, year_month, include_projected=include_projected, categories=categories
    ):
        by_category.setdefault(txn.category_id, []).append(txn)

    lines: list[BudgetLine] = []
    for depth, category in categories.walk():
        limit = categories.effective_limit(category.id)
        line_currency = limit.currency if limit is not None else currency
        spent = Money.zero(line_currency)
        income = Money.zero(line_currency)
        for txn in by_category.get(category.id, []):
            amount = txn.amount
            if amount.currency != line_currency:
                if rates is None:
                    raise CurrencyMismatch(line_currency, amount.currency)
                amount = rates.normalize(amount, line_currency)
            if amount.is_negative():
                spent = spent.add(amount.negate())
            else:
                income = income.add(amount)
        lines.append(
            BudgetLine(
                category_id=category.id,
                name=category.name,
                parent_id=category.parent_id,
                depth=depth,
                archived=category.archived,
                spent=spent,
                income=income,
                net=income.subtract(spent),
                limit=limit,
                remaining=limit.subtract(spent) if limit is not None else None,
                status=_status(spent, limit),
            )
        )
    return lines
