from __future__ import annotations

import logging
import threading
from bisect import bisect_left, insort
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Iterable, Mapping, Optional

from categories import CategorySnapshot, CategoryTree
from domain import RecurrenceTemplate, Transaction, TransactionKind
from errors import AmendTargetVoided, UnknownReference
from periods import DateRange
from recurrence import due_occurrences, validate_rule

logger = logging.getLogger(__name__)

AMENDABLE_FIELDS = frozenset({"date", "amount", "category_id", "note"})
TEMPLATE_FIELDS = frozenset({"amount", "category_id", "start_date", "rule", "note", "active"})

OrderKey = tuple[date, int, int]


def _order_key(txn: Transaction) -> OrderKey:
    return (txn.date, txn.seq, txn.id)


@dataclass(frozen=True)
class LedgerState:
    """Immutable ledger contents; every commit publishes a new instance."""

    transactions: Mapping[int, Transaction] = field(default_factory=dict)
    order: tuple[OrderKey, ...] = ()
    templates: Mapping[int, RecurrenceTemplate] = field(default_factory=dict)
    next_seq: int = 1

    def get(self, transaction_id: int) -> Transaction:
        txn = self.transactions.get(transaction_id)
        if txn is None:
            raise UnknownReference("transaction", transaction_id)
        return txn

    def get_template(self, template_id: int) -> RecurrenceTemplate:
        template = self.templates.get(template_id)
        if template is None:
            raise UnknownReference("template", template_id)
        return template

    def query(
        self,
        date_range: DateRange,
        category_ids: Optional[Iterable[int]] = None,
    ) -> list[Transaction]:
        wanted = set(category_ids) if category_ids is not None else None
        lo = bisect_left(self.order, (date_range.start,))
        hi = bisect_left(self.order, (date_range.end,))
        result = []
        for _, _, txn_id in self.order[lo:hi]:
            txn = self.transactions[txn_id]
            if txn.voided:
                continue
            if wanted is not None and txn.category_id not in wanted:
                continue
            result.append(txn)
        return result

    def live(self) -> list[Transaction]:
        return [
            self.transactions[txn_id]
            for _, _, txn_id in self.order
            if not self.transactions[txn_id].voided
        ]

    def history(self, transaction_id: int) -> list[Transaction]:
        """Every version in the chain containing ``transaction_id``, oldest first."""
        txn = self.get(transaction_id)
        while txn.amends is not None:
            txn = self.get(txn.amends)
        chain = [txn]
        while txn.superseded_by is not None:
            txn = self.get(txn.superseded_by)
            chain.append(txn)
        return chain

    def template_list(self, *, active_only: bool = False) -> list[RecurrenceTemplate]:
        found = sorted(self.templates.values(), key=lambda t: t.seq)
        if active_only:
            return [t for t in found if t.active]
        return found

    def projecting(self, categories: Optional[CategorySnapshot] = None) -> list[RecurrenceTemplate]:
        """Active templates that still produce future entries.

        Templates in an archived category are left out, since nothing can be
        posted there any more.
        """
        found = self.template_list(active_only=True)
        if categories is None:
            return found
        return [t for t in found if not categories.get(t.category_id).archived]

    def next_transaction_id(self) -> int:
        return max(self.transactions, default=0) + 1

    def next_template_id(self) -> int:
        return max(self.templates, default=0) + 1


class LedgerStore:
    """Actual transactions and recurrence templates for one owner.

    Writers are serialized by a lock; readers work on whatever
    :class:`LedgerState` was current when they called :meth:`snapshot`.
    """

    def __init__(self, categories: CategoryTree) -> None:
        self.categories = categories
        self._lock = threading.RLock()
        self._state = LedgerState()

    def snapshot(self) -> LedgerState:
        return self._state

    def restore(self, state: LedgerState) -> None:
        with self._lock:
            self._state = state

    def load(
        self,
        transactions: Iterable[Transaction],
        templates: Iterable[RecurrenceTemplate],
    ) -> None:
        txns = {t.id: t for t in transactions}
        tmpls = {t.id: t for t in templates}
        order = tuple(sorted(_order_key(t) for t in txns.values()))
        seqs = [t.seq for t in txns.values()] + [t.seq for t in tmpls.values()]
        with self._lock:
            self._state = LedgerState(
                transactions=txns,
                order=order,
                templates=tmpls,
                next_seq=max(seqs, default=0) + 1,
            )

    # Reads.

    def get(self, transaction_id: int) -> Transaction:
        return self._state.get(transaction_id)

    def query(
        self,
        date_range: DateRange,
        category_ids: Optional[Iterable[int]] = None,
    ) -> list[Transaction]:
        return self._state.query(date_range, category_ids)

    def history(self, transaction_id: int) -> list[Transaction]:
        return self._state.history(transaction_id)

    def templates(self, *, active_only: bool = False) -> list[RecurrenceTemplate]:
        return self._state.template_list(active_only=active_only)

    # Writes.

    def _commit(
        self,
        state: LedgerState,
        *,
        added: Iterable[Transaction] = (),
        replaced: Iterable[Transaction] = (),
        templates: Iterable[RecurrenceTemplate] = (),
        next_seq: Optional[int] = None,
    ) -> None:
        txns = dict(state.transactions)
        order = list(state.order)
        for txn in replaced:
            txns[txn.id] = txn
        for txn in added:
            txns[txn.id] = txn
            insort(order, _order_key(txn))
        tmpls = dict(state.templates)
        for template in templates:
            tmpls[template.id] = template
        self._state = LedgerState(
            transactions=txns,
            order=tuple(order),
            templates=tmpls,
            next_seq=state.next_seq if next_seq is None else next_seq,
        )

    def record(self, transaction: Transaction) -> Transaction:
        if transaction.kind != TransactionKind.actual:
            raise ValueError("Projected transactions are never stored")
        with self._lock:
            state = self._state
            self.categories.require_open(transaction.category_id)
            if transaction.template_id is not None:
                state.get_template(transaction.template_id)
            stored = replace(
                transaction,
                id=state.next_transaction_id(),
                seq=state.next_seq,
                amends=None,
                voided=False,
                superseded_by=None,
            )
            self._commit(state, added=[stored], next_seq=state.next_seq + 1)
        logger.info(f"ledger_record: id={stored.id} date={stored.date} category={stored.category_id}")
        return stored

    def amend(self, transaction_id: int, **changes: object) -> Transaction:
        unknown = set(changes) - AMENDABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot amend fields: {', '.join(sorted(unknown))}")
        with self._lock:
            state = self._state
            current = state.get(transaction_id)
            if current.voided:
                raise AmendTargetVoided(transaction_id, current.superseded_by)
            category_id = changes.get("category_id", current.category_id)
            if category_id != current.category_id:
                self.categories.require_open(category_id)
            else:
                self.categories.snapshot().get(category_id)
            successor = replace(
                current,
                **changes,
                id=state.next_transaction_id(),
                seq=state.next_seq,
                amends=current.id,
                voided=False,
                superseded_by=None,
            )
            voided = replace(current, voided=True, superseded_by=successor.id)
            self._commit(
                state,
                added=[successor],
                replaced=[voided],
                next_seq=state.next_seq + 1,
            )
        logger.info(f"ledger_amend: id={transaction_id} successor={successor.id}")
        return successor

    def add_template(self, template: RecurrenceTemplate) -> RecurrenceTemplate:
        validate_rule(template.rule, template.start_date)
        with self._lock:
            state = self._state
            self.categories.require_open(template.category_id)
            stored = replace(
                template,
                id=state.next_template_id(),
                seq=state.next_seq,
                last_materialized_date=None,
            )
            self._commit(state, templates=[stored], next_seq=state.next_seq + 1)
        logger.info(f"ledger_template_added: id={stored.id} frequency={stored.rule.frequency.value}")
        return stored

    def update_template(self, template_id: int, **changes: object) -> RecurrenceTemplate:
        """Change a template's future expansion; materialized actuals stay untouched."""
        unknown = set(changes) - TEMPLATE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update template fields: {', '.join(sorted(unknown))}")
        with self._lock:
            state = self._state
            current = state.get_template(template_id)
            updated = replace(current, **changes)
            validate_rule(updated.rule, updated.start_date)
            if updated.category_id != current.category_id:
                self.categories.require_open(updated.category_id)
            self._commit(state, templates=[updated])
        logger.info(f"ledger_template_updated: id={template_id}")
        return updated

    def materialize(self, template_id: int, through: date) -> list[Transaction]:
        """Post due occurrences of a template as actual transactions.

        Idempotent: occurrences up to ``last_materialized_date`` are never
        posted twice.
        """
        with self._lock:
            state = self._state
            template = state.get_template(template_id)
            if not template.active:
                return []
            days = due_occurrences(template, through)
            if not days:
                return []
            self.categories.require_open(template.category_id)
            next_id = state.next_transaction_id()
            seq = state.next_seq
            posted = []
            for offset, day in enumerate(days):
                posted.append(
                    Transaction(
                        id=next_id + offset,
                        date=day,
                        amount=template.amount,
                        category_id=template.category_id,
                        note=template.note,
                        seq=seq + offset,
                        template_id=template.id,
                        occurrence_date=day,
                    )
                )
            advanced = replace(template, last_materialized_date=days[-1])
            self._commit(
                state,
                added=posted,
                templates=[advanced],
                next_seq=seq + len(posted),
            )
        logger.info(f"ledger_materialize: template={template_id} posted={len(posted)} through={through}")
        return posted
