from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime
from typing import Iterable, Iterator, Optional
from zoneinfo import ZoneInfo

from budget import BudgetLine, evaluate
from categories import CategorySnapshot, CategoryTree
from config import get_settings
from domain import Category, RecurrenceTemplate, Transaction
from errors import CategoryArchived
from fx_rates import PinnedRates
from ledger import LedgerState, LedgerStore
from money import Money
from periods import DateRange, YearMonth
from projection import ForecastPoint, forecast
from schemas import (
    AmendmentIn,
    CategoryIn,
    RecurrenceTemplateIn,
    RecurrenceTemplateUpdateIn,
    TransactionIn,
)
from storage import Changeset, StorageCollaborator

logger = logging.getLogger(__name__)


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


class LedgerService:
    """Query and command surface over one owner's ledger.

    Commands run one at a time. Each either commits in memory and in the
    storage collaborator, or leaves both untouched and re-raises.
    """

    def __init__(
        self,
        storage: StorageCollaborator,
        *,
        base_currency: Optional[str] = None,
    ) -> None:
        self.storage = storage
        self.base_currency = (base_currency or get_settings().base_currency).upper()
        self.categories = CategoryTree()
        self.ledger = LedgerStore(self.categories)
        self._lock = threading.RLock()
        self.reload()

    def reload(self) -> None:
        snapshot = self.storage.load()
        with self._lock:
            self.categories.load(snapshot.categories)
            self.ledger.load(snapshot.transactions, snapshot.templates)

    @contextmanager
    def _command(self, name: str) -> Iterator[Changeset]:
        with self._lock:
            categories_before = self.categories.snapshot()
            ledger_before = self.ledger.snapshot()
            changeset = Changeset()
            try:
                yield changeset
                if not changeset.is_empty():
                    self.storage.save(changeset)
            except Exception:
                self.categories.restore(categories_before)
                self.ledger.restore(ledger_before)
                logger.info(f"command_failed: command={name}")
                raise

    # Commands.

    def create_category(self, data: CategoryIn) -> Category:
        with self._command("create_category") as changes:
            category = self.categories.create(
                data.name,
                parent_id=data.parent_id,
                monthly_limit=data.monthly_limit.to_money() if data.monthly_limit else None,
            )
            changes.categories.append(category)
        return category

    def rename_category(self, category_id: int, name: str) -> Category:
        with self._command("rename_category") as changes:
            category = self.categories.rename(category_id, name)
            changes.categories.append(category)
        return category

    def set_category_limit(self, category_id: int, monthly_limit: Optional[Money]) -> Category:
        with self._command("set_category_limit") as changes:
            category = self.categories.set_limit(category_id, monthly_limit)
            changes.categories.append(category)
        return category

    def move_category(self, category_id: int, parent_id: Optional[int]) -> Category:
        with self._command("move_category") as changes:
            category = self.categories.move(category_id, parent_id)
            changes.categories.append(category)
        return category

    def archive_category(self, category_id: int) -> Category:
        with self._command("archive_category") as changes:
            category = self.categories.archive(category_id, at=datetime.utcnow())
            changes.categories.append(category)
        return category

    def restore_category(self, category_id: int) -> Category:
        with self._command("restore_category") as changes:
            category = self.categories.restore_category(category_id)
            changes.categories.append(category)
        return category

    def record_transaction(self, data: TransactionIn) -> Transaction:
        with self._command("record_transaction") as changes:
            txn = self.ledger.record(
                Transaction(
                    id=None,
                    date=data.date,
                    amount=data.amount.to_money(),
                    category_id=data.category_id,
                    note=data.note.strip(),
                )
            )
            changes.transactions.append(txn)
        return txn

    def amend_transaction(self, transaction_id: int, data: AmendmentIn) -> Transaction:
        fields = data.changes()
        if not fields:
            raise ValueError("Amendment changes nothing")
        with self._command("amend_transaction") as changes:
            successor = self.ledger.amend(transaction_id, **fields)
            changes.transactions.append(self.ledger.get(transaction_id))
            changes.transactions.append(successor)
        return successor

    def create_recurrence_template(self, data: RecurrenceTemplateIn) -> RecurrenceTemplate:
        with self._command("create_recurrence_template") as changes:
            template = self.ledger.add_template(
                RecurrenceTemplate(
                    id=0,
                    amount=data.amount.to_money(),
                    category_id=data.category_id,
                    start_date=data.start_date,
                    rule=data.rule.to_rule(),
                    note=data.note.strip(),
                    active=data.active,
                )
            )
            changes.templates.append(template)
        return template

    def update_recurrence_template(
        self, template_id: int, data: RecurrenceTemplateUpdateIn
    ) -> RecurrenceTemplate:
        with self._command("update_recurrence_template") as changes:
            template = self.ledger.update_template(template_id, **data.changes())
            changes.templates.append(template)
        return template

    def materialize_due(self, today: Optional[date] = None) -> int:
        """Post every due occurrence of active templates as actual transactions."""
        today = today or local_today()
        count = 0
        for template in self.ledger.templates(active_only=True):
            try:
                with self._command("materialize_due") as changes:
                    posted = self.ledger.materialize(template.id, today)
                    changes.transactions.extend(posted)
                    if posted:
                        changes.templates.append(self.ledger.snapshot().get_template(template.id))
            except CategoryArchived:
                logger.warning(
                    f"materialize_skipped: template={template.id} category={template.category_id} archived"
                )
                continue
            count += len(posted)
        logger.info(f"materialize_due: today={today} posted={count}")
        return count

    # Queries. Each reads one pair of snapshots taken between commands, so a
    # command is only visible once its changeset has been saved.

    def _snapshots(self) -> tuple[CategorySnapshot, LedgerState]:
        with self._lock:
            return self.categories.snapshot(), self.ledger.snapshot()

    def list_transactions(
        self,
        date_range: DateRange,
        category_ids: Optional[Iterable[int]] = None,
    ) -> list[Transaction]:
        _, state = self._snapshots()
        return state.query(date_range, category_ids)

    def get_transaction(self, transaction_id: int) -> Transaction:
        _, state = self._snapshots()
        return state.get(transaction_id)

    def transaction_history(self, transaction_id: int) -> list[Transaction]:
        _, state = self._snapshots()
        return state.history(transaction_id)

    def recurrence_templates(self, *, active_only: bool = False) -> list[RecurrenceTemplate]:
        _, state = self._snapshots()
        return state.template_list(active_only=active_only)

    def forecast(
        self,
        as_of: date,
        horizon_end: date,
        starting_balance: Money,
        *,
        rates: Optional[PinnedRates] = None,
    ) -> list[ForecastPoint]:
        categories, state = self._snapshots()
        return forecast(
            state, as_of, horizon_end, starting_balance, rates=rates, categories=categories
        )

    def evaluate_budget(
        self,
        year_month: YearMonth,
        include_projected: bool = False,
        *,
        rates: Optional[PinnedRates] = None,
    ) -> list[BudgetLine]:
        categories, state = self._snapshots()
        return evaluate(
            categories,
            state,
            year_month,
            currency=self.base_currency,
            include_projected=include_projected,
            rates=rates,
        )

    def category_tree(self, *, include_archived: bool = True) -> list[tuple[int, Category]]:
        categories, _ = self._snapshots()
        return list(categories.walk(include_archived=include_archived))

    def effective_limit(self, category_id: int) -> Optional[Money]:
        categories, _ = self._snapshots()
        return categories.effective_limit(category_id)
