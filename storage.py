"""Storage collaborators for the ledger engine.

The engine only ever calls :meth:`StorageCollaborator.load` once at start-up
and :meth:`StorageCollaborator.save` after each committed command. Framing,
retries and durability belong to the implementation.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from database import session_scope
from domain import (
    Category,
    EndCondition,
    RecurrenceRule,
    RecurrenceTemplate,
    Transaction,
)
from models import CategoryRecord, RecurrenceTemplateRecord, TransactionRecord
from money import Money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerSnapshot:
    categories: tuple[Category, ...] = ()
    transactions: tuple[Transaction, ...] = ()
    templates: tuple[RecurrenceTemplate, ...] = ()


@dataclass
class Changeset:
    """Records created or replaced by one command, keyed by their ids."""

    categories: list[Category] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)
    templates: list[RecurrenceTemplate] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.categories or self.transactions or self.templates)


class StorageCollaborator(ABC):
    @abstractmethod
    def load(self) -> LedgerSnapshot:
        """Return every stored category, transaction version and template."""

    @abstractmethod
    def save(self, changeset: Changeset) -> None:
        """Durably upsert the records in ``changeset``; all or nothing."""


class InMemoryStorage(StorageCollaborator):
    def __init__(self, snapshot: Optional[LedgerSnapshot] = None) -> None:
        snapshot = snapshot or LedgerSnapshot()
        self.categories = {c.id: c for c in snapshot.categories}
        self.transactions = {t.id: t for t in snapshot.transactions}
        self.templates = {t.id: t for t in snapshot.templates}
        self.saves: list[Changeset] = []

    def load(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            categories=tuple(self.categories.values()),
            transactions=tuple(self.transactions.values()),
            templates=tuple(self.templates.values()),
        )

    def save(self, changeset: Changeset) -> None:
        for category in changeset.categories:
            self.categories[category.id] = category
        for template in changeset.templates:
            self.templates[template.id] = template
        for txn in changeset.transactions:
            self.transactions[txn.id] = txn
        self.saves.append(changeset)


def _money(minor_units: Optional[int], currency: Optional[str]) -> Optional[Money]:
    if minor_units is None or currency is None:
        return None
    return Money(minor_units, currency)


def category_from_record(row: CategoryRecord) -> Category:
    return Category(
        id=row.id,
        name=row.name,
        parent_id=row.parent_id,
        monthly_limit=_money(row.limit_minor_units, row.limit_currency),
        archived_at=row.archived_at,
    )


def category_to_record(category: Category) -> CategoryRecord:
    limit = category.monthly_limit
    return CategoryRecord(
        id=category.id,
        name=category.name,
        parent_id=category.parent_id,
        limit_minor_units=limit.minor_units if limit else None,
        limit_currency=limit.currency if limit else None,
        archived_at=category.archived_at,
    )


def transaction_from_record(row: TransactionRecord) -> Transaction:
    return Transaction(
        id=row.id,
        date=row.date,
        amount=Money(row.amount_minor_units, row.currency),
        category_id=row.category_id,
        note=row.note or "",
        seq=row.seq,
        amends=row.amends,
        voided=row.voided,
        superseded_by=row.superseded_by,
        template_id=row.template_id,
        occurrence_date=row.occurrence_date,
    )


def transaction_to_record(txn: Transaction) -> TransactionRecord:
    return TransactionRecord(
        id=txn.id,
        seq=txn.seq,
        date=txn.date,
        amount_minor_units=txn.amount.minor_units,
        currency=txn.amount.currency,
        category_id=txn.category_id,
        note=txn.note or None,
        amends=txn.amends,
        superseded_by=txn.superseded_by,
        voided=txn.voided,
        template_id=txn.template_id,
        occurrence_date=txn.occurrence_date,
    )


def template_from_record(row: RecurrenceTemplateRecord) -> RecurrenceTemplate:
    return RecurrenceTemplate(
        id=row.id,
        amount=Money(row.amount_minor_units, row.currency),
        category_id=row.category_id,
        start_date=row.start_date,
        rule=RecurrenceRule(
            frequency=row.frequency,
            interval=row.interval_count,
            end=EndCondition(row.end_kind, count=row.end_count, until=row.end_until),
            weekday=row.weekday,
            day_of_month=row.day_of_month,
        ),
        note=row.note or "",
        active=row.active,
        seq=row.seq,
        last_materialized_date=row.last_materialized_date,
    )


def template_to_record(template: RecurrenceTemplate) -> RecurrenceTemplateRecord:
    rule = template.rule
    return RecurrenceTemplateRecord(
        id=template.id,
        seq=template.seq,
        amount_minor_units=template.amount.minor_units,
        currency=template.amount.currency,
        category_id=template.category_id,
        start_date=template.start_date,
        frequency=rule.frequency,
        interval_count=rule.interval,
        end_kind=rule.end.kind,
        end_count=rule.end.count,
        end_until=rule.end.until,
        weekday=rule.weekday,
        day_of_month=rule.day_of_month,
        note=template.note or None,
        active=template.active,
        last_materialized_date=template.last_materialized_date,
    )


class SqlStorage(StorageCollaborator):
    def __init__(self, session_factory: Optional[sessionmaker] = None) -> None:
        self.session_factory = session_factory

    def load(self) -> LedgerSnapshot:
        with session_scope(self.session_factory) as session:
            snapshot = self._read(session)
        logger.info(
            f"storage_load: categories={len(snapshot.categories)} "
            f"transactions={len(snapshot.transactions)} templates={len(snapshot.templates)}"
        )
        return snapshot

    def _read(self, session: Session) -> LedgerSnapshot:
        categories = session.scalars(select(CategoryRecord).order_by(CategoryRecord.id)).all()
        templates = session.scalars(
            select(RecurrenceTemplateRecord).order_by(RecurrenceTemplateRecord.id)
        ).all()
        transactions = session.scalars(
            select(TransactionRecord).order_by(TransactionRecord.id)
        ).all()
        return LedgerSnapshot(
            categories=tuple(category_from_record(r) for r in categories),
            transactions=tuple(transaction_from_record(r) for r in transactions),
            templates=tuple(template_from_record(r) for r in templates),
        )

    def save(self, changeset: Changeset) -> None:
        if changeset.is_empty():
            return
        with session_scope(self.session_factory) as session:
            # Parents before children so self-referencing keys resolve.
            for category in sorted(changeset.categories, key=lambda c: c.id):
                session.merge(category_to_record(category))
                session.flush()
            for template in changeset.templates:
                session.merge(template_to_record(template))
            session.flush()
            for txn in sorted(changeset.transactions, key=lambda t: t.id):
                session.merge(transaction_to_record(txn))
