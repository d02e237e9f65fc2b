from datetime import date, datetime

import pytest

from categories import CategoryTree
from domain import (
    EndCondition,
    Frequency,
    RecurrenceRule,
    RecurrenceTemplate,
    Transaction,
    TransactionKind,
)
from errors import (
    AmendTargetVoided,
    CategoryArchived,
    InvalidRecurrenceRule,
    UnknownReference,
)
from ledger import LedgerStore
from money import Money
from periods import DateRange


@pytest.fixture()
def tree() -> CategoryTree:
    tree = CategoryTree()
    tree.create("Food")
    tree.create("Salary")
    return tree


@pytest.fixture()
def store(tree: CategoryTree) -> LedgerStore:
    return LedgerStore(tree)


def _txn(day: date, minor_units: int, category_id: int = 1, note: str = "") -> Transaction:
    return Transaction(
        id=None,
        date=day,
        amount=Money(minor_units, "EUR"),
        category_id=category_id,
        note=note,
    )


def _template(start: date, **kwargs) -> RecurrenceTemplate:
    return RecurrenceTemplate(
        id=0,
        amount=Money(-2_000, "EUR"),
        category_id=1,
        start_date=start,
        rule=kwargs.pop("rule", RecurrenceRule(Frequency.weekly)),
        note="Gym",
        **kwargs,
    )


def test_record_assigns_ids_and_insertion_sequence(store: LedgerStore) -> None:
    first = store.record(_txn(date(2024, 3, 5), -500, note="first"))
    second = store.record(_txn(date(2024, 3, 5), -700, note="second"))
    earlier = store.record(_txn(date(2024, 3, 1), -100, note="earlier"))

    assert (first.id, second.id, earlier.id) == (1, 2, 3)
    assert first.seq < second.seq < earlier.seq

    found = store.query(DateRange(date(2024, 3, 1), date(2024, 4, 1)))
    assert [t.note for t in found] == ["earlier", "first", "second"]


def test_query_range_is_half_open(store: LedgerStore) -> None:
    store.record(_txn(date(2024, 3, 1), -100, note="start"))
    store.record(_txn(date(2024, 3, 31), -100, note="last"))
    store.record(_txn(date(2024, 4, 1), -100, note="next"))

    found = store.query(DateRange(date(2024, 3, 1), date(2024, 4, 1)))
    assert [t.note for t in found] == ["start", "last"]
    assert store.query(DateRange(date(2024, 3, 1), date(2024, 3, 1))) == []


def test_query_filters_by_category(store: LedgerStore) -> None:
    store.record(_txn(date(2024, 3, 2), -100, category_id=1))
    store.record(_txn(date(2024, 3, 3), 250_000, category_id=2))
    window = DateRange(date(2024, 3, 1), date(2024, 4, 1))

    assert [t.category_id for t in store.query(window, [2])] == [2]
    assert len(store.query(window, [1, 2])) == 2
    assert store.query(window, []) == []


def test_record_rejects_unknown_and_archived_categories(
    store: LedgerStore, tree: CategoryTree
) -> None:
    with pytest.raises(UnknownReference):
        store.record(_txn(date(2024, 3, 2), -100, category_id=99))

    tree.archive(2, at=datetime(2024, 3, 1))
    with pytest.raises(CategoryArchived):
        store.record(_txn(date(2024, 3, 2), -100, category_id=2))

    assert store.snapshot().transactions == {}


def test_record_refuses_projected_transactions(store: LedgerStore) -> None:
    projected = Transaction(
        id=None,
        date=date(2024, 3, 2),
        amount=Money(-100, "EUR"),
        category_id=1,
        kind=TransactionKind.projected,
    )
    with pytest.raises(ValueError):
        store.record(projected)


def test_amend_keeps_a_version_chain(store: LedgerStore) -> None:
    original = store.record(_txn(date(2024, 3, 5), -500, note="lunch"))
    fixed = store.amend(original.id, amount=Money(-550, "EUR"))
    final = store.amend(fixed.id, note="team lunch", category_id=2)

    assert fixed.amends == original.id
    assert final.amends == fixed.id
    assert store.get(original.id).voided
    assert store.get(original.id).superseded_by == fixed.id

    history = store.history(fixed.id)
    assert [t.id for t in history] == [original.id, fixed.id, final.id]
    assert [t.voided for t in history] == [True, True, False]

    live = store.query(DateRange(date(2024, 3, 1), date(2024, 4, 1)))
    assert live == [final]
    assert final.amount == Money(-550, "EUR")
    assert final.category_id == 2


def test_amend_rejects_voided_and_unknown_targets(store: LedgerStore) -> None:
    original = store.record(_txn(date(2024, 3, 5), -500))
    successor = store.amend(original.id, note="fixed")

    with pytest.raises(AmendTargetVoided) as info:
        store.amend(original.id, note="again")
    assert info.value.superseded_by == successor.id

    with pytest.raises(UnknownReference):
        store.amend(404, note="missing")
    with pytest.raises(ValueError):
        store.amend(successor.id, kind=TransactionKind.projected)


def test_amend_into_archived_category_leaves_state_unchanged(
    store: LedgerStore, tree: CategoryTree
) -> None:
    original = store.record(_txn(date(2024, 3, 5), -500))
    tree.archive(2, at=datetime(2024, 3, 1))
    before = store.snapshot()

    with pytest.raises(CategoryArchived):
        store.amend(original.id, category_id=2)

    assert store.snapshot() is before
    assert not store.get(original.id).voided


def test_amend_within_archived_category_is_allowed(
    store: LedgerStore, tree: CategoryTree
) -> None:
    original = store.record(_txn(date(2024, 3, 5), -500, category_id=2))
    tree.archive(2, at=datetime(2024, 3, 10))
    fixed = store.amend(original.id, note="typo")
    assert fixed.category_id == 2


def test_invalid_template_is_rejected(store: LedgerStore) -> None:
    bad = _template(date(2024, 1, 1), rule=RecurrenceRule(Frequency.monthly, interval=0))
    with pytest.raises(InvalidRecurrenceRule):
        store.add_template(bad)
    assert store.templates() == []


def test_materialize_is_idempotent(store: LedgerStore) -> None:
    template = store.add_template(_template(date(2024, 1, 1)))

    posted = store.materialize(template.id, date(2024, 1, 15))
    assert [t.date for t in posted] == [date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15)]
    assert all(t.kind == TransactionKind.actual for t in posted)
    assert all(t.template_id == template.id for t in posted)

    assert store.materialize(template.id, date(2024, 1, 15)) == []
    assert store.snapshot().get_template(template.id).last_materialized_date == date(2024, 1, 15)

    later = store.materialize(template.id, date(2024, 1, 22))
    assert [t.date for t in later] == [date(2024, 1, 22)]


def test_materialize_skips_inactive_templates(store: LedgerStore) -> None:
    template = store.add_template(_template(date(2024, 1, 1), active=False))
    assert store.materialize(template.id, date(2024, 2, 1)) == []


def test_template_update_does_not_touch_materialized_actuals(store: LedgerStore) -> None:
    template = store.add_template(_template(date(2024, 1, 1)))
    posted = store.materialize(template.id, date(2024, 1, 8))

    updated = store.update_template(template.id, amount=Money(-9_900, "EUR"))
    assert updated.amount == Money(-9_900, "EUR")
    assert updated.last_materialized_date == date(2024, 1, 8)
    for txn in posted:
        assert store.get(txn.id).amount == Money(-2_000, "EUR")

    with pytest.raises(InvalidRecurrenceRule):
        store.update_template(
            template.id,
            rule=RecurrenceRule(Frequency.weekly, end=EndCondition.after_count(0)),
        )
    with pytest.raises(ValueError):
        store.update_template(template.id, seq=99)


def test_snapshot_is_isolated_from_later_writes(store: LedgerStore) -> None:
    store.record(_txn(date(2024, 3, 5), -500))
    snapshot = store.snapshot()
    store.record(_txn(date(2024, 3, 6), -600))

    window = DateRange(date(2024, 3, 1), date(2024, 4, 1))
    assert len(snapshot.query(window)) == 1
    assert len(store.query(window)) == 2
