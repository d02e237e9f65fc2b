from datetime import date

import pytest

from domain import Frequency, TransactionKind
from errors import CategoryArchived
from money import Money
from periods import DateRange, YearMonth
from schemas import (
    AmendmentIn,
    CategoryIn,
    MoneyIn,
    RecurrenceRuleIn,
    RecurrenceTemplateIn,
    TransactionIn,
)
from services import LedgerService
from storage import Changeset, InMemoryStorage, LedgerSnapshot

MARCH = DateRange(date(2025, 3, 1), date(2025, 4, 1))


class FlakyStorage(InMemoryStorage):
    def __init__(self) -> None:
        super().__init__()
        self.fail_next = False

    def save(self, changeset: Changeset) -> None:
        if self.fail_next:
            self.fail_next = False
            raise RuntimeError("disk full")
        super().save(changeset)


def _eur(minor_units: int) -> MoneyIn:
    return MoneyIn(minor_units=minor_units, currency="EUR")


def _service(storage=None) -> LedgerService:
    return LedgerService(storage or InMemoryStorage(), base_currency="EUR")


def test_commands_are_saved_to_storage() -> None:
    storage = InMemoryStorage()
    service = _service(storage)
    food = service.create_category(CategoryIn(name="Food", monthly_limit=_eur(30_000)))
    txn = service.record_transaction(
        TransactionIn(date=date(2025, 3, 2), amount=_eur(-1_250), category_id=food.id, note=" bread ")
    )

    assert storage.categories[food.id].monthly_limit == Money(30_000, "EUR")
    assert storage.transactions[txn.id].note == "bread"
    assert len(storage.saves) == 2


def test_failed_save_rolls_back_memory() -> None:
    storage = FlakyStorage()
    service = _service(storage)
    food = service.create_category(CategoryIn(name="Food"))

    storage.fail_next = True
    with pytest.raises(RuntimeError):
        service.record_transaction(
            TransactionIn(date=date(2025, 3, 2), amount=_eur(-100), category_id=food.id)
        )
    assert service.list_transactions(MARCH) == []

    storage.fail_next = True
    with pytest.raises(RuntimeError):
        service.rename_category(food.id, "Groceries")
    assert service.category_tree()[0][1].name == "Food"

    txn = service.record_transaction(
        TransactionIn(date=date(2025, 3, 2), amount=_eur(-100), category_id=food.id)
    )
    assert txn.id == 1


def test_amendment_saves_both_versions() -> None:
    storage = InMemoryStorage()
    service = _service(storage)
    food = service.create_category(CategoryIn(name="Food"))
    original = service.record_transaction(
        TransactionIn(date=date(2025, 3, 2), amount=_eur(-100), category_id=food.id)
    )
    successor = service.amend_transaction(original.id, AmendmentIn(amount=_eur(-120)))

    saved = storage.saves[-1].transactions
    assert [(t.id, t.voided) for t in saved] == [(original.id, True), (successor.id, False)]
    assert [t.id for t in service.transaction_history(successor.id)] == [original.id, successor.id]

    with pytest.raises(ValueError):
        service.amend_transaction(successor.id, AmendmentIn())


def test_reload_restores_state_from_storage() -> None:
    storage = InMemoryStorage()
    service = _service(storage)
    food = service.create_category(CategoryIn(name="Food"))
    service.record_transaction(
        TransactionIn(date=date(2025, 3, 2), amount=_eur(-100), category_id=food.id)
    )

    fresh = _service(InMemoryStorage(storage.load()))
    assert [t.amount for t in fresh.list_transactions(MARCH)] == [Money(-100, "EUR")]
    txn = fresh.record_transaction(
        TransactionIn(date=date(2025, 3, 3), amount=_eur(-50), category_id=food.id)
    )
    assert txn.id == 2
    assert txn.seq > 1


def test_materialize_due_posts_and_skips_archived_categories() -> None:
    service = _service()
    gym = service.create_category(CategoryIn(name="Gym"))
    club = service.create_category(CategoryIn(name="Club"))
    for category in (gym, club):
        service.create_recurrence_template(
            RecurrenceTemplateIn(
                amount=_eur(-2_000),
                category_id=category.id,
                start_date=date(2025, 3, 3),
                rule=RecurrenceRuleIn(frequency=Frequency.weekly),
            )
        )
    service.archive_category(club.id)

    assert service.materialize_due(date(2025, 3, 10)) == 2
    posted = service.list_transactions(MARCH)
    assert {t.category_id for t in posted} == {gym.id}
    assert all(t.kind == TransactionKind.actual for t in posted)

    assert service.materialize_due(date(2025, 3, 10)) == 0


def test_archived_category_rejects_new_transactions() -> None:
    service = _service()
    old = service.create_category(CategoryIn(name="Old"))
    service.archive_category(old.id)
    with pytest.raises(CategoryArchived):
        service.record_transaction(
            TransactionIn(date=date(2025, 3, 2), amount=_eur(-100), category_id=old.id)
        )


def test_budget_uses_base_currency_for_unlimited_categories() -> None:
    service = _service()
    fun = service.create_category(CategoryIn(name="Fun"))
    service.record_transaction(
        TransactionIn(date=date(2025, 3, 2), amount=_eur(-100), category_id=fun.id)
    )
    (line,) = service.evaluate_budget(YearMonth(2025, 3))
    assert line.spent == Money(100, "EUR")
    assert line.limit is None


def test_empty_storage_loads_cleanly() -> None:
    service = _service(InMemoryStorage(LedgerSnapshot()))
    assert service.category_tree() == []
    assert service.recurrence_templates() == []


def test_forecast_leaves_out_archived_category_templates() -> None:
    service = _service()
    gym = service.create_category(CategoryIn(name="Gym"))
    club = service.create_category(CategoryIn(name="Club"))
    for category in (gym, club):
        service.create_recurrence_template(
            RecurrenceTemplateIn(
                amount=_eur(-2_000),
                category_id=category.id,
                start_date=date(2025, 3, 3),
                rule=RecurrenceRuleIn(frequency=Frequency.weekly),
            )
        )
    service.archive_category(club.id)

    points = service.forecast(date(2025, 3, 2), date(2025, 3, 31), Money(100_000, "EUR"))
    assert len(points) == 5
    assert {p.transaction.category_id for p in points} == {gym.id}

    service.restore_category(club.id)
    points = service.forecast(date(2025, 3, 2), date(2025, 3, 31), Money(100_000, "EUR"))
    assert len(points) == 10
