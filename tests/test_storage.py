from datetime import date, datetime

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, session_scope
from domain import (
    Category,
    EndCondition,
    Frequency,
    RecurrenceRule,
    RecurrenceTemplate,
    Transaction,
)
from models import TransactionRecord
from money import Money
from storage import Changeset, SqlStorage


@pytest.fixture()
def factory() -> sessionmaker:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def test_round_trip_preserves_every_field(factory: sessionmaker) -> None:
    storage = SqlStorage(factory)
    home = Category(id=1, name="Home", monthly_limit=Money(120_000, "EUR"))
    rent = Category(id=2, name="Rent", parent_id=1, archived_at=datetime(2025, 1, 2, 8, 30))
    template = RecurrenceTemplate(
        id=1,
        amount=Money(-90_000, "EUR"),
        category_id=2,
        start_date=date(2025, 1, 31),
        rule=RecurrenceRule(
            Frequency.monthly,
            interval=1,
            end=EndCondition.after_count(12),
            day_of_month=31,
        ),
        note="Rent",
        seq=1,
        last_materialized_date=date(2025, 1, 31),
    )
    posted = Transaction(
        id=1,
        date=date(2025, 1, 31),
        amount=Money(-90_000, "EUR"),
        category_id=2,
        note="Rent",
        seq=2,
        template_id=1,
        occurrence_date=date(2025, 1, 31),
    )
    storage.save(
        Changeset(categories=[rent, home], transactions=[posted], templates=[template])
    )

    loaded = storage.load()
    assert loaded.categories == (home, rent)
    assert loaded.templates == (template,)
    assert loaded.transactions == (posted,)


def test_amendment_versions_upsert_in_place(factory: sessionmaker) -> None:
    storage = SqlStorage(factory)
    food = Category(id=1, name="Food")
    original = Transaction(
        id=1, date=date(2025, 3, 5), amount=Money(-500, "EUR"), category_id=1, seq=1
    )
    storage.save(Changeset(categories=[food], transactions=[original]))

    successor = Transaction(
        id=2,
        date=date(2025, 3, 5),
        amount=Money(-550, "EUR"),
        category_id=1,
        seq=2,
        amends=1,
    )
    voided = Transaction(
        id=1,
        date=date(2025, 3, 5),
        amount=Money(-500, "EUR"),
        category_id=1,
        seq=1,
        voided=True,
        superseded_by=2,
    )
    storage.save(Changeset(transactions=[voided, successor]))

    with session_scope(factory) as session:
        assert session.scalar(select(func.count()).select_from(TransactionRecord)) == 2
    assert storage.load().transactions == (voided, successor)


def test_empty_changeset_is_a_no_op(factory: sessionmaker) -> None:
    storage = SqlStorage(factory)
    storage.save(Changeset())
    loaded = storage.load()
    assert loaded.categories == ()
    assert loaded.transactions == ()
