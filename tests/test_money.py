import pytest

from errors import CurrencyMismatch
from money import Money, RoundingMode


@pytest.mark.parametrize(
    "start, delta",
    [(0, 0), (1234, 1), (-5000, 2599), (10**12, -(10**12)), (7, -7)],
)
def test_add_then_subtract_round_trips(start: int, delta: int) -> None:
    value = Money(start, "EUR")
    other = Money(delta, "EUR")
    assert value.add(other).subtract(other) == value
    assert (value + other) - other == value


def test_arithmetic_requires_same_currency() -> None:
    with pytest.raises(CurrencyMismatch) as info:
        Money(100, "EUR").add(Money(100, "USD"))
    assert info.value.expected == "EUR"
    assert info.value.actual == "USD"

    with pytest.raises(CurrencyMismatch):
        Money(100, "EUR").compare(Money(100, "USD"))


def test_currency_code_is_normalized_and_validated() -> None:
    assert Money(1, "eur").currency == "EUR"
    with pytest.raises(ValueError):
        Money(1, "EURO")
    with pytest.raises(TypeError):
        Money(1.5, "EUR")


def test_negate_and_compare() -> None:
    assert Money(250, "EUR").negate() == Money(-250, "EUR")
    assert -Money(250, "EUR") == Money(-250, "EUR")
    assert Money(1, "EUR").compare(Money(2, "EUR")) == -1
    assert Money(2, "EUR").compare(Money(2, "EUR")) == 0
    assert Money(3, "EUR") > Money(2, "EUR")
    assert sorted([Money(3, "EUR"), Money(-1, "EUR")]) == [Money(-1, "EUR"), Money(3, "EUR")]


def test_scale_rounds_with_the_mode_given() -> None:
    assert Money(15, "EUR").scale("0.5", rounding=RoundingMode.half_even) == Money(8, "EUR")
    assert Money(5, "EUR").scale("0.5", rounding=RoundingMode.half_even) == Money(2, "EUR")
    assert Money(15, "EUR").scale("0.5", rounding=RoundingMode.truncate) == Money(7, "EUR")
    assert Money(-15, "EUR").scale("0.5", rounding=RoundingMode.truncate) == Money(-7, "EUR")
    assert Money(1999, "EUR").scale(3, rounding=RoundingMode.truncate) == Money(5997, "EUR")
    assert Money(1000, "EUR").scale(0.075, rounding=RoundingMode.half_even) == Money(75, "EUR")


def test_scale_has_no_implicit_rounding() -> None:
    with pytest.raises(TypeError):
        Money(100, "EUR").scale("0.5")


def test_from_major_is_exact() -> None:
    assert Money.from_major("12.34", "EUR") == Money(1234, "EUR")
    assert Money.from_major("500", "JPY") == Money(500, "JPY")
    assert Money.from_major("1.234", "KWD") == Money(1234, "KWD")
    with pytest.raises(ValueError):
        Money.from_major("12.345", "EUR")
    with pytest.raises(ValueError):
        Money.from_major("abc", "EUR")


def test_convert_accounts_for_minor_unit_digits() -> None:
    assert Money(10_000, "USD").convert("0.92", "EUR", rounding=RoundingMode.half_even) == Money(
        9_200, "EUR"
    )
    assert Money(1_000, "USD").convert("150.5", "JPY", rounding=RoundingMode.half_even) == Money(
        1_505, "JPY"
    )
    assert Money(1_005, "USD").convert("0.5", "EUR", rounding=RoundingMode.truncate) == Money(
        502, "EUR"
    )


def test_total_sums_in_one_currency() -> None:
    values = [Money(100, "EUR"), Money(-30, "EUR"), Money(5, "EUR")]
    assert Money.total(values, "EUR") == Money(75, "EUR")
    assert Money.total([], "EUR") == Money.zero("EUR")
    with pytest.raises(CurrencyMismatch):
        Money.total([Money(1, "USD")], "EUR")
