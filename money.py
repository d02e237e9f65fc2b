from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_EVEN, Decimal, InvalidOperation
from enum import Enum
from functools import total_ordering
from typing import Iterable, Union

from errors import CurrencyMismatch

# ISO 4217 exponents that differ from the usual two digits.
_ZERO_DIGIT_CURRENCIES = frozenset(
    {"BIF", "CLP", "DJF", "GNF", "ISK", "JPY", "KMF", "KRW", "PYG", "RWF",
     "UGX", "VND", "VUV", "XAF", "XOF", "XPF"}
)
_THREE_DIGIT_CURRENCIES = frozenset({"BHD", "IQD", "JOD", "KWD", "LYD", "OMR", "TND"})

Factor = Union[int, float, str, Decimal]


def minor_digits(currency: str) -> int:
    code = currency.upper()
    if code in _ZERO_DIGIT_CURRENCIES:
        return 0
    if code in _THREE_DIGIT_CURRENCIES:
        return 3
    return 2


def _as_decimal(value: Factor) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"Not a decimal number: {value!r}") from exc


class RoundingMode(str, Enum):
    half_even = "half_even"
    truncate = "truncate"

    @property
    def decimal_rounding(self) -> str:
        if self == RoundingMode.truncate:
            return ROUND_DOWN
        return ROUND_HALF_EVEN


@total_ordering
@dataclass(frozen=True)
class Money:
    minor_units: int
    currency: str

    def __post_init__(self) -> None:
        if isinstance(self.minor_units, bool) or not isinstance(self.minor_units, int):
            raise TypeError("Money amounts are integer minor units")
        code = (self.currency or "").upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError(f"Invalid currency code: {self.currency!r}")
        object.__setattr__(self, "currency", code)

    @classmethod
    def zero(cls, currency: str) -> Money:
        return cls(0, currency)

    @classmethod
    def from_major(cls, amount: Factor, currency: str) -> Money:
        """Parse a major-unit amount such as ``"12.34"`` without rounding.

        Amounts finer than the currency's minor unit are rejected rather than
        silently rounded.
        """
        value = _as_decimal(amount).scaleb(minor_digits(currency))
        if value != value.to_integral_value():
            raise ValueError(f"{amount} has more precision than {currency} allows")
        return cls(int(value), currency)

    @classmethod
    def total(cls, values: Iterable[Money], currency: str) -> Money:
        result = cls.zero(currency)
        for value in values:
            result = result.add(value)
        return result

    def _check(self, other: Money) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatch(self.currency, other.currency)

    def add(self, other: Money) -> Money:
        self._check(other)
        return Money(self.minor_units + other.minor_units, self.currency)

    def subtract(self, other: Money) -> Money:
        self._check(other)
        return Money(self.minor_units - other.minor_units, self.currency)

    def negate(self) -> Money:
        return Money(-self.minor_units, self.currency)

    def abs(self) -> Money:
        return Money(abs(self.minor_units), self.currency)

    def scale(self, factor: Factor, *, rounding: RoundingMode) -> Money:
        scaled = Decimal(self.minor_units) * _as_decimal(factor)
        units = scaled.quantize(Decimal("1"), rounding=RoundingMode(rounding).decimal_rounding)
        return Money(int(units), self.currency)

    def convert(self, rate: Factor, currency: str, *, rounding: RoundingMode) -> Money:
        """Convert into ``currency`` using ``rate`` target units per source unit."""
        shift = minor_digits(currency) - minor_digits(self.currency)
        converted = Decimal(self.minor_units).scaleb(shift) * _as_decimal(rate)
        units = converted.quantize(Decimal("1"), rounding=RoundingMode(rounding).decimal_rounding)
        return Money(int(units), currency)

    def compare(self, other: Money) -> int:
        self._check(other)
        if self.minor_units < other.minor_units:
            return -1
        if self.minor_units > other.minor_units:
            return 1
        return 0

    def to_major(self) -> Decimal:
        return Decimal(self.minor_units).scaleb(-minor_digits(self.currency))

    def is_negative(self) -> bool:
        return self.minor_units < 0

    def is_zero(self) -> bool:
        return self.minor_units == 0

    def __add__(self, other: Money) -> Money:
        return self.add(other)

    def __sub__(self, other: Money) -> Money:
        return self.subtract(other)

    def __neg__(self) -> Money:
        return self.negate()

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.compare(other) < 0
