from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from functools import lru_cache
from typing import Iterable, Mapping
from urllib.error import URLError
from urllib.request import Request, urlopen

from config import get_settings
from errors import CurrencyMismatch
from money import Money, RoundingMode


@dataclass(frozen=True)
class FxQuote:
    provider: str
    base: str
    quote: str
    rate: Decimal  # quote per 1 base
    rate_date: date
    fetched_at: datetime


@dataclass(frozen=True)
class PinnedRates:
    """Conversion rates fixed by the caller for one computation.

    Nothing in the engine converts currencies unless a table like this is
    passed in explicitly.
    """

    rounding: RoundingMode
    rates: Mapping[tuple[str, str], Decimal] = field(default_factory=dict)

    @classmethod
    def from_quotes(
        cls, quotes: Iterable[FxQuote], *, rounding: RoundingMode
    ) -> PinnedRates:
        return cls(rounding, {(q.base.upper(), q.quote.upper()): q.rate for q in quotes})

    @classmethod
    def from_mapping(
        cls, rates: Mapping[str, object], *, rounding: RoundingMode
    ) -> PinnedRates:
        """Build from ``{"USD/EUR": "0.92"}`` style pairs."""
        table = {}
        for pair, rate in rates.items():
            base, _, quote = pair.partition("/")
            if not base or not quote:
                raise ValueError(f"Expected BASE/QUOTE, got {pair!r}")
            table[(base.upper(), quote.upper())] = Decimal(str(rate))
        return cls(rounding, table)

    def rate(self, base: str, quote: str) -> Decimal:
        base, quote = base.upper(), quote.upper()
        if base == quote:
            return Decimal("1")
        direct = self.rates.get((base, quote))
        if direct is not None:
            return direct
        inverse = self.rates.get((quote, base))
        if inverse:
            return Decimal("1") / inverse
        raise CurrencyMismatch(quote, base)

    def normalize(self, amount: Money, currency: str) -> Money:
        if amount.currency == currency.upper():
            return amount
        return amount.convert(self.rate(amount.currency, currency), currency, rounding=self.rounding)


class FxRateService:
    def __init__(self) -> None:
        self.settings = get_settings()

    def quote_for_date(self, base: str, quote: str, on_date: date) -> FxQuote:
        provider = (self.settings.fx_provider or "frankfurter").lower()
        if provider != "frankfurter":
            raise ValueError(f"Unsupported FX provider: {provider}")

        fx = _fetch_frankfurter_quote(
            base.upper(), quote.upper(), on_date, timeout=self.settings.fx_timeout_secs
        )
        markup_bps = self.settings.fx_markup_bps
        if markup_bps:
            factor = Decimal("1") - (Decimal(markup_bps) / Decimal("10000"))
            fx = FxQuote(
                provider=fx.provider,
                base=fx.base,
                quote=fx.quote,
                rate=(fx.rate * factor),
                rate_date=fx.rate_date,
                fetched_at=fx.fetched_at,
            )
        return fx

    def pin(
        self,
        currencies: Iterable[str],
        target: str,
        on_date: date,
        *,
        rounding: RoundingMode,
    ) -> PinnedRates:
        """Fetch and pin rates from each of ``currencies`` into ``target``."""
        quotes = [
            self.quote_for_date(code, target, on_date)
            for code in sorted({c.upper() for c in currencies})
            if code != target.upper()
        ]
        return PinnedRates.from_quotes(quotes, rounding=rounding)


@lru_cache(maxsize=2048)
def _fetch_frankfurter_quote(
    base: str, quote: str, on_date: date, *, timeout: float
) -> FxQuote:
    url = f"https://api.frankfurter.app/{on_date.isoformat()}?from={base}&to={quote}"
    req = Request(url, headers={"Accept": "application/json"})
    fetched_at = datetime.now(timezone.utc)
    try:
        with urlopen(req, timeout=timeout) as resp:
            payload = json.loads(resp.read().decode("utf-8"))
    except (URLError, TimeoutError, json.JSONDecodeError) as exc:
        raise RuntimeError(
            f"Failed to fetch FX rate from Frankfurter for {base}/{quote} on {on_date}"
        ) from exc

    try:
        rate_value = payload["rates"][quote]
        effective_date = date.fromisoformat(payload["date"])
    except Exception as exc:
        raise RuntimeError("Unexpected FX provider response") from exc

    return FxQuote(
        provider="frankfurter",
        base=base,
        quote=quote,
        rate=Decimal(str(rate_value)),
        rate_date=effective_date,
        fetched_at=fetched_at,
    )
