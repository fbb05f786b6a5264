"""Fiat to crypto conversion for payment requests."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from fractions import Fraction
from typing import Union

from .config import AppConfig
from .errors import InvalidRate
from .qr import QRCodeManager

Number = Union[Decimal, int, str, float]

DEFAULT_PLACES = 8


def _to_decimal(value: Number, name: str) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number, not bool")
    if isinstance(value, float):
        # 100.1 should mean Decimal("100.1"), not its binary expansion.
        value = str(value)
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValueError(f"{name} is not a valid decimal: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"{name} must be finite")
    return result


def format_fixed(value: Union[Decimal, Fraction], places: int = DEFAULT_PLACES) -> str:
    """Round ``value`` half-even to ``places`` digits and render it without an exponent.

    The rounding works on the exact value, so ``value`` is rounded once.
    """

    if places < 0:
        raise ValueError(f"places must not be negative, got {places}")
    exact = Fraction(value)
    # round() on a Fraction is exact and ties to even.
    units = round(abs(exact) * 10 ** places)
    sign = "-" if exact < 0 and units else ""
    if not places:
        return f"{sign}{units}"
    digits = str(units).rjust(places + 1, "0")
    return f"{sign}{digits[:-places]}.{digits[-places:]}"


def validate_rate(exchange_rate: Number) -> Decimal:
    """Return ``exchange_rate`` as a :class:`Decimal` or raise :class:`InvalidRate`."""

    try:
        rate = _to_decimal(exchange_rate, "exchange_rate")
    except ValueError as exc:
        raise InvalidRate(str(exc)) from exc
    if rate <= 0:
        raise InvalidRate(f"exchange_rate must be greater than zero, got {rate}")
    return rate


def quote(fiat_amount: Number, exchange_rate: Number, *, places: int = DEFAULT_PLACES) -> str:
    """Convert ``fiat_amount`` into the crypto amount at ``exchange_rate``.

    The result is a string with exactly ``places`` fractional digits rounded
    half-even.  The fiat amount itself is used unrounded.  A rate that is zero,
    negative or unparsable raises :class:`~blockfin_wallet.errors.InvalidRate`
    before any division happens.
    """

    rate = validate_rate(exchange_rate)
    amount = _to_decimal(fiat_amount, "fiat_amount")
    if amount < 0:
        raise ValueError(f"fiat_amount must not be negative, got {amount}")
    return format_fixed(Fraction(amount) / Fraction(rate), places)


@dataclass(frozen=True, slots=True)
class PaymentQuote:
    """A payment request: where to pay, how much fiat, and at which rate."""

    receiving_address: str
    fiat_amount: Decimal
    exchange_rate: Decimal
    asset_symbol: str
    config: AppConfig = field(default_factory=AppConfig, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not self.receiving_address:
            raise ValueError("receiving_address must not be empty")
        rate = validate_rate(self.exchange_rate)
        amount = _to_decimal(self.fiat_amount, "fiat_amount")
        if amount <= 0:
            raise ValueError(f"fiat_amount must be greater than zero, got {amount}")
        object.__setattr__(self, "exchange_rate", rate)
        object.__setattr__(self, "fiat_amount", amount)

    @property
    def crypto_amount(self) -> str:
        return quote(self.fiat_amount, self.exchange_rate, places=self.config.quote_decimal_places)

    @property
    def qr_url(self) -> str:
        return QRCodeManager(self.config).render_url(self.receiving_address)

    def describe(self) -> str:
        """Return the ``"<amount> <symbol>"`` label shown next to the address."""

        return f"{self.crypto_amount} {self.asset_symbol}"


__all__ = ["PaymentQuote", "format_fixed", "quote", "validate_rate"]
