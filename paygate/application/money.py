"""Conversions between integer minor units and provider decimal strings."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW", "CLP", "ISK", "VND", "XAF", "XOF"})


def exponent(currency: str) -> int:
    return 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2


def to_decimal(amount: int, currency: str) -> Decimal:
    return Decimal(amount).scaleb(-exponent(currency))


def format_decimal(amount: int, currency: str) -> str:
    """``1050, "EUR"`` -> ``"10.50"``; ``1050, "JPY"`` -> ``"1050"``."""
    places = exponent(currency)
    quantum = Decimal(1).scaleb(-places)
    return str(to_decimal(amount, currency).quantize(quantum))


def to_minor_units(value: str | Decimal | int | float, currency: str) -> int:
    dec = Decimal(str(value)).scaleb(exponent(currency))
    return int(dec.quantize(Decimal(1), rounding=ROUND_HALF_UP))
