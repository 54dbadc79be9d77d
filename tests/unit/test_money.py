from __future__ import annotations

from decimal import Decimal

import pytest

from paygate.application.money import exponent, format_decimal, to_decimal, to_minor_units


@pytest.mark.parametrize(
    "amount,currency,expected",
    [
        (1050, "EUR", "10.50"),
        (5, "usd", "0.05"),
        (1050, "JPY", "1050"),
        (100000, "GBP", "1000.00"),
    ],
)
def test_format_decimal(amount: int, currency: str, expected: str) -> None:
    assert format_decimal(amount, currency) == expected


def test_to_decimal() -> None:
    assert to_decimal(1999, "EUR") == Decimal("19.99")
    assert exponent("krw") == 0
    assert exponent("HUF") == 2
    assert to_decimal(150000, "HUF") == Decimal("1500.00")


def test_to_minor_units_rounds_half_up() -> None:
    assert to_minor_units("10.50", "EUR") == 1050
    assert to_minor_units("10.005", "EUR") == 1001
    assert to_minor_units(Decimal("0.1"), "USD") == 10
    assert to_minor_units("1050", "JPY") == 1050
