# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Decimal helpers for rate arithmetic."""

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation

from fxcache.config import CURRENCY_CODE_PATTERN
from fxcache.services.errors import InvalidCurrencyPairError

RATE_QUANTUM = Decimal("0.000001")
AMOUNT_QUANTUM = Decimal("0.01")


def normalize_currency(code: str) -> str:
    """Upper-case a currency code and check it is three ASCII letters."""
    if not isinstance(code, str):
        raise InvalidCurrencyPairError(f"Invalid currency code: {code!r}")
    normalized = code.strip().upper()
    if not CURRENCY_CODE_PATTERN.match(normalized):
        raise InvalidCurrencyPairError(f"Invalid currency code: {code!r}")
    return normalized


def quantize_rate(value: Decimal | float | str | int) -> Decimal:
    """Round a rate to the six fractional digits that are stored."""
    try:
        # str() first so floats keep their short decimal form
        return Decimal(str(value)).quantize(RATE_QUANTUM, rounding=ROUND_HALF_EVEN)
    except InvalidOperation as e:
        raise ValueError(f"Invalid rate value: {value!r}") from e


def invert_rate(rate: Decimal) -> Decimal:
    """Return 1 / rate at storage precision."""
    return quantize_rate(Decimal(1) / rate)


def cross_rate(pivot_to_from: Decimal, pivot_to_to: Decimal) -> Decimal:
    """Triangulate from/to out of two pivot-quoted rates."""
    return quantize_rate(pivot_to_to / pivot_to_from)


def quantize_amount(amount: Decimal) -> Decimal:
    """Round a monetary amount to cents, half to even."""
    return amount.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_EVEN)
