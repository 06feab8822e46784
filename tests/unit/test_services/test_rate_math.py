# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Tests for rate_math."""

from decimal import Decimal

import pytest

from fxcache.services.errors import InvalidCurrencyPairError
from fxcache.services.rate_math import (
    cross_rate,
    invert_rate,
    normalize_currency,
    quantize_amount,
    quantize_rate,
)


class TestNormalizeCurrency:
    """Tests for normalize_currency."""

    def test_upper_cases_and_strips(self):
        assert normalize_currency(" eur ") == "EUR"

    @pytest.mark.parametrize("code", ["EU", "EURO", "E1R", "", "€UR"])
    def test_rejects_malformed_codes(self, code):
        with pytest.raises(InvalidCurrencyPairError):
            normalize_currency(code)

    def test_rejects_non_strings(self):
        with pytest.raises(InvalidCurrencyPairError):
            normalize_currency(None)

    def test_invalid_code_is_a_value_error(self):
        """Callers catching ValueError also see bad codes."""
        with pytest.raises(ValueError):
            normalize_currency("XX")


class TestQuantizeRate:
    """Tests for quantize_rate."""

    def test_rounds_to_six_places(self):
        assert quantize_rate(Decimal("1.23456789")) == Decimal("1.234568")

    def test_rounds_half_to_even(self):
        assert quantize_rate(Decimal("0.0000005")) == Decimal("0.000000")
        assert quantize_rate(Decimal("0.0000015")) == Decimal("0.000002")

    def test_floats_keep_their_short_form(self):
        assert quantize_rate(0.85) == Decimal("0.850000")

    def test_rejects_garbage(self):
        with pytest.raises(ValueError):
            quantize_rate("abc")


class TestArithmetic:
    """Tests for inversion, triangulation and amount rounding."""

    def test_invert_rate(self):
        assert invert_rate(Decimal("0.85")) == Decimal("1.176471")
        assert invert_rate(Decimal("42")) == Decimal("0.023810")

    def test_cross_rate_divides_target_by_source_leg(self):
        # USD->EUR 0.85, USD->UAH 42.0 gives EUR->UAH
        assert cross_rate(Decimal("0.85"), Decimal("42.0")) == Decimal("49.411765")

    def test_quantize_amount(self):
        assert quantize_amount(Decimal("10.125")) == Decimal("10.12")
        assert quantize_amount(Decimal("10.135")) == Decimal("10.14")
