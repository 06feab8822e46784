# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Exceptions raised by the exchange rate services."""


class ExchangeRateError(Exception):
    """Base exception for exchange rate errors."""


class RateFetchError(ExchangeRateError):
    """The rate provider could not deliver a snapshot.

    Never surfaced to callers of the resolution engine; it only triggers the
    stale fallback.
    """


class NetworkError(RateFetchError):
    """Timeout or connection failure talking to the provider."""


class ProviderError(RateFetchError):
    """Provider answered with an error status or an unexpected body."""


class RateLimitError(RateFetchError):
    """Provider signalled that the request quota is exhausted."""


class RateUnavailableError(ExchangeRateError):
    """No cached rate exists and no fetch succeeded for a pair."""

    def __init__(self, from_currency: str, to_currency: str) -> None:
        self.from_currency = from_currency
        self.to_currency = to_currency
        super().__init__(
            f"Exchange rate unavailable for {from_currency} to {to_currency}"
        )


class InvalidCurrencyPairError(ExchangeRateError, ValueError):
    """Malformed currency code or unusable pair."""
