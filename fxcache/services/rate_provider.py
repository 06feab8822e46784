# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Client for the external exchange rate API."""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal

import httpx
from pydantic import ValidationError

from fxcache.config import CURRENCY_CODE_PATTERN
from fxcache.schemas.provider import ProviderLatestResponse
from fxcache.services.errors import NetworkError, ProviderError, RateLimitError

logger = logging.getLogger(__name__)

# error-type values the provider uses when the quota is exhausted
RATE_LIMIT_ERROR_TYPES = frozenset({"quota-reached", "rate-limited"})


@dataclass
class ProviderRates:
    """One provider snapshot: units of each currency per 1 base unit."""

    base_currency: str
    rates: dict[str, Decimal]
    as_of: date


class RateProvider(ABC):
    """Source of "latest" rates relative to a base currency.

    Implementations never retry; a failure raises one of NetworkError,
    ProviderError or RateLimitError and the caller decides what to do.
    """

    name: str

    @abstractmethod
    async def fetch(
        self, base_currency: str, timeout: float | None = None
    ) -> ProviderRates:
        """Fetch every rate quoted against ``base_currency``."""
        ...

    async def close(self) -> None:
        """Clean up resources."""
        pass


class ExchangeRateApiProvider(RateProvider):
    """exchangerate-api.com open access endpoint (``/v6/latest/{BASE}``)."""

    def __init__(
        self,
        base_url: str,
        provider_name: str = "exchangerate-api.com",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            base_url: Endpoint prefix; the base currency is appended as a path
                segment.
            provider_name: Identifier stored in ``api_provider`` on fetched rows.
            timeout: Default per-request timeout in seconds.
            client: Optional pre-built HTTP client (tests, shared pools).
        """
        self.base_url = base_url.rstrip("/")
        self.name = provider_name
        self.timeout = timeout
        self._http_client = client

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Accept": "application/json"},
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def fetch(
        self, base_currency: str, timeout: float | None = None
    ) -> ProviderRates:
        """Fetch the latest snapshot for ``base_currency``.

        Raises:
            NetworkError: On timeout or connection failure.
            RateLimitError: When the provider reports quota exhaustion.
            ProviderError: On any other error status or unexpected body.
        """
        base_currency = base_currency.upper()
        client = self._get_client()
        try:
            response = await client.get(
                f"{self.base_url}/{base_currency}",
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.TimeoutException as e:
            raise NetworkError(f"Timed out fetching {base_currency} rates") from e
        except httpx.TransportError as e:
            raise NetworkError(f"Failed to reach rate provider: {e}") from e

        if response.status_code == 429:
            raise RateLimitError("Rate provider quota exhausted (HTTP 429)")
        if response.is_error:
            raise ProviderError(f"Rate provider returned HTTP {response.status_code}")

        try:
            payload = ProviderLatestResponse.model_validate(
                response.json(parse_float=Decimal)
            )
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProviderError(f"Rate provider returned invalid JSON: {e}") from e
        except ValidationError as e:
            raise ProviderError(f"Unexpected rate provider response: {e}") from e

        if payload.result != "success":
            error_type = payload.error_type or "unknown"
            if error_type in RATE_LIMIT_ERROR_TYPES:
                raise RateLimitError(f"Rate provider quota exhausted ({error_type})")
            raise ProviderError(f"Rate provider reported an error: {error_type}")
        if not payload.rates:
            raise ProviderError("Rate provider response has no rates")
        if payload.base_code is not None and payload.base_code.upper() != base_currency:
            raise ProviderError(
                f"Rate provider answered for base {payload.base_code}, "
                f"expected {base_currency}"
            )

        rates: dict[str, Decimal] = {}
        for code, value in payload.rates.items():
            code = code.upper()
            if code == base_currency:
                continue
            usable = value.is_finite() and value > 0
            if not usable or not CURRENCY_CODE_PATTERN.match(code):
                logger.debug(f"Ignoring unusable provider rate {code}={value}")
                continue
            rates[code] = value
        if not rates:
            raise ProviderError("Rate provider response has no usable rates")

        if payload.time_last_update_unix is not None:
            as_of = datetime.fromtimestamp(payload.time_last_update_unix, UTC).date()
        else:
            as_of = datetime.now(UTC).date()

        return ProviderRates(base_currency=base_currency, rates=rates, as_of=as_of)
