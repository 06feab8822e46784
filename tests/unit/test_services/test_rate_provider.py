# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Tests for the exchangerate-api.com provider client."""

from datetime import date
from decimal import Decimal

import httpx
import pytest
import respx
from httpx import Response

from fxcache.services.errors import NetworkError, ProviderError, RateLimitError
from fxcache.services.rate_provider import ExchangeRateApiProvider

API_URL = "https://open.er-api.com/v6/latest"


@pytest.fixture
def provider():
    """Create a provider pointing at the public endpoint."""
    return ExchangeRateApiProvider(f"{API_URL}/", timeout=2.0)


def success_body(**overrides):
    body = {
        "result": "success",
        "base_code": "USD",
        "time_last_update_unix": 1768176000,
        "rates": {"USD": 1, "EUR": 0.85, "GBP": 0.75, "UAH": 42.0},
    }
    body.update(overrides)
    return body


class TestFetch:
    """Tests for a successful fetch."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_parses_rates(self, provider):
        """Should return the quoted rates without the base currency."""
        route = respx.get(f"{API_URL}/USD").mock(
            return_value=Response(200, json=success_body())
        )

        snapshot = await provider.fetch("usd")

        assert route.call_count == 1
        assert snapshot.base_currency == "USD"
        assert snapshot.rates == {
            "EUR": Decimal("0.85"),
            "GBP": Decimal("0.75"),
            "UAH": Decimal("42.0"),
        }
        assert snapshot.as_of == date(2026, 1, 12)

    @respx.mock
    @pytest.mark.asyncio
    async def test_rates_are_exact_decimals(self, provider):
        """Should not round-trip rates through binary floats."""
        respx.get(f"{API_URL}/USD").mock(
            return_value=Response(
                200,
                content=(
                    b'{"result": "success", "base_code": "USD", '
                    b'"rates": {"EUR": 0.1234567891}}'
                ),
            )
        )

        snapshot = await provider.fetch("USD")

        assert snapshot.rates["EUR"] == Decimal("0.1234567891")

    @respx.mock
    @pytest.mark.asyncio
    async def test_drops_unusable_entries(self, provider):
        """Should ignore non-positive rates and malformed codes."""
        respx.get(f"{API_URL}/USD").mock(
            return_value=Response(
                200,
                json=success_body(rates={"EUR": 0.85, "XX": 1.2, "BAD": -3, "ZWL": 0}),
            )
        )

        snapshot = await provider.fetch("USD")

        assert snapshot.rates == {"EUR": Decimal("0.85")}

    @respx.mock
    @pytest.mark.asyncio
    async def test_missing_timestamp_defaults_to_today(self, provider):
        respx.get(f"{API_URL}/USD").mock(
            return_value=Response(200, json=success_body(time_last_update_unix=None))
        )

        snapshot = await provider.fetch("USD")

        assert isinstance(snapshot.as_of, date)


class TestFetchErrors:
    """Tests for mapping failures onto the fetch error taxonomy."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_timeout_is_network_error(self, provider):
        respx.get(f"{API_URL}/USD").mock(side_effect=httpx.ConnectTimeout("slow"))

        with pytest.raises(NetworkError):
            await provider.fetch("USD")

    @respx.mock
    @pytest.mark.asyncio
    async def test_connection_failure_is_network_error(self, provider):
        respx.get(f"{API_URL}/USD").mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(NetworkError):
            await provider.fetch("USD")

    @respx.mock
    @pytest.mark.asyncio
    async def test_http_429_is_rate_limit_error(self, provider):
        respx.get(f"{API_URL}/USD").mock(return_value=Response(429))

        with pytest.raises(RateLimitError):
            await provider.fetch("USD")

    @respx.mock
    @pytest.mark.asyncio
    async def test_server_error_is_provider_error(self, provider):
        respx.get(f"{API_URL}/USD").mock(return_value=Response(500))

        with pytest.raises(ProviderError):
            await provider.fetch("USD")

    @respx.mock
    @pytest.mark.asyncio
    async def test_quota_error_body_is_rate_limit_error(self, provider):
        respx.get(f"{API_URL}/USD").mock(
            return_value=Response(
                200, json={"result": "error", "error-type": "quota-reached"}
            )
        )

        with pytest.raises(RateLimitError):
            await provider.fetch("USD")

    @respx.mock
    @pytest.mark.asyncio
    async def test_other_error_body_is_provider_error(self, provider):
        respx.get(f"{API_URL}/USD").mock(
            return_value=Response(
                200, json={"result": "error", "error-type": "unsupported-code"}
            )
        )

        with pytest.raises(ProviderError, match="unsupported-code"):
            await provider.fetch("USD")

    @respx.mock
    @pytest.mark.asyncio
    async def test_invalid_json_is_provider_error(self, provider):
        respx.get(f"{API_URL}/USD").mock(
            return_value=Response(200, content=b"<html>maintenance</html>")
        )

        with pytest.raises(ProviderError):
            await provider.fetch("USD")

    @respx.mock
    @pytest.mark.asyncio
    async def test_unexpected_shape_is_provider_error(self, provider):
        respx.get(f"{API_URL}/USD").mock(
            return_value=Response(200, json={"status": "ok"})
        )

        with pytest.raises(ProviderError):
            await provider.fetch("USD")

    @respx.mock
    @pytest.mark.asyncio
    async def test_empty_rates_is_provider_error(self, provider):
        respx.get(f"{API_URL}/USD").mock(
            return_value=Response(200, json=success_body(rates={}))
        )

        with pytest.raises(ProviderError):
            await provider.fetch("USD")

    @respx.mock
    @pytest.mark.asyncio
    async def test_base_mismatch_is_provider_error(self, provider):
        respx.get(f"{API_URL}/USD").mock(
            return_value=Response(200, json=success_body(base_code="EUR"))
        )

        with pytest.raises(ProviderError):
            await provider.fetch("USD")


class TestClientLifecycle:
    """Tests for HTTP client creation and cleanup."""

    @pytest.mark.asyncio
    async def test_close_releases_client(self, provider):
        client = provider._get_client()
        assert provider._get_client() is client

        await provider.close()

        assert client.is_closed
        assert provider._http_client is None

    @pytest.mark.asyncio
    async def test_uses_injected_client(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json=success_body())
        )
        async with httpx.AsyncClient(transport=transport) as client:
            provider = ExchangeRateApiProvider(API_URL, client=client)
            snapshot = await provider.fetch("USD")

        assert snapshot.rates["UAH"] == Decimal("42.0")
