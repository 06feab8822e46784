# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Integration tests for the scheduled refresh endpoint."""

from fxcache.api.deps import get_refresh_job
from fxcache.config import Settings, get_settings
from fxcache.main import app
from fxcache.services.errors import RateLimitError
from fxcache.services.refresh_job import RateRefreshJob

CRON_URL = "/api/v1/cron/refresh-rates"


class TestCronAuthentication:
    """Tests for bearer token checks on the cron endpoint."""

    def test_requires_token(self, client):
        response = client.post(CRON_URL)
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_rejects_wrong_token(self, client):
        response = client.post(
            CRON_URL, headers={"Authorization": "Bearer not-the-secret"}
        )
        assert response.status_code == 401

    def test_missing_secret_is_server_error(self, client, cron_headers):
        app.dependency_overrides[get_settings] = lambda: Settings(
            _env_file=None, exchange_rate_cron_secret=None
        )
        response = client.post(CRON_URL, headers=cron_headers)
        assert response.status_code == 500
        assert "misconfiguration" in response.json()["detail"]


class TestCronRefresh:
    """Tests for running the refresh through the endpoint."""

    def test_refresh_summary(self, client, cron_headers, payment_methods):
        response = client.post(CRON_URL, headers=cron_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["currencies"] == ["EUR", "GBP", "USD"]
        assert data["pairs_refreshed"] == 3
        assert data["failures"] == 0
        assert data["cleanup_ran"] is True
        assert data["errors"] == []
        assert data["duration_ms"] >= 0

    def test_get_is_accepted(self, client, cron_headers):
        response = client.get(CRON_URL, headers=cron_headers)
        assert response.status_code == 200
        assert response.json()["currencies"] == ["USD", "EUR", "GBP", "UAH"]

    def test_cleanup_flag(self, client, cron_headers):
        client.post(CRON_URL, headers=cron_headers)
        response = client.post(f"{CRON_URL}?cleanup=false", headers=cron_headers)
        assert response.json()["cleanup_ran"] is False

        response = client.post(f"{CRON_URL}?cleanup=true", headers=cron_headers)
        assert response.json()["cleanup_ran"] is True

    def test_provider_failure_reported_not_raised(
        self, client, cron_headers, make_provider, test_settings
    ):
        provider = make_provider(error=RateLimitError("quota-reached"))
        job = RateRefreshJob(provider, test_settings)
        app.dependency_overrides[get_refresh_job] = lambda: job

        response = client.post(CRON_URL, headers=cron_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["failures"] == 6
        assert "USD fetch failed" in data["errors"][0]
