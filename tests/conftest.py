# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
import asyncio
import os
from datetime import date, datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["EXCHANGE_RATE_CRON_SECRET"] = "test-cron-secret"  # nosec - test-only secret  # noqa: S105

from fxcache.api.deps import get_rate_provider, get_refresh_job
from fxcache.config import Settings
from fxcache.database import get_db
from fxcache.main import app
from fxcache.models import PaymentMethod
from fxcache.models.base import Base
from fxcache.services.exchange_rate_service import ExchangeRateService
from fxcache.services.rate_provider import ProviderRates, RateProvider
from fxcache.services.rate_store import RateStore
from fxcache.services.refresh_job import RateRefreshJob

CRON_SECRET = "test-cron-secret"  # nosec - test-only secret  # noqa: S105
NOW = datetime(2026, 1, 12, 12, 0, 0)
AS_OF = date(2026, 1, 12)

# Test database setup
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeRateProvider(RateProvider):
    """In-memory provider that records how often it was asked."""

    name = "fake-provider"

    def __init__(self, rates=None, error=None, delay=0.0, as_of=AS_OF):
        self.rates = rates if rates is not None else {}
        self.error = error
        self.delay = delay
        self.as_of = as_of
        self.calls = []

    async def fetch(self, base_currency, timeout=None):
        self.calls.append(base_currency)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return ProviderRates(
            base_currency=base_currency,
            rates={code: Decimal(str(v)) for code, v in self.rates.items()},
            as_of=self.as_of,
        )


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_provider() -> FakeRateProvider:
    """Provider quoting EUR, GBP and UAH against USD."""
    return FakeRateProvider(rates={"EUR": "0.85", "GBP": "0.75", "UAH": "42.0"})


@pytest.fixture
def rate_store(db_session) -> RateStore:
    return RateStore(db_session)


@pytest.fixture
def rate_service(rate_store, fake_provider) -> ExchangeRateService:
    """Exchange rate service backed by the test database and fake provider."""
    return ExchangeRateService(rate_store, fake_provider, fetch_timeout=1.0)


@pytest.fixture
def test_settings() -> Settings:
    """Settings independent of the environment and any .env file."""
    return Settings(
        _env_file=None,
        exchange_rate_cron_secret=CRON_SECRET,
        exchange_rate_batch_timeout_seconds=1.0,
    )


@pytest.fixture
def payment_methods(db_session) -> list[PaymentMethod]:
    """Active EUR, GBP and USD methods plus an inactive JPY one."""
    methods = [
        PaymentMethod(name="Euro card", currency="EUR"),
        PaymentMethod(name="Sterling account", currency="GBP"),
        PaymentMethod(name="Dollar cash", currency="USD"),
        PaymentMethod(name="Old yen card", currency="JPY", is_active=False),
    ]
    db_session.add_all(methods)
    db_session.commit()
    return methods


@pytest.fixture(scope="function")
def client(db_session, fake_provider, test_settings):
    """Create a test client with database and provider overrides."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    refresh_job = RateRefreshJob(fake_provider, test_settings)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_rate_provider] = lambda: fake_provider
    app.dependency_overrides[get_refresh_job] = lambda: refresh_job
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def cron_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {CRON_SECRET}"}


@pytest.fixture
def make_provider():
    """Factory for providers with custom rates, errors or latency."""
    return FakeRateProvider
