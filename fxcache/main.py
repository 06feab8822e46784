# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from fxcache import __version__
from fxcache.config import get_settings
from fxcache.logging_config import configure_logging
from fxcache.services.rate_provider import ExchangeRateApiProvider
from fxcache.services.refresh_job import RateRefreshJob
from fxcache.services.single_flight import SingleFlight

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the long-lived rate components and release them on shutdown."""
    settings = get_settings()
    configure_logging(settings.log_level)

    provider = ExchangeRateApiProvider(
        settings.exchange_rate_api_url,
        provider_name=settings.exchange_rate_api_provider,
        timeout=settings.exchange_rate_request_timeout_seconds,
    )
    single_flight = SingleFlight()
    app.state.rate_provider = provider
    app.state.single_flight = single_flight
    app.state.refresh_job = RateRefreshJob(provider, settings, single_flight)
    logger.info(
        f"Exchange rate provider {provider.name} at {provider.base_url} "
        f"(pivot {settings.exchange_rate_pivot_currency}, "
        f"TTL {settings.exchange_rate_cache_ttl_hours}h)"
    )

    yield

    logger.info("Shutting down exchange rate provider...")
    await provider.close()


app = FastAPI(
    title="fxcache",
    description="Cached currency exchange rates with scheduled refresh",
    version=__version__,
    lifespan=lifespan,
)


@app.get("/health")
def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "healthy"}


from fxcache.api.v1.router import api_router  # noqa: E402

app.include_router(api_router, prefix="/api/v1")
