# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""API dependencies for dependency injection."""

import logging
import secrets

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from fxcache.config import Settings, get_settings
from fxcache.database import get_db
from fxcache.services.exchange_rate_service import ExchangeRateService
from fxcache.services.rate_provider import RateProvider
from fxcache.services.rate_store import RateStore
from fxcache.services.refresh_job import RateRefreshJob
from fxcache.services.single_flight import SingleFlight

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

__all__ = [
    "get_db",
    "get_exchange_rate_service",
    "get_rate_provider",
    "get_rate_store",
    "get_refresh_job",
    "get_single_flight",
    "verify_cron_token",
]


def get_rate_provider(request: Request) -> RateProvider:
    """Get the process-wide rate provider client."""
    return request.app.state.rate_provider


def get_single_flight(request: Request) -> SingleFlight | None:
    """Get the shared in-flight fetch registry, if one is configured."""
    return getattr(request.app.state, "single_flight", None)


def get_refresh_job(request: Request) -> RateRefreshJob:
    """Get the process-wide batch refresh job."""
    return request.app.state.refresh_job


def get_rate_store(db: Session = Depends(get_db)) -> RateStore:
    """Get a rate store bound to the request's session."""
    return RateStore(db)


def get_exchange_rate_service(
    store: RateStore = Depends(get_rate_store),
    provider: RateProvider = Depends(get_rate_provider),
    single_flight: SingleFlight | None = Depends(get_single_flight),
    settings: Settings = Depends(get_settings),
) -> ExchangeRateService:
    """Get an exchange rate service for the current request."""
    return ExchangeRateService.from_settings(
        store, provider, settings, single_flight=single_flight
    )


def verify_cron_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> None:
    """Require ``Authorization: Bearer <EXCHANGE_RATE_CRON_SECRET>``."""
    secret = settings.exchange_rate_cron_secret
    if not secret:
        logger.error("EXCHANGE_RATE_CRON_SECRET not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server misconfiguration: cron secret not configured",
        )

    if credentials is None or not secrets.compare_digest(
        credentials.credentials.encode(), secret.encode()
    ):
        logger.warning(
            "Unauthorized cron attempt: authorization header "
            f"{'present' if credentials else 'missing'}"
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing authorization token",
            headers={"WWW-Authenticate": "Bearer"},
        )
