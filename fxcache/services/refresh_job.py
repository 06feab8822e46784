# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Scheduled refresh of the exchange rate cache."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fxcache.config import Settings
from fxcache.models.base import utcnow
from fxcache.services.errors import ExchangeRateError, RateFetchError
from fxcache.services.exchange_rate_service import ExchangeRateService
from fxcache.services.freshness import FreshnessPolicy
from fxcache.services.rate_provider import RateProvider
from fxcache.services.rate_store import RateStore
from fxcache.services.single_flight import SingleFlight

logger = logging.getLogger(__name__)


@dataclass
class RefreshSummary:
    """Outcome of one refresh run."""

    started_at: datetime
    currencies: list[str]
    pairs_refreshed: int = 0
    pairs_skipped: int = 0
    failures: int = 0
    provider_rates: int = 0
    stale_marked: int = 0
    cleaned_up: int = 0
    cleanup_ran: bool = False
    fetch_skipped: bool = False
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0


class RateRefreshJob:
    """Proactively refreshes rates for the currencies in use.

    One instance lives for the whole process so that the cleanup schedule and
    the fetch backoff carry over between runs. Each run gets its own database
    session. Runs are serialised so that concurrent triggers see each
    other's backoff and cleanup state.
    """

    def __init__(
        self,
        provider: RateProvider,
        settings: Settings,
        single_flight: SingleFlight | None = None,
    ) -> None:
        self.provider = provider
        self.settings = settings
        self.single_flight = single_flight
        self.pivot = settings.exchange_rate_pivot_currency
        self.ttl = timedelta(hours=settings.exchange_rate_cache_ttl_hours)
        self.retention = timedelta(days=settings.exchange_rate_retention_days)
        self.cleanup_interval = timedelta(
            hours=settings.exchange_rate_cleanup_interval_hours
        )
        self.backoff_base = timedelta(
            minutes=settings.exchange_rate_backoff_base_minutes
        )
        self.backoff_max = timedelta(hours=settings.exchange_rate_backoff_max_hours)

        self.last_cleanup_at: datetime | None = None
        self.consecutive_failures = 0
        self.next_fetch_at: datetime | None = None
        self._lock = asyncio.Lock()

    async def run(
        self,
        db: Session,
        now: datetime | None = None,
        force_cleanup: bool = False,
        ignore_backoff: bool = False,
    ) -> RefreshSummary:
        """Refresh all active pairs, then run the maintenance passes.

        Per-pair and provider failures are counted in the summary; nothing
        raised while refreshing prevents the stale and cleanup passes. A run
        started while another is in progress waits for it to finish.
        """
        async with self._lock:
            return await self._run(db, now, force_cleanup, ignore_backoff)

    async def _run(
        self,
        db: Session,
        now: datetime | None,
        force_cleanup: bool,
        ignore_backoff: bool,
    ) -> RefreshSummary:
        now = now or utcnow()
        started = time.monotonic()
        store = RateStore(db)
        service = ExchangeRateService.from_settings(
            store,
            self.provider,
            self.settings,
            single_flight=self.single_flight,
            fetch_timeout=self.settings.exchange_rate_batch_timeout_seconds,
        )
        policy = FreshnessPolicy(store, self.ttl, self.retention)

        currencies = self._active_currencies(store)
        summary = RefreshSummary(started_at=now, currencies=currencies)
        logger.info(f"Refreshing exchange rates for: {', '.join(currencies)}")

        try:
            await self._refresh(
                service, store, currencies, now, summary, ignore_backoff
            )
        except Exception as e:
            db.rollback()
            logger.exception("Exchange rate refresh aborted")
            summary.errors.append(f"refresh aborted: {e}")

        try:
            summary.stale_marked = policy.stale_pass(now)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Stale pass failed: {e}")
            summary.errors.append(f"stale pass failed: {e}")

        if self._cleanup_due(now, force_cleanup):
            try:
                summary.cleaned_up = policy.cleanup_pass(now)
                summary.cleanup_ran = True
                self.last_cleanup_at = now
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Cleanup pass failed: {e}")
                summary.errors.append(f"cleanup pass failed: {e}")

        summary.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Exchange rate refresh finished in {summary.duration_ms}ms: "
            f"{summary.pairs_refreshed} refreshed, {summary.pairs_skipped} pinned, "
            f"{summary.failures} failed, "
            f"{summary.stale_marked} marked stale, {summary.cleaned_up} removed"
        )
        return summary

    def _active_currencies(self, store: RateStore) -> list[str]:
        try:
            currencies = store.list_active_currencies()
        except SQLAlchemyError as e:
            store.db.rollback()
            logger.error(f"Failed to load active currencies: {e}")
            currencies = []
        if not currencies:
            currencies = list(self.settings.exchange_rate_default_currencies)
            logger.info(f"No active currencies, using defaults: {currencies}")
        return currencies

    async def _refresh(
        self,
        service: ExchangeRateService,
        store: RateStore,
        currencies: list[str],
        now: datetime,
        summary: RefreshSummary,
        ignore_backoff: bool,
    ) -> None:
        quoted = [c for c in currencies if c != self.pivot]
        crosses = [(a, b) for i, a in enumerate(quoted) for b in quoted[i + 1 :]]

        if not ignore_backoff and self.next_fetch_at and now < self.next_fetch_at:
            summary.fetch_skipped = True
            logger.info(
                f"Skipping rate fetch after {self.consecutive_failures} failures; "
                f"next attempt at {self.next_fetch_at.isoformat()}"
            )
            return

        # One snapshot quotes every currency against the pivot, so a single
        # fetch serves every active currency.
        try:
            snapshot = await service.refresh_from_provider(now)
        except RateFetchError as e:
            self._register_failure(now)
            summary.failures += len(quoted) + len(crosses)
            summary.errors.append(f"{self.pivot} fetch failed: {e}")
            logger.warning(
                f"Rate fetch failed ({self.consecutive_failures} in a row), "
                f"retrying after {self.next_fetch_at.isoformat()}: {e}"
            )
            store.record_fetch_failure(
                [(self.pivot, c) for c in quoted] + [(c, self.pivot) for c in quoted]
            )
            return

        self._register_success()
        summary.provider_rates = len(snapshot.rates)

        for code in quoted:
            if service.is_pinned(self.pivot, code):
                summary.pairs_skipped += 1
            elif code in snapshot.rates:
                summary.pairs_refreshed += 1
            else:
                summary.failures += 1
                summary.errors.append(f"{self.pivot}->{code}: not quoted by provider")

        for from_currency, to_currency in crosses:
            if service.is_pinned(from_currency, to_currency):
                summary.pairs_skipped += 1
                continue
            try:
                service.derive_pair(from_currency, to_currency, now)
                summary.pairs_refreshed += 1
            except ExchangeRateError as e:
                summary.failures += 1
                summary.errors.append(f"{from_currency}->{to_currency}: {e}")

    def _cleanup_due(self, now: datetime, force: bool) -> bool:
        if force or self.last_cleanup_at is None:
            return True
        return now - self.last_cleanup_at >= self.cleanup_interval

    def _register_failure(self, now: datetime) -> None:
        self.consecutive_failures += 1
        delay = min(
            self.backoff_base * 2 ** (self.consecutive_failures - 1),
            self.backoff_max,
        )
        self.next_fetch_at = now + delay

    def _register_success(self) -> None:
        self.consecutive_failures = 0
        self.next_fetch_at = None
