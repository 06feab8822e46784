# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Freshness rules for cached exchange rates."""

import logging
from datetime import datetime, timedelta
from enum import Enum

from fxcache.models import ExchangeRate
from fxcache.services.rate_store import RateStore

logger = logging.getLogger(__name__)


class Freshness(str, Enum):
    """How usable a cached rate is at a given moment."""

    FRESH = "fresh"
    STALE = "stale"
    MISSING = "missing"


def classify(entry: ExchangeRate | None, now: datetime) -> Freshness:
    """Classify a cached row.

    Only ``expires_at`` is consulted; the ``is_stale`` flag is a write-back of
    the periodic pass and may lag behind. A NULL expiry marks a permanent
    manual rate.
    """
    if entry is None:
        return Freshness.MISSING
    if entry.expires_at is None or now < entry.expires_at:
        return Freshness.FRESH
    return Freshness.STALE


class FreshnessPolicy:
    """TTL and retention policy plus the periodic maintenance passes."""

    def __init__(
        self,
        store: RateStore,
        ttl: timedelta,
        retention: timedelta,
    ) -> None:
        if ttl <= timedelta(0):
            raise ValueError("Cache TTL must be positive")
        if retention <= ttl:
            raise ValueError("Retention horizon must be longer than the cache TTL")
        self.store = store
        self.ttl = ttl
        self.retention = retention

    def expires_at_for(self, fetched_at: datetime) -> datetime:
        return fetched_at + self.ttl

    def classify(self, entry: ExchangeRate | None, now: datetime) -> Freshness:
        return classify(entry, now)

    def stale_pass(self, now: datetime) -> int:
        """Mark every expired, not yet flagged row as stale."""
        count = self.store.mark_stale(now)
        if count:
            logger.info(f"Marked {count} exchange rates as stale")
        return count

    def cleanup_pass(self, now: datetime, horizon: timedelta | None = None) -> int:
        """Delete rows fetched longer ago than the retention horizon.

        Stale rows are the fallback of last resort, so only rows older than
        the (weeks-long) horizon are removed.
        """
        horizon = horizon if horizon is not None else self.retention
        if horizon <= self.ttl:
            raise ValueError("Cleanup horizon must be longer than the cache TTL")
        count = self.store.cleanup(now - horizon)
        if count:
            logger.info(f"Removed {count} exchange rates older than {horizon}")
        return count
