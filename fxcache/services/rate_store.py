# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Persistence for cached exchange rates."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from fxcache.models import ExchangeRate, PaymentMethod, RateSource

logger = logging.getLogger(__name__)

# Operator overrides and seed data survive retention cleanup
RETAINED_SOURCES = (RateSource.MANUAL, RateSource.STUB)


@dataclass
class RateEntry:
    """Writable fields of one cached rate row."""

    from_currency: str
    to_currency: str
    rate: Decimal
    rate_date: date
    source: RateSource
    fetched_at: datetime
    expires_at: datetime | None
    api_provider: str | None = None

    def __post_init__(self) -> None:
        if self.from_currency == self.to_currency:
            raise ValueError("Identity pairs are never stored")
        if self.rate <= 0:
            raise ValueError(
                f"Rate for {self.from_currency}->{self.to_currency} must be positive"
            )
        if self.source != RateSource.API:
            self.api_provider = None


class RateStore:
    """Query and write interface over the exchange_rates table.

    Every write commits; a direct rate and its inverse are committed
    together so readers never see one without the other.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, from_currency: str, to_currency: str) -> ExchangeRate | None:
        """Get the cached row for a pair, whatever its freshness."""
        return (
            self.db.query(ExchangeRate)
            .filter(
                ExchangeRate.from_currency == from_currency,
                ExchangeRate.to_currency == to_currency,
            )
            .first()
        )

    def upsert(self, entry: RateEntry) -> ExchangeRate:
        """Insert or replace a single row."""
        return self._write([entry])[0]

    def upsert_pair(
        self, direct: RateEntry, inverse: RateEntry
    ) -> tuple[ExchangeRate, ExchangeRate]:
        """Insert or replace a rate and its inverse in one transaction."""
        if (direct.from_currency, direct.to_currency) != (
            inverse.to_currency,
            inverse.from_currency,
        ):
            raise ValueError("Inverse entry does not mirror the direct pair")
        rows = self._write([direct, inverse])
        return rows[0], rows[1]

    def _write(self, entries: list[RateEntry]) -> list[ExchangeRate]:
        # A concurrent writer may insert the same pair between our read and
        # our insert; the second attempt then finds the row and updates it.
        retried = False
        while True:
            try:
                rows = [self._apply(entry) for entry in entries]
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                if retried:
                    raise
                retried = True
                logger.debug(
                    f"Concurrent insert for {entries[0].from_currency}->"
                    f"{entries[0].to_currency}, retrying as update"
                )
                continue
            except SQLAlchemyError:
                self.db.rollback()
                raise
            for row in rows:
                self.db.refresh(row)
            return rows

    def _apply(self, entry: RateEntry) -> ExchangeRate:
        row = self.get(entry.from_currency, entry.to_currency)
        if row is None:
            row = ExchangeRate(
                from_currency=entry.from_currency,
                to_currency=entry.to_currency,
            )
            self.db.add(row)
        row.rate = entry.rate
        row.rate_date = entry.rate_date
        row.source = entry.source
        row.api_provider = entry.api_provider
        row.fetched_at = entry.fetched_at
        row.expires_at = entry.expires_at
        row.is_stale = False
        row.fetch_error_count = 0
        self.db.flush()
        return row

    def mark_stale(self, now: datetime) -> int:
        """Flag expired rows as stale. Returns the number of rows flagged."""
        count = (
            self.db.query(ExchangeRate)
            .filter(
                ExchangeRate.expires_at.is_not(None),
                ExchangeRate.expires_at <= now,
                ExchangeRate.is_stale.is_(False),
                ExchangeRate.source != RateSource.STUB,
            )
            .update({"is_stale": True}, synchronize_session=False)
        )
        self.db.commit()
        return count

    def cleanup(self, cutoff: datetime) -> int:
        """Delete rows last fetched before ``cutoff``. Returns count deleted."""
        count = (
            self.db.query(ExchangeRate)
            .filter(
                ExchangeRate.fetched_at < cutoff,
                ExchangeRate.source.not_in(RETAINED_SOURCES),
            )
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return count

    def record_fetch_failure(self, pairs: Iterable[tuple[str, str]]) -> int:
        """Increment fetch_error_count on the existing rows for ``pairs``."""
        conditions = [
            and_(
                ExchangeRate.from_currency == from_currency,
                ExchangeRate.to_currency == to_currency,
            )
            for from_currency, to_currency in set(pairs)
        ]
        if not conditions:
            return 0
        count = (
            self.db.query(ExchangeRate)
            .filter(or_(*conditions))
            .update(
                {"fetch_error_count": ExchangeRate.fetch_error_count + 1},
                synchronize_session=False,
            )
        )
        self.db.commit()
        return count

    def list_active_currencies(self) -> list[str]:
        """Currencies referenced by at least one active payment method."""
        rows = (
            self.db.query(PaymentMethod.currency)
            .filter(PaymentMethod.is_active.is_(True))
            .distinct()
            .all()
        )
        return sorted({currency.upper() for (currency,) in rows})

    def list_rates_from(self, from_currency: str) -> list[ExchangeRate]:
        """All cached rows quoted from ``from_currency``."""
        return (
            self.db.query(ExchangeRate)
            .filter(ExchangeRate.from_currency == from_currency)
            .order_by(ExchangeRate.to_currency)
            .all()
        )
