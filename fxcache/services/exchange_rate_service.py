# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Exchange rate resolution: cache first, provider second, stale data last."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum

from fxcache.config import Settings
from fxcache.models import ExchangeRate, RateSource
from fxcache.models.base import utcnow
from fxcache.services.errors import (
    InvalidCurrencyPairError,
    NetworkError,
    ProviderError,
    RateFetchError,
    RateUnavailableError,
)
from fxcache.services.freshness import Freshness, classify
from fxcache.services.rate_math import (
    cross_rate,
    invert_rate,
    normalize_currency,
    quantize_amount,
    quantize_rate,
)
from fxcache.services.rate_provider import ProviderRates, RateProvider
from fxcache.services.rate_store import RateEntry, RateStore
from fxcache.services.single_flight import SingleFlight

logger = logging.getLogger(__name__)


class LookupStatus(str, Enum):
    """How a rate was obtained."""

    IDENTITY = "identity"
    FRESH = "fresh"
    FETCHED = "fetched"
    STALE = "stale"


@dataclass
class RateLookup:
    """A resolved rate plus where it came from."""

    from_currency: str
    to_currency: str
    rate: Decimal
    status: LookupStatus
    rate_date: date
    source: RateSource | None = None
    fetched_at: datetime | None = None
    expires_at: datetime | None = None


@dataclass
class ConversionResult:
    """Result of a currency conversion."""

    original_amount: Decimal
    original_currency: str
    converted_amount: Decimal
    target_currency: str
    exchange_rate: Decimal
    rate_date: date
    status: LookupStatus


@dataclass
class _Derived:
    rate: Decimal
    rate_date: date
    expires_at: datetime | None
    fetched_at: datetime | None


class ExchangeRateService:
    """Resolves conversion rates for any currency pair.

    Resolution order: identity, fresh cached row, the inverse of a fresh
    cached row, triangulation from fresh cached pivot legs, a provider fetch
    for the pivot, and finally whatever stale data is cached. Provider
    failures never reach the caller; only RateUnavailableError and
    InvalidCurrencyPairError do.

    Pairs pinned by a permanent manual rate are never overwritten by fetched
    or derived rates.
    """

    def __init__(
        self,
        store: RateStore,
        provider: RateProvider,
        *,
        pivot_currency: str = "USD",
        cache_ttl: timedelta = timedelta(hours=24),
        fetch_timeout: float = 3.0,
        single_flight: SingleFlight | None = None,
    ) -> None:
        self.store = store
        self.provider = provider
        self.pivot = normalize_currency(pivot_currency)
        self.cache_ttl = cache_ttl
        self.fetch_timeout = fetch_timeout
        self.single_flight = single_flight

    @classmethod
    def from_settings(
        cls,
        store: RateStore,
        provider: RateProvider,
        settings: Settings,
        single_flight: SingleFlight | None = None,
        fetch_timeout: float | None = None,
    ) -> "ExchangeRateService":
        """Build a service configured from application settings."""
        return cls(
            store,
            provider,
            pivot_currency=settings.exchange_rate_pivot_currency,
            cache_ttl=timedelta(hours=settings.exchange_rate_cache_ttl_hours),
            fetch_timeout=(
                fetch_timeout
                if fetch_timeout is not None
                else settings.exchange_rate_request_timeout_seconds
            ),
            single_flight=single_flight,
        )

    # Public API -----------------------------------------------

    async def resolve(
        self,
        from_currency: str,
        to_currency: str,
        now: datetime | None = None,
    ) -> RateLookup:
        """Resolve the rate for a pair.

        Args:
            from_currency: Source currency code (e.g., "EUR").
            to_currency: Target currency code (e.g., "UAH").
            now: Evaluation time (naive UTC); defaults to the current time.

        Returns:
            RateLookup with the rate and its provenance.

        Raises:
            InvalidCurrencyPairError: If a code is malformed.
            RateUnavailableError: If no rate could be obtained at all.
        """
        from_currency = normalize_currency(from_currency)
        to_currency = normalize_currency(to_currency)
        now = now or utcnow()

        if from_currency == to_currency:
            return RateLookup(
                from_currency=from_currency,
                to_currency=to_currency,
                rate=Decimal("1"),
                status=LookupStatus.IDENTITY,
                rate_date=now.date(),
            )

        direct = self.store.get(from_currency, to_currency)
        if classify(direct, now) is Freshness.FRESH:
            return self._lookup(direct, LookupStatus.FRESH)

        inverse = self.store.get(to_currency, from_currency)
        if classify(inverse, now) is Freshness.FRESH:
            row = self._store_inverted(from_currency, to_currency, now)
            if row is not None:
                return self._lookup(row, LookupStatus.FRESH)

        derived = self._derive_from_legs(
            from_currency, to_currency, now, fresh_only=True
        )
        if derived is not None:
            row = self._store_derived(from_currency, to_currency, derived, now)
            return self._lookup(row, LookupStatus.FRESH)

        try:
            snapshot = await self._fetch_and_store(now, self.fetch_timeout)
        except RateFetchError as e:
            logger.warning(
                f"Exchange rate fetch failed for {from_currency}->{to_currency}: {e}"
            )
            self.store.record_fetch_failure(
                self._related_pairs(from_currency, to_currency)
            )
            return self._stale_fallback(from_currency, to_currency, now)

        try:
            row = self._resolve_from_snapshot(
                from_currency, to_currency, snapshot, now
            )
        except ProviderError as e:
            # the fetch itself succeeded, so the error counters stay untouched
            logger.warning(f"{e}; falling back to cached data")
            return self._stale_fallback(from_currency, to_currency, now)
        return self._lookup(row, LookupStatus.FETCHED)

    async def get_rate(
        self,
        from_currency: str,
        to_currency: str,
        now: datetime | None = None,
    ) -> Decimal:
        """Get the rate to convert one unit of from_currency into to_currency."""
        lookup = await self.resolve(from_currency, to_currency, now)
        return lookup.rate

    async def convert(
        self,
        amount: Decimal,
        from_currency: str,
        to_currency: str,
        now: datetime | None = None,
    ) -> ConversionResult:
        """Convert an amount from one currency to another.

        The returned exchange_rate is the one actually applied; callers store
        it with the transaction.

        Raises:
            InvalidCurrencyPairError: If a code is malformed.
            RateUnavailableError: If no rate could be found.
        """
        lookup = await self.resolve(from_currency, to_currency, now)
        converted = quantize_amount(Decimal(amount) * lookup.rate)

        return ConversionResult(
            original_amount=Decimal(amount),
            original_currency=lookup.from_currency,
            converted_amount=converted,
            target_currency=lookup.to_currency,
            exchange_rate=lookup.rate,
            rate_date=lookup.rate_date,
            status=lookup.status,
        )

    def set_manual_rate(
        self,
        from_currency: str,
        to_currency: str,
        rate: Decimal | float | str,
        now: datetime | None = None,
        permanent: bool = False,
    ) -> ExchangeRate:
        """Store an operator-supplied rate and its inverse.

        Manual rates follow the normal TTL unless ``permanent`` is set, in
        which case they never expire.
        """
        from_currency = normalize_currency(from_currency)
        to_currency = normalize_currency(to_currency)
        if from_currency == to_currency:
            raise InvalidCurrencyPairError(
                f"Cannot set a rate from {from_currency} to itself"
            )
        value = quantize_rate(rate)
        if value <= 0:
            raise ValueError("Manual rate must be positive")
        inverse = invert_rate(value)
        if inverse <= 0:
            raise ValueError("Manual rate is too large to store its inverse")

        now = now or utcnow()
        expires_at = None if permanent else now + self.cache_ttl
        direct_row, _ = self.store.upsert_pair(
            RateEntry(
                from_currency=from_currency,
                to_currency=to_currency,
                rate=value,
                rate_date=now.date(),
                source=RateSource.MANUAL,
                fetched_at=now,
                expires_at=expires_at,
            ),
            RateEntry(
                from_currency=to_currency,
                to_currency=from_currency,
                rate=inverse,
                rate_date=now.date(),
                source=RateSource.MANUAL,
                fetched_at=now,
                expires_at=expires_at,
            ),
        )
        logger.info(f"Manual rate set: {from_currency}->{to_currency} = {value}")
        return direct_row

    async def refresh_from_provider(
        self,
        now: datetime | None = None,
        timeout: float | None = None,
    ) -> ProviderRates:
        """Fetch the pivot snapshot and store every quoted pair.

        Skips the freshness check entirely. Raises RateFetchError subclasses
        on failure.
        """
        now = now or utcnow()
        return await self._fetch_and_store(
            now, timeout if timeout is not None else self.fetch_timeout
        )

    def derive_pair(
        self,
        from_currency: str,
        to_currency: str,
        now: datetime | None = None,
    ) -> ExchangeRate:
        """Triangulate a pair from fresh cached pivot legs and store it.

        A pair pinned by a permanent manual rate is left as is and its row
        returned unchanged.

        Raises:
            InvalidCurrencyPairError: For identity or pivot-relative pairs.
            RateUnavailableError: If either pivot leg is missing or expired.
        """
        from_currency = normalize_currency(from_currency)
        to_currency = normalize_currency(to_currency)
        if from_currency == to_currency or self.pivot in (from_currency, to_currency):
            raise InvalidCurrencyPairError(
                f"{from_currency}->{to_currency} cannot be triangulated "
                f"through {self.pivot}"
            )
        pinned = self._pinned(from_currency, to_currency)
        if pinned is not None:
            return pinned
        now = now or utcnow()
        derived = self._derive_from_legs(
            from_currency, to_currency, now, fresh_only=True
        )
        if derived is None:
            raise RateUnavailableError(from_currency, to_currency)
        return self._store_derived(from_currency, to_currency, derived, now)

    def rates_for(
        self, base_currency: str, now: datetime | None = None
    ) -> list[ExchangeRate]:
        """Fresh cached rates quoted from ``base_currency``."""
        base_currency = normalize_currency(base_currency)
        now = now or utcnow()
        return [
            row
            for row in self.store.list_rates_from(base_currency)
            if classify(row, now) is Freshness.FRESH
        ]

    def is_pinned(self, from_currency: str, to_currency: str) -> bool:
        """Whether the operator pinned this pair with a permanent manual rate."""
        from_currency = normalize_currency(from_currency)
        to_currency = normalize_currency(to_currency)
        return self._pinned(from_currency, to_currency) is not None

    def is_cache_valid(
        self,
        from_currency: str,
        to_currency: str,
        now: datetime | None = None,
    ) -> bool:
        """Whether a fresh direct row exists for the pair."""
        from_currency = normalize_currency(from_currency)
        to_currency = normalize_currency(to_currency)
        if from_currency == to_currency:
            return True
        row = self.store.get(from_currency, to_currency)
        return classify(row, now or utcnow()) is Freshness.FRESH

    # Internal --------------------------------------------------

    async def _fetch_and_store(self, now: datetime, timeout: float) -> ProviderRates:
        snapshot = await self._fetch_pivot(timeout)
        return self._store_snapshot(snapshot, now)

    async def _fetch_pivot(self, timeout: float) -> ProviderRates:
        """Fetch the pivot snapshot within ``timeout`` seconds."""

        async def fetch() -> ProviderRates:
            return await self.provider.fetch(self.pivot, timeout=timeout)

        try:
            if self.single_flight is not None:
                call = self.single_flight.do(self.pivot, fetch)
            else:
                call = fetch()
            return await asyncio.wait_for(call, timeout=timeout)
        except TimeoutError as e:
            raise NetworkError(
                f"Rate provider did not answer within {timeout:g}s"
            ) from e

    def _store_snapshot(self, snapshot: ProviderRates, now: datetime) -> ProviderRates:
        """Upsert pivot->code (API) and code->pivot (SYSTEM) for every code.

        Returns the snapshot with rates at storage precision, limited to the
        pairs that were actually stored. Pinned pairs keep their manual rate,
        which is also what the returned snapshot reports for them.
        """
        expires_at = now + self.cache_ttl
        stored: dict[str, Decimal] = {}
        for code, raw_rate in sorted(snapshot.rates.items()):
            if code == self.pivot:
                continue
            pinned = self._pinned(self.pivot, code)
            if pinned is not None:
                stored[code] = Decimal(pinned.rate)
                continue
            rate = quantize_rate(raw_rate)
            inverse = invert_rate(rate) if rate > 0 else Decimal(0)
            if rate <= 0 or inverse <= 0:
                logger.warning(
                    f"Skipping {self.pivot}->{code}: rate {raw_rate} "
                    f"is not representable at 6 decimals"
                )
                continue
            self.store.upsert_pair(
                RateEntry(
                    from_currency=self.pivot,
                    to_currency=code,
                    rate=rate,
                    rate_date=snapshot.as_of,
                    source=RateSource.API,
                    api_provider=self.provider.name,
                    fetched_at=now,
                    expires_at=expires_at,
                ),
                RateEntry(
                    from_currency=code,
                    to_currency=self.pivot,
                    rate=inverse,
                    rate_date=snapshot.as_of,
                    source=RateSource.SYSTEM,
                    fetched_at=now,
                    expires_at=expires_at,
                ),
            )
            stored[code] = rate
        logger.info(
            f"Stored {len(stored)} {self.pivot} rates from {self.provider.name} "
            f"(as of {snapshot.as_of.isoformat()})"
        )
        return ProviderRates(
            base_currency=self.pivot, rates=stored, as_of=snapshot.as_of
        )

    def _resolve_from_snapshot(
        self,
        from_currency: str,
        to_currency: str,
        snapshot: ProviderRates,
        now: datetime,
    ) -> ExchangeRate:
        for code in (from_currency, to_currency):
            if code != self.pivot and code not in snapshot.rates:
                raise ProviderError(f"Rate provider does not quote {code}")

        if self.pivot in (from_currency, to_currency):
            row = self.store.get(from_currency, to_currency)
            if row is None:
                raise ProviderError(
                    f"{from_currency}->{to_currency} missing after refresh"
                )
            return row

        derived = _Derived(
            rate=cross_rate(snapshot.rates[from_currency], snapshot.rates[to_currency]),
            rate_date=snapshot.as_of,
            expires_at=now + self.cache_ttl,
            fetched_at=now,
        )
        return self._store_derived(from_currency, to_currency, derived, now)

    def _derive_from_legs(
        self,
        from_currency: str,
        to_currency: str,
        now: datetime,
        fresh_only: bool,
    ) -> _Derived | None:
        """Triangulate from cached pivot->from and pivot->to rows."""
        if self.pivot in (from_currency, to_currency):
            return None
        from_leg = self.store.get(self.pivot, from_currency)
        to_leg = self.store.get(self.pivot, to_currency)
        if from_leg is None or to_leg is None:
            return None
        if fresh_only and not (
            classify(from_leg, now) is Freshness.FRESH
            and classify(to_leg, now) is Freshness.FRESH
        ):
            return None

        expiries = [leg.expires_at for leg in (from_leg, to_leg) if leg.expires_at]
        return _Derived(
            rate=cross_rate(from_leg.rate, to_leg.rate),
            rate_date=min(from_leg.rate_date, to_leg.rate_date),
            # a derived rate never outlives the legs it came from
            expires_at=min(expiries) if expiries else now + self.cache_ttl,
            fetched_at=min(from_leg.fetched_at, to_leg.fetched_at),
        )

    def _store_derived(
        self,
        from_currency: str,
        to_currency: str,
        derived: _Derived,
        now: datetime,
    ) -> ExchangeRate:
        pinned = self._pinned(from_currency, to_currency)
        if pinned is not None:
            return pinned
        inverse = invert_rate(derived.rate) if derived.rate > 0 else Decimal(0)
        if derived.rate <= 0 or inverse <= 0:
            raise RateUnavailableError(from_currency, to_currency)
        direct_row, _ = self.store.upsert_pair(
            RateEntry(
                from_currency=from_currency,
                to_currency=to_currency,
                rate=derived.rate,
                rate_date=derived.rate_date,
                source=RateSource.SYSTEM,
                fetched_at=now,
                expires_at=derived.expires_at,
            ),
            RateEntry(
                from_currency=to_currency,
                to_currency=from_currency,
                rate=inverse,
                rate_date=derived.rate_date,
                source=RateSource.SYSTEM,
                fetched_at=now,
                expires_at=derived.expires_at,
            ),
        )
        return direct_row

    def _stale_fallback(
        self, from_currency: str, to_currency: str, now: datetime
    ) -> RateLookup:
        """Serve whatever is cached for the pair, fresh or not."""
        row = self.store.get(from_currency, to_currency)
        if classify(row, now) is Freshness.FRESH:
            # written by a concurrent refresh while our fetch was failing
            return self._lookup(row, LookupStatus.FRESH)
        if row is not None:
            lookup = self._lookup(row, LookupStatus.STALE)
        else:
            derived = self._invert_cached(from_currency, to_currency)
            if derived is None:
                derived = self._derive_from_legs(
                    from_currency, to_currency, now, fresh_only=False
                )
            if derived is None:
                logger.error(
                    f"No exchange rate available for {from_currency}->{to_currency}"
                )
                raise RateUnavailableError(from_currency, to_currency)
            lookup = RateLookup(
                from_currency=from_currency,
                to_currency=to_currency,
                rate=derived.rate,
                status=LookupStatus.STALE,
                rate_date=derived.rate_date,
                source=RateSource.SYSTEM,
                fetched_at=derived.fetched_at,
                expires_at=derived.expires_at,
            )

        fetched = lookup.fetched_at.isoformat() if lookup.fetched_at else "unknown"
        logger.warning(
            f"Using stale exchange rate {from_currency}->{to_currency} = "
            f"{lookup.rate} (fetched {fetched})"
        )
        return lookup

    def _invert_cached(self, from_currency: str, to_currency: str) -> _Derived | None:
        """Reciprocal of the cached to->from row, whatever its freshness."""
        inverse = self.store.get(to_currency, from_currency)
        if inverse is None:
            return None
        rate = invert_rate(Decimal(inverse.rate))
        if rate <= 0:
            return None
        return _Derived(
            rate=rate,
            rate_date=inverse.rate_date,
            expires_at=inverse.expires_at,
            fetched_at=inverse.fetched_at,
        )

    def _pinned(self, from_currency: str, to_currency: str) -> ExchangeRate | None:
        """The permanent manual row for a pair, if there is one."""
        row = self.store.get(from_currency, to_currency)
        if row is None or row.source != RateSource.MANUAL:
            return None
        return row if row.expires_at is None else None

    def _store_inverted(
        self, from_currency: str, to_currency: str, now: datetime
    ) -> ExchangeRate | None:
        """Store the missing direction of a cached pair as its reciprocal.

        Only the missing row is written; the cached row keeps its source.
        Returns None when the reciprocal rounds to zero.
        """
        derived = self._invert_cached(from_currency, to_currency)
        if derived is None:
            return None
        return self.store.upsert(
            RateEntry(
                from_currency=from_currency,
                to_currency=to_currency,
                rate=derived.rate,
                rate_date=derived.rate_date,
                source=RateSource.SYSTEM,
                fetched_at=derived.fetched_at,
                expires_at=derived.expires_at or now + self.cache_ttl,
            )
        )

    def _related_pairs(
        self, from_currency: str, to_currency: str
    ) -> list[tuple[str, str]]:
        """The requested pair and its pivot legs, in both directions."""
        pairs = {(from_currency, to_currency), (to_currency, from_currency)}
        for code in (from_currency, to_currency):
            if code != self.pivot:
                pairs.add((self.pivot, code))
                pairs.add((code, self.pivot))
        return sorted(pairs)

    @staticmethod
    def _lookup(row: ExchangeRate, status: LookupStatus) -> RateLookup:
        return RateLookup(
            from_currency=row.from_currency,
            to_currency=row.to_currency,
            rate=Decimal(row.rate),
            status=status,
            rate_date=row.rate_date,
            source=row.source,
            fetched_at=row.fetched_at,
            expires_at=row.expires_at,
        )
