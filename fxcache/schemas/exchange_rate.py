# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Exchange rate schemas."""

import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from fxcache.models.enums import RateSource


class ExchangeRateResponse(BaseModel):
    """A resolved exchange rate."""

    from_currency: str
    to_currency: str
    rate: str
    rate_date: datetime.date
    status: str
    source: RateSource | None = None
    fetched_at: datetime.datetime | None = None
    expires_at: datetime.datetime | None = None


class CachedRateResponse(BaseModel):
    """A row of the rate cache."""

    from_currency: str
    to_currency: str
    rate: Decimal
    rate_date: datetime.date
    source: RateSource
    api_provider: str | None
    fetched_at: datetime.datetime
    expires_at: datetime.datetime | None
    is_stale: bool
    fetch_error_count: int

    model_config = {"from_attributes": True}


class ConversionRequest(BaseModel):
    """Schema for converting an amount."""

    amount: Decimal = Field(..., decimal_places=2)
    from_currency: str = Field(..., min_length=3, max_length=3)
    to_currency: str = Field(..., min_length=3, max_length=3)

    @field_validator("from_currency", "to_currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class ConversionResponse(BaseModel):
    """Schema for a conversion result."""

    original_amount: Decimal
    original_currency: str
    converted_amount: Decimal
    target_currency: str
    exchange_rate: Decimal
    rate_date: datetime.date
    status: str


class ManualRateCreate(BaseModel):
    """Schema for an operator-supplied rate."""

    from_currency: str = Field(..., min_length=3, max_length=3)
    to_currency: str = Field(..., min_length=3, max_length=3)
    rate: Decimal = Field(..., gt=0)
    permanent: bool = False

    @field_validator("from_currency", "to_currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class RefreshSummaryResponse(BaseModel):
    """Result of a batch refresh run."""

    success: bool
    started_at: datetime.datetime
    currencies: list[str]
    pairs_refreshed: int
    pairs_skipped: int
    failures: int
    provider_rates: int
    stale_marked: int
    cleaned_up: int
    cleanup_ran: bool
    fetch_skipped: bool
    errors: list[str]
    duration_ms: int
