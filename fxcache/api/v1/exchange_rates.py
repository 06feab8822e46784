# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Exchange rate API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from fxcache.api.deps import get_exchange_rate_service, verify_cron_token
from fxcache.schemas.exchange_rate import (
    CachedRateResponse,
    ConversionRequest,
    ConversionResponse,
    ExchangeRateResponse,
    ManualRateCreate,
)
from fxcache.services.errors import InvalidCurrencyPairError, RateUnavailableError
from fxcache.services.exchange_rate_service import ExchangeRateService

router = APIRouter()


@router.get("/exchange-rates/rate", response_model=ExchangeRateResponse)
async def get_exchange_rate(
    from_currency: str = Query(..., min_length=3, max_length=3, alias="from"),
    to_currency: str = Query(..., min_length=3, max_length=3, alias="to"),
    service: ExchangeRateService = Depends(get_exchange_rate_service),
) -> ExchangeRateResponse:
    """Get the current exchange rate between two currencies."""
    try:
        lookup = await service.resolve(from_currency, to_currency)
    except InvalidCurrencyPairError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    except RateUnavailableError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{e}; enter a manual rate",
        ) from e

    return ExchangeRateResponse(
        from_currency=lookup.from_currency,
        to_currency=lookup.to_currency,
        rate=str(lookup.rate),
        rate_date=lookup.rate_date,
        status=lookup.status.value,
        source=lookup.source,
        fetched_at=lookup.fetched_at,
        expires_at=lookup.expires_at,
    )


@router.post("/exchange-rates/convert", response_model=ConversionResponse)
async def convert_amount(
    data: ConversionRequest,
    service: ExchangeRateService = Depends(get_exchange_rate_service),
) -> ConversionResponse:
    """Convert an amount, returning the rate that was applied."""
    try:
        result = await service.convert(
            data.amount, data.from_currency, data.to_currency
        )
    except InvalidCurrencyPairError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    except RateUnavailableError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{e}; enter a manual rate",
        ) from e

    return ConversionResponse(
        original_amount=result.original_amount,
        original_currency=result.original_currency,
        converted_amount=result.converted_amount,
        target_currency=result.target_currency,
        exchange_rate=result.exchange_rate,
        rate_date=result.rate_date,
        status=result.status.value,
    )


@router.put(
    "/exchange-rates/manual",
    response_model=CachedRateResponse,
    dependencies=[Depends(verify_cron_token)],
)
def set_manual_rate(
    data: ManualRateCreate,
    service: ExchangeRateService = Depends(get_exchange_rate_service),
) -> CachedRateResponse:
    """Store an operator override for a pair (and its inverse)."""
    try:
        row = service.set_manual_rate(
            data.from_currency,
            data.to_currency,
            data.rate,
            permanent=data.permanent,
        )
    except ValueError as e:
        # InvalidCurrencyPairError is a ValueError too
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    return CachedRateResponse.model_validate(row)


@router.get("/exchange-rates/{base_currency}", response_model=list[CachedRateResponse])
def list_rates(
    base_currency: str = Path(..., min_length=3, max_length=3),
    service: ExchangeRateService = Depends(get_exchange_rate_service),
) -> list[CachedRateResponse]:
    """List fresh cached rates quoted from a base currency."""
    try:
        rows = service.rates_for(base_currency)
    except InvalidCurrencyPairError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    return [CachedRateResponse.model_validate(row) for row in rows]
