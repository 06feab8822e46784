# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Scheduler-triggered maintenance endpoints."""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from fxcache.api.deps import get_db, get_refresh_job, verify_cron_token
from fxcache.schemas.exchange_rate import RefreshSummaryResponse
from fxcache.services.refresh_job import RateRefreshJob

router = APIRouter()
logger = logging.getLogger(__name__)


@router.api_route(
    "/cron/refresh-rates",
    methods=["GET", "POST"],
    response_model=RefreshSummaryResponse,
    dependencies=[Depends(verify_cron_token)],
)
async def refresh_rates(
    cleanup: bool = Query(False, description="Force the retention cleanup pass"),
    db: Session = Depends(get_db),
    job: RateRefreshJob = Depends(get_refresh_job),
) -> RefreshSummaryResponse:
    """Run the batch refresh job and report what it did."""
    logger.info("Starting scheduled exchange rate refresh")
    summary = await job.run(db, force_cleanup=cleanup)

    return RefreshSummaryResponse(
        success=summary.failures == 0 and not summary.errors,
        started_at=summary.started_at,
        currencies=summary.currencies,
        pairs_refreshed=summary.pairs_refreshed,
        pairs_skipped=summary.pairs_skipped,
        failures=summary.failures,
        provider_rates=summary.provider_rates,
        stale_marked=summary.stale_marked,
        cleaned_up=summary.cleaned_up,
        cleanup_ran=summary.cleanup_ran,
        fetch_skipped=summary.fetch_skipped,
        errors=summary.errors,
        duration_ms=summary.duration_ms,
    )
