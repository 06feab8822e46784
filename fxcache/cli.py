# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Command line entry point for running the batch refresh from system cron."""

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from dataclasses import asdict

from fxcache.config import get_settings
from fxcache.database import SessionLocal
from fxcache.logging_config import configure_logging
from fxcache.services.rate_provider import ExchangeRateApiProvider
from fxcache.services.refresh_job import RateRefreshJob, RefreshSummary


async def run_refresh(cleanup: bool) -> RefreshSummary:
    """Run one refresh against the configured database and provider."""
    settings = get_settings()
    provider = ExchangeRateApiProvider(
        settings.exchange_rate_api_url,
        provider_name=settings.exchange_rate_api_provider,
        timeout=settings.exchange_rate_batch_timeout_seconds,
    )
    job = RateRefreshJob(provider, settings)
    db = SessionLocal()
    try:
        return await job.run(db, force_cleanup=cleanup, ignore_backoff=True)
    finally:
        db.close()
        await provider.close()


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Refresh cached exchange rates for all active currencies."
    )
    parser.add_argument(
        "--cleanup",
        action="store_true",
        help="also delete rates older than the retention horizon",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="override LOG_LEVEL for this run",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the job and print its summary as JSON.

    Exits non-zero when any pair failed so cron can alert on it.
    """
    args = parse_args(argv)
    configure_logging(args.log_level or get_settings().log_level)
    summary = asyncio.run(run_refresh(args.cleanup))
    print(json.dumps(asdict(summary), default=str, indent=2))
    return 1 if summary.failures or summary.errors else 0


if __name__ == "__main__":
    sys.exit(main())
