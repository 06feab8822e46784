# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Main API router for v1 endpoints."""

from fastapi import APIRouter

from fxcache.api.v1 import cron, exchange_rates

api_router = APIRouter()

# Exchange rate routes
api_router.include_router(exchange_rates.router, tags=["exchange-rates"])

# Scheduler routes
api_router.include_router(cron.router, tags=["cron"])
