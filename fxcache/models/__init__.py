# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Database models package."""

from fxcache.models.base import Base, TimestampMixin
from fxcache.models.enums import RateSource
from fxcache.models.exchange_rate import ExchangeRate
from fxcache.models.payment_method import PaymentMethod

__all__ = [
    "Base",
    "ExchangeRate",
    "PaymentMethod",
    "RateSource",
    "TimestampMixin",
]
