# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Exchange rate cache model."""

import uuid as uuid_lib
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from fxcache.models.base import Base, TimestampMixin
from fxcache.models.enums import RateSource


class ExchangeRate(Base, TimestampMixin):
    """Cached conversion rate for one currency pair.

    1 unit of ``from_currency`` buys ``rate`` units of ``to_currency``.
    """

    __tablename__ = "exchange_rates"
    __table_args__ = (
        UniqueConstraint("from_currency", "to_currency", name="uq_exchange_rate_pair"),
        CheckConstraint("rate > 0", name="chk_exchange_rate_positive"),
        CheckConstraint(
            "from_currency <> to_currency",
            name="chk_exchange_rate_different_currencies",
        ),
        CheckConstraint(
            "fetch_error_count >= 0",
            name="chk_exchange_rate_error_count_nonnegative",
        ),
    )

    id: Mapped[uuid_lib.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid_lib.uuid4,
    )
    from_currency: Mapped[str] = mapped_column(String(3), nullable=False, index=True)
    to_currency: Mapped[str] = mapped_column(String(3), nullable=False, index=True)
    rate: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    rate_date: Mapped[date] = mapped_column(Date, nullable=False)
    source: Mapped[RateSource] = mapped_column(
        Enum(RateSource, native_enum=False, length=10),
        nullable=False,
    )
    api_provider: Mapped[str | None] = mapped_column(String(100), nullable=True)
    fetched_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    # NULL only for manual rates deliberately exempted from expiry
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True, index=True
    )
    is_stale: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    fetch_error_count: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<ExchangeRate {self.from_currency}->{self.to_currency} "
            f"{self.rate} ({self.source.value})>"
        )
