# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Payment method model.

Only the columns the rate refresh needs: the currency a method is held in and
whether it is still in use.
"""

import uuid as uuid_lib

from sqlalchemy import Boolean, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from fxcache.models.base import Base, TimestampMixin


class PaymentMethod(Base, TimestampMixin):
    """A card, account or cash wallet held in a single currency."""

    __tablename__ = "payment_methods"

    id: Mapped[uuid_lib.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid_lib.uuid4,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
