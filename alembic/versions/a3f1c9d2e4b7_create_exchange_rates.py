# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""create_exchange_rates

Revision ID: a3f1c9d2e4b7
Revises:
Create Date: 2026-01-12 09:14:27.518306

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a3f1c9d2e4b7"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "payment_methods",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_payment_methods_currency"),
        "payment_methods",
        ["currency"],
        unique=False,
    )

    op.create_table(
        "exchange_rates",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("from_currency", sa.String(length=3), nullable=False),
        sa.Column("to_currency", sa.String(length=3), nullable=False),
        sa.Column("rate", sa.Numeric(precision=18, scale=6), nullable=False),
        sa.Column("rate_date", sa.Date(), nullable=False),
        sa.Column(
            "source",
            sa.Enum(
                "STUB",
                "MANUAL",
                "API",
                "SYSTEM",
                name="ratesource",
                native_enum=False,
                length=10,
            ),
            nullable=False,
        ),
        sa.Column("api_provider", sa.String(length=100), nullable=True),
        sa.Column("fetched_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("is_stale", sa.Boolean(), nullable=False),
        sa.Column("fetch_error_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "from_currency", "to_currency", name="uq_exchange_rate_pair"
        ),
        sa.CheckConstraint("rate > 0", name="chk_exchange_rate_positive"),
        sa.CheckConstraint(
            "from_currency <> to_currency",
            name="chk_exchange_rate_different_currencies",
        ),
        sa.CheckConstraint(
            "fetch_error_count >= 0",
            name="chk_exchange_rate_error_count_nonnegative",
        ),
    )
    op.create_index(
        op.f("ix_exchange_rates_from_currency"),
        "exchange_rates",
        ["from_currency"],
        unique=False,
    )
    op.create_index(
        op.f("ix_exchange_rates_to_currency"),
        "exchange_rates",
        ["to_currency"],
        unique=False,
    )
    op.create_index(
        op.f("ix_exchange_rates_fetched_at"),
        "exchange_rates",
        ["fetched_at"],
        unique=False,
    )
    op.create_index(
        op.f("ix_exchange_rates_expires_at"),
        "exchange_rates",
        ["expires_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_exchange_rates_expires_at"), table_name="exchange_rates")
    op.drop_index(op.f("ix_exchange_rates_fetched_at"), table_name="exchange_rates")
    op.drop_index(op.f("ix_exchange_rates_to_currency"), table_name="exchange_rates")
    op.drop_index(
        op.f("ix_exchange_rates_from_currency"), table_name="exchange_rates"
    )
    op.drop_table("exchange_rates")

    op.drop_index(op.f("ix_payment_methods_currency"), table_name="payment_methods")
    op.drop_table("payment_methods")
