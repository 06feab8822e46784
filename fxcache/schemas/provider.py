# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Expected shape of the rate provider's "latest" response."""

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ProviderLatestResponse(BaseModel):
    """Body of ``GET /latest/{BASE}``.

    Success::

        {"result": "success", "base_code": "USD",
         "time_last_update_unix": 1735776151, "rates": {"EUR": 0.96, ...}}

    Error::

        {"result": "error", "error-type": "unsupported-code"}
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    result: Literal["success", "error"]
    base_code: str | None = None
    rates: dict[str, Decimal] | None = None
    time_last_update_unix: int | None = None
    error_type: str | None = Field(default=None, alias="error-type")
