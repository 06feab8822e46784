# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Application settings loaded from the environment."""

import re
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

CURRENCY_CODE_PATTERN = re.compile(r"^[A-Z]{3}$")


class Settings(BaseSettings):
    """Runtime configuration.

    Every field maps to an upper-case environment variable of the same name
    (e.g. ``EXCHANGE_RATE_CACHE_TTL_HOURS``) and may also come from ``.env``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    database_url: str = "sqlite:///./fxcache.db"
    log_level: str = "INFO"

    # Rate provider
    exchange_rate_api_url: str = "https://open.er-api.com/v6/latest"
    exchange_rate_api_provider: str = "exchangerate-api.com"
    exchange_rate_pivot_currency: str = "USD"
    exchange_rate_request_timeout_seconds: float = Field(default=3.0, gt=0)
    exchange_rate_batch_timeout_seconds: float = Field(default=15.0, gt=0)

    # Cache lifecycle
    exchange_rate_cache_ttl_hours: int = Field(default=24, gt=0)
    exchange_rate_retention_days: int = Field(default=90, gt=0)
    exchange_rate_cleanup_interval_hours: int = Field(default=24, gt=0)

    # Batch refresh
    exchange_rate_cron_secret: str | None = None
    exchange_rate_backoff_base_minutes: int = Field(default=15, gt=0)
    exchange_rate_backoff_max_hours: int = Field(default=24, gt=0)
    exchange_rate_default_currencies: list[str] = ["USD", "EUR", "GBP", "UAH"]

    @field_validator("exchange_rate_pivot_currency")
    @classmethod
    def validate_pivot(cls, v: str) -> str:
        """Normalise the pivot currency to an upper-case ISO code."""
        code = v.strip().upper()
        if not CURRENCY_CODE_PATTERN.match(code):
            raise ValueError(f"Invalid pivot currency: {v!r}")
        return code

    @field_validator("exchange_rate_default_currencies")
    @classmethod
    def validate_default_currencies(cls, v: list[str]) -> list[str]:
        """Normalise the fallback currency list."""
        codes = []
        for raw in v:
            code = raw.strip().upper()
            if not CURRENCY_CODE_PATTERN.match(code):
                raise ValueError(f"Invalid currency code: {raw!r}")
            if code not in codes:
                codes.append(code)
        return codes

    @field_validator("exchange_rate_api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()


settings = get_settings()
