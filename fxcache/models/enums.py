# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Enumeration types for database models."""

from enum import Enum


class RateSource(str, Enum):
    """Provenance of a cached exchange rate.

    SYSTEM marks rates derived by inversion or triangulation rather than
    fetched directly.
    """

    STUB = "STUB"
    MANUAL = "MANUAL"
    API = "API"
    SYSTEM = "SYSTEM"
