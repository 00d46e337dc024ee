# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers for the progress engine.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog
- datetime: Timezone-aware datetime operations
- stats: Zero-safe arithmetic for rollups
"""

from src.utils.datetime import (
    Clock,
    days_before,
    elapsed_seconds,
    ensure_utc,
    format_iso,
    utc_date,
    utc_now,
)
from src.utils.logging import bind_context, clear_context, get_logger, setup_logging
from src.utils.stats import mean, percentage, safe_divide

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    # Datetime
    "Clock",
    "utc_now",
    "ensure_utc",
    "utc_date",
    "days_before",
    "elapsed_seconds",
    "format_iso",
    # Stats
    "safe_divide",
    "percentage",
    "mean",
]
