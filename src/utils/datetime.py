# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for the progress engine.

All timestamps handled by the engine are timezone-aware UTC. Calendar-day
logic (streaks, activity windows) works on UTC dates.

Usage:
------
    from src.utils.datetime import utc_now

    # For current time
    now = utc_now()

    # For SQLAlchemy model defaults
    created_at = Column(DateTime(timezone=True), default=utc_now)
"""

from datetime import date, datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.

    Example:
        >>> now = utc_now()
        >>> now.tzinfo
        datetime.timezone.utc
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.

    Note:
        - If dt is None, returns None
        - If dt is naive, assumes UTC and adds tzinfo
        - If dt is aware, converts to UTC
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        # Naive datetime - assume UTC
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def utc_date(dt: datetime) -> date:
    """Get the UTC calendar date of a datetime."""
    return ensure_utc(dt).date()


def days_before(now: datetime, days: int) -> datetime:
    """Get the datetime N days before the given instant.

    Args:
        now: Reference instant.
        days: Number of days to go back.

    Returns:
        Timezone-aware UTC datetime.
    """
    return ensure_utc(now) - timedelta(days=days)


def elapsed_seconds(start: datetime, end: datetime) -> int:
    """Whole seconds elapsed between two instants, rounded.

    Args:
        start: Start instant.
        end: End instant.

    Returns:
        Rounded number of seconds (negative if end precedes start).
    """
    return round((ensure_utc(end) - ensure_utc(start)).total_seconds())


def format_iso(dt: datetime | None) -> str | None:
    """Format a datetime as ISO 8601 string.

    Args:
        dt: Datetime to format.

    Returns:
        ISO 8601 formatted string or None.
    """
    if dt is None:
        return None

    return ensure_utc(dt).isoformat()
