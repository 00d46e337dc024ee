# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Consecutive-day activity streaks.

Both functions take the set of UTC calendar dates on which a learner had at
least one session. Two active dates belong to the same streak when they are
at most ``gap_tolerance`` days apart (1 means strictly consecutive days).

Example:
    >>> today = date(2025, 3, 10)
    >>> calculate_current_streak({today, today - timedelta(days=1)}, today)
    2
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable


@dataclass
class StreakData:
    """Current and historical streak figures of a learner."""

    current_streak: int = 0
    longest_streak: int = 0
    streak_breaks: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "streak_breaks": self.streak_breaks,
        }


def _distinct_dates(active_dates: Iterable[date], today: date) -> list[date]:
    # Future-dated activity (clock skew) cannot extend a streak
    return sorted({d for d in active_dates if d <= today})


def calculate_current_streak(
    active_dates: Iterable[date],
    today: date,
    gap_tolerance: int = 1,
) -> int:
    """Count the streak that is still alive today.

    The streak only counts when the most recent active date is within
    gap_tolerance days of today (today or yesterday for the default). From
    that date the walk goes backward and stops at the first gap.

    Args:
        active_dates: Dates with at least one session.
        today: Reference calendar date.
        gap_tolerance: Largest gap in days that keeps a streak alive.

    Returns:
        Streak length in days, 0 when the streak is broken.
    """
    dates = _distinct_dates(active_dates, today)
    if not dates:
        return 0

    most_recent = dates[-1]
    if (today - most_recent).days > gap_tolerance:
        return 0

    streak = 1
    expected = most_recent
    for active in reversed(dates[:-1]):
        if (expected - active).days > gap_tolerance:
            break
        streak += 1
        expected = active

    return streak


def calculate_streak_history(
    active_dates: Iterable[date],
    today: date,
    gap_tolerance: int = 1,
) -> StreakData:
    """Compute current streak, longest streak and number of breaks.

    Args:
        active_dates: Dates with at least one session.
        today: Reference calendar date.
        gap_tolerance: Largest gap in days that keeps a streak alive.

    Returns:
        StreakData for the given activity.
    """
    dates = _distinct_dates(active_dates, today)
    if not dates:
        return StreakData()

    longest = 1
    run = 1
    breaks = 0
    for previous, current in zip(dates, dates[1:]):
        if (current - previous).days > gap_tolerance:
            breaks += 1
            run = 1
        else:
            run += 1
        longest = max(longest, run)

    return StreakData(
        current_streak=calculate_current_streak(dates, today, gap_tolerance),
        longest_streak=longest,
        streak_breaks=breaks,
    )
