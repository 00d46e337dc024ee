# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for consecutive-day streak calculation."""

from datetime import date, timedelta

import pytest

from src.domains.progress.streak import (
    StreakData,
    calculate_current_streak,
    calculate_streak_history,
)

TODAY = date(2025, 3, 10)


def days_ago(*offsets: int) -> set[date]:
    return {TODAY - timedelta(days=n) for n in offsets}


class TestCurrentStreak:
    """Tests for calculate_current_streak."""

    def test_no_activity(self) -> None:
        assert calculate_current_streak(set(), TODAY) == 0

    def test_three_consecutive_days_ending_today(self) -> None:
        assert calculate_current_streak(days_ago(0, 1, 2), TODAY) == 3

    def test_streak_alive_when_last_activity_was_yesterday(self) -> None:
        assert calculate_current_streak(days_ago(1, 2), TODAY) == 2

    def test_broken_when_last_activity_two_days_ago(self) -> None:
        assert calculate_current_streak(days_ago(2), TODAY) == 0

    def test_stops_at_first_gap(self) -> None:
        assert calculate_current_streak(days_ago(0, 1, 3, 4, 5), TODAY) == 2

    def test_future_dates_are_ignored(self) -> None:
        dates = days_ago(0) | {TODAY + timedelta(days=1)}
        assert calculate_current_streak(dates, TODAY) == 1

    def test_duplicates_count_once(self) -> None:
        assert calculate_current_streak([TODAY, TODAY, TODAY], TODAY) == 1

    def test_wider_gap_tolerance(self) -> None:
        assert calculate_current_streak(days_ago(0, 2, 4), TODAY, gap_tolerance=2) == 3


class TestStreakHistory:
    """Tests for calculate_streak_history."""

    def test_empty_history(self) -> None:
        assert calculate_streak_history([], TODAY) == StreakData()

    def test_longest_streak_and_breaks(self) -> None:
        # runs: [20,19,18,17] [10,9] [1,0]
        dates = days_ago(20, 19, 18, 17, 10, 9, 1, 0)

        history = calculate_streak_history(dates, TODAY)

        assert history.current_streak == 2
        assert history.longest_streak == 4
        assert history.streak_breaks == 2

    def test_old_history_has_no_current_streak(self) -> None:
        history = calculate_streak_history(days_ago(9, 8, 7), TODAY)

        assert history.current_streak == 0
        assert history.longest_streak == 3
        assert history.streak_breaks == 0

    @pytest.mark.parametrize(
        "offsets,longest",
        [
            ((0,), 1),
            ((0, 1), 2),
            ((0, 2), 1),
        ],
    )
    def test_longest_streak_small_inputs(self, offsets: tuple[int, ...], longest: int) -> None:
        assert calculate_streak_history(days_ago(*offsets), TODAY).longest_streak == longest

    def test_to_dict(self) -> None:
        data = StreakData(current_streak=2, longest_streak=5, streak_breaks=1)

        assert data.to_dict() == {
            "current_streak": 2,
            "longest_streak": 5,
            "streak_breaks": 1,
        }
