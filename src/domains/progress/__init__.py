# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Progress domain package.

This package turns player callbacks into durable learner progress:
- Learning session lifecycle and the interaction log
- Per-lesson Progress state with forward-only time accrual
- Course completion stamping
- Learner summaries and consecutive-day streaks
"""

from src.domains.progress.exceptions import (
    CourseNotFoundError,
    LearnerNotFoundError,
    LessonNotFoundError,
    NotFoundError,
    ProgressNotFoundError,
    ProgressServiceError,
    SessionNotFoundError,
    StoreFailure,
)
from src.domains.progress.repository import (
    CourseInfo,
    LessonInfo,
    ProgressRepository,
    SQLAlchemyProgressRepository,
)
from src.domains.progress.service import (
    ProgressService,
    ProgressSummary,
    SessionStart,
    UserProgressEntry,
)
from src.domains.progress.streak import (
    StreakData,
    calculate_current_streak,
    calculate_streak_history,
)

__all__ = [
    # Service
    "ProgressService",
    "SessionStart",
    "ProgressSummary",
    "UserProgressEntry",
    # Repository
    "ProgressRepository",
    "SQLAlchemyProgressRepository",
    "CourseInfo",
    "LessonInfo",
    # Streaks
    "StreakData",
    "calculate_current_streak",
    "calculate_streak_history",
    # Exceptions
    "ProgressServiceError",
    "NotFoundError",
    "SessionNotFoundError",
    "LessonNotFoundError",
    "CourseNotFoundError",
    "ProgressNotFoundError",
    "LearnerNotFoundError",
    "StoreFailure",
]
