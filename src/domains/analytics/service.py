# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Analytics service module.

This module provides the read-only analytics pulled by dashboards:

- get_course_metrics: completion, active learners, dropoff, engagement and
  performance tiers of a course
- get_course_learner_analytics: per-learner rollup of a course
- get_lesson_metrics: watch time, dropoff positions and interaction
  hotspots of a lesson
- get_student_metrics: one learner's summary, performance, streaks and
  interaction patterns

Empty datasets never raise; every figure falls back to zero.

Usage:
    from src.domains.analytics import AnalyticsService

    service = AnalyticsService(repository)

    course = await service.get_course_metrics(course_id)
    lesson = await service.get_lesson_metrics(lesson_id)
    student = await service.get_student_metrics(learner_id, course_id)
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.core.config.settings import ProgressSettings, get_settings
from src.domains.analytics.aggregator import (
    AnalyticsAggregator,
    DropoffPoint,
    EngagementMetrics,
    InteractionHotspot,
    InteractionPatterns,
    LearnerCourseAnalytics,
    PerformanceDistribution,
    PerformanceMetrics,
)
from src.domains.progress.exceptions import (
    CourseNotFoundError,
    LearnerNotFoundError,
    LessonNotFoundError,
)
from src.domains.progress.repository import ProgressRepository
from src.domains.progress.service import ProgressService, ProgressSummary
from src.domains.progress.streak import StreakData, calculate_streak_history
from src.utils.datetime import Clock, days_before, ensure_utc, format_iso, utc_date, utc_now
from src.utils.stats import mean, percentage

logger = logging.getLogger(__name__)


@dataclass
class CourseMetrics:
    """Cross-learner metrics of a course."""

    course_id: str
    course_title: str
    total_students: int = 0
    active_students: int = 0
    completion_rate: float = 0.0
    average_completion_time: float = 0.0
    dropoff_points: list[DropoffPoint] = field(default_factory=list)
    engagement_metrics: EngagementMetrics = field(default_factory=EngagementMetrics)
    performance_distribution: PerformanceDistribution = field(
        default_factory=PerformanceDistribution
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "course_id": self.course_id,
            "course_title": self.course_title,
            "total_students": self.total_students,
            "active_students": self.active_students,
            "completion_rate": round(self.completion_rate, 2),
            "average_completion_time": round(self.average_completion_time, 2),
            "dropoff_points": [p.to_dict() for p in self.dropoff_points],
            "engagement_metrics": self.engagement_metrics.to_dict(),
            "performance_distribution": self.performance_distribution.to_dict(),
        }


@dataclass
class LessonMetrics:
    """Cross-learner metrics of a lesson."""

    lesson_id: str
    lesson_title: str
    average_watch_time: float = 0.0
    completion_rate: float = 0.0
    average_attempts: float = 0.0
    common_dropoff_points: list[int] = field(default_factory=list)
    interaction_hotspots: list[InteractionHotspot] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "lesson_id": self.lesson_id,
            "lesson_title": self.lesson_title,
            "average_watch_time": round(self.average_watch_time, 2),
            "completion_rate": round(self.completion_rate, 2),
            "average_attempts": round(self.average_attempts, 2),
            "common_dropoff_points": self.common_dropoff_points,
            "interaction_hotspots": [h.to_dict() for h in self.interaction_hotspots],
        }


@dataclass
class StudentMetrics:
    """Complete analytics of one learner."""

    learner_id: str
    progress_summary: ProgressSummary
    performance_metrics: PerformanceMetrics
    streak_data: StreakData
    interaction_patterns: InteractionPatterns
    enrollment_date: datetime | None = None
    last_active: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "learner_id": self.learner_id,
            "enrollment_date": format_iso(self.enrollment_date),
            "last_active": format_iso(self.last_active),
            "progress_summary": self.progress_summary.to_dict(),
            "performance_metrics": self.performance_metrics.to_dict(),
            "streak_data": self.streak_data.to_dict(),
            "interaction_patterns": self.interaction_patterns.to_dict(),
        }


class AnalyticsService:
    """Service for course, lesson and learner analytics.

    Reads are not transactional across the scan; figures may be slightly
    stale under concurrent writes.

    Attributes:
        repository: Persistence handle.
        settings: Engine thresholds.
        clock: Source of the current UTC time.
        aggregator: Pure rollup calculator.
    """

    def __init__(
        self,
        repository: ProgressRepository,
        settings: ProgressSettings | None = None,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize analytics service.

        Args:
            repository: Persistence handle.
            settings: Engine thresholds, defaults to application settings.
            clock: Source of the current UTC time.
        """
        self.repository = repository
        self.settings = settings or get_settings().progress
        self.clock = clock
        self.aggregator = AnalyticsAggregator(self.settings)
        self._progress = ProgressService(repository, self.settings, clock)

    async def get_course_metrics(self, course_id: str) -> CourseMetrics:
        """Get cross-learner metrics of a course.

        Args:
            course_id: Course identifier.

        Returns:
            CourseMetrics for the course.

        Raises:
            CourseNotFoundError: If the course does not exist.

        Example:
            >>> metrics = await service.get_course_metrics(course_id)
            >>> print(f"Completion: {metrics.completion_rate}%")
        """
        course = await self.repository.get_course(course_id)
        if course is None:
            raise CourseNotFoundError(f"Course {course_id} not found")

        now = self.clock()
        enrolled = {e.learner_id for e in await self.repository.list_course_enrollments(course_id)}
        progress_rows = await self.repository.list_course_progress(course_id)
        sessions = await self.repository.list_course_sessions(course_id)
        lessons = await self.repository.list_course_lessons(course_id)
        interaction_count = await self.repository.count_course_interactions(course_id)

        window_start = days_before(now, self.settings.active_window_days)
        active = {
            p.learner_id
            for p in progress_rows
            if p.learner_id in enrolled
            and p.last_accessed_at is not None
            and ensure_utc(p.last_accessed_at) >= window_start
        }

        rollups = self.aggregator.rollup_learners(progress_rows, sessions)
        completed_learners = sum(
            1 for r in rollups if r.learner_id in enrolled and r.completion_rate >= 100
        )

        metrics = CourseMetrics(
            course_id=course.id,
            course_title=course.title,
            total_students=len(enrolled),
            active_students=len(active),
            completion_rate=percentage(completed_learners, len(enrolled)),
            average_completion_time=mean(r.total_time_spent for r in rollups) / 3600,
            dropoff_points=self.aggregator.calculate_dropoff_points(
                lessons,
                Counter(p.lesson_id for p in progress_rows),
            ),
            engagement_metrics=self.aggregator.calculate_engagement(sessions, interaction_count),
            performance_distribution=self.aggregator.calculate_performance_distribution(
                [r.completion_rate for r in rollups]
            ),
        )

        logger.debug(
            "Computed course metrics: course=%s, students=%s, active=%s",
            course_id,
            metrics.total_students,
            metrics.active_students,
        )
        return metrics

    async def get_course_learner_analytics(self, course_id: str) -> list[LearnerCourseAnalytics]:
        """Get the per-learner rollup of a course.

        Args:
            course_id: Course identifier.

        Returns:
            One entry per learner with progress in the course.

        Raises:
            CourseNotFoundError: If the course does not exist.
        """
        if await self.repository.get_course(course_id) is None:
            raise CourseNotFoundError(f"Course {course_id} not found")

        progress_rows = await self.repository.list_course_progress(course_id)
        sessions = await self.repository.list_course_sessions(course_id)
        return self.aggregator.rollup_learners(progress_rows, sessions)

    async def get_lesson_metrics(self, lesson_id: str) -> LessonMetrics:
        """Get cross-learner metrics of a lesson.

        Args:
            lesson_id: Lesson identifier.

        Returns:
            LessonMetrics for the lesson.

        Raises:
            LessonNotFoundError: If the lesson does not exist.
        """
        lesson = await self.repository.get_lesson(lesson_id)
        if lesson is None:
            raise LessonNotFoundError(f"Lesson {lesson_id} not found")

        progress_rows = await self.repository.list_lesson_progress(lesson_id)
        interactions = await self.repository.list_lesson_interactions(lesson_id)

        return LessonMetrics(
            lesson_id=lesson.id,
            lesson_title=lesson.title,
            average_watch_time=mean(p.time_spent for p in progress_rows),
            completion_rate=percentage(
                sum(1 for p in progress_rows if p.completed),
                len(progress_rows),
            ),
            average_attempts=mean(p.attempts for p in progress_rows),
            common_dropoff_points=self.aggregator.calculate_lesson_dropoff_points(progress_rows),
            interaction_hotspots=self.aggregator.calculate_interaction_hotspots(interactions),
        )

    async def get_student_metrics(
        self,
        learner_id: str,
        course_id: str | None = None,
    ) -> StudentMetrics:
        """Get complete analytics of one learner.

        The current streak is learner-wide; longest streak and breaks are
        computed over the (optionally course-scoped) session history.

        Args:
            learner_id: Learner identifier.
            course_id: Optional course scope.

        Returns:
            StudentMetrics for the learner.

        Raises:
            CourseNotFoundError: If course_id is given but unknown.
            LearnerNotFoundError: If the learner has no enrollment and no progress.
        """
        summary = await self._progress.get_progress_summary(learner_id, course_id)
        enrollments = await self.repository.list_learner_enrollments(learner_id, course_id)
        if not enrollments and summary.total_lessons == 0:
            raise LearnerNotFoundError(f"Learner {learner_id} not found")

        now = self.clock()
        sessions = await self.repository.list_learner_sessions(learner_id, course_id)
        interactions = await self.repository.list_learner_interactions(learner_id, course_id)

        history = calculate_streak_history(
            {utc_date(s.started_at) for s in sessions},
            utc_date(now),
            self.settings.streak_gap_tolerance_days,
        )
        history.current_streak = summary.current_streak

        return StudentMetrics(
            learner_id=learner_id,
            enrollment_date=enrollments[0].enrolled_at if enrollments else None,
            last_active=summary.last_accessed_at,
            progress_summary=summary,
            performance_metrics=self.aggregator.calculate_performance_metrics(sessions, now),
            streak_data=history,
            interaction_patterns=self.aggregator.analyze_interaction_patterns(interactions),
        )
