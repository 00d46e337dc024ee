# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Analytics aggregation module.

Pure rollups over rows already loaded by AnalyticsService:
- Course dropoff: attrition between consecutive lessons
- Performance distribution: high / average / struggling tiers
- Engagement: session length, view time, interactions per session
- Lesson dropoff buckets and interaction hotspots
- Per-learner course rollup, performance metrics, interaction patterns

Nothing here touches the database, so every rollup is testable with plain
objects. Thresholds come from ProgressSettings.

Usage:
    from src.domains.analytics import AnalyticsAggregator

    aggregator = AnalyticsAggregator(settings.progress)
    points = aggregator.calculate_dropoff_points(lessons, learner_counts)
"""

import logging
import math
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping, Sequence

from src.core.config.settings import ProgressSettings
from src.domains.progress.repository import LessonInfo
from src.infrastructure.database.models import (
    InteractionType,
    LearningSession,
    Progress,
    SessionInteraction,
)
from src.utils.datetime import ensure_utc, format_iso
from src.utils.stats import mean, percentage, safe_divide

logger = logging.getLogger(__name__)


@dataclass
class DropoffPoint:
    """A lesson after which a significant share of learners stopped."""

    lesson_id: str
    lesson_title: str
    dropoff_rate: float

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "lesson_id": self.lesson_id,
            "lesson_title": self.lesson_title,
            "dropoff_rate": round(self.dropoff_rate, 2),
        }


@dataclass
class EngagementMetrics:
    """Session-based engagement of a course.

    Attributes:
        average_session_length: Minutes per session.
        total_view_time: Total session minutes.
        interaction_rate: Interactions per session.
    """

    average_session_length: float = 0.0
    total_view_time: float = 0.0
    interaction_rate: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "average_session_length": round(self.average_session_length, 2),
            "total_view_time": round(self.total_view_time, 2),
            "interaction_rate": round(self.interaction_rate, 2),
        }


@dataclass
class PerformanceDistribution:
    """Learner counts per performance tier. The three tiers sum to the cohort."""

    high_performers: int = 0
    average_performers: int = 0
    struggling_students: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "high_performers": self.high_performers,
            "average_performers": self.average_performers,
            "struggling_students": self.struggling_students,
        }


@dataclass
class InteractionHotspot:
    """A playback region with many interactions."""

    position: int
    interaction_count: int
    type: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "position": self.position,
            "interaction_count": self.interaction_count,
            "type": self.type,
        }


@dataclass
class LearnerCourseAnalytics:
    """One learner's rollup over the lessons they touched in a course."""

    learner_id: str
    total_lessons: int = 0
    completed_lessons: int = 0
    total_time_spent: int = 0
    last_accessed_at: datetime | None = None
    sessions: int = 0

    @property
    def completion_rate(self) -> float:
        """Completed share of touched lessons, in percent."""
        return percentage(self.completed_lessons, self.total_lessons)

    @property
    def average_time_per_lesson(self) -> float:
        """Seconds spent per touched lesson."""
        return safe_divide(self.total_time_spent, self.total_lessons)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "learner_id": self.learner_id,
            "total_lessons": self.total_lessons,
            "completed_lessons": self.completed_lessons,
            "total_time_spent": self.total_time_spent,
            "last_accessed_at": format_iso(self.last_accessed_at),
            "sessions": self.sessions,
            "completion_rate": round(self.completion_rate, 2),
            "average_time_per_lesson": round(self.average_time_per_lesson, 2),
        }


@dataclass
class PerformanceMetrics:
    """Session-derived performance of a single learner."""

    average_session_length: float = 0.0
    total_engagement_time: float = 0.0
    completion_velocity: float = 0.0
    struggling_lessons: list[str] = field(default_factory=list)
    strong_lessons: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "average_session_length": round(self.average_session_length, 2),
            "total_engagement_time": round(self.total_engagement_time, 2),
            "completion_velocity": round(self.completion_velocity, 2),
            "struggling_lessons": self.struggling_lessons,
            "strong_lessons": self.strong_lessons,
        }


@dataclass
class InteractionPatterns:
    """When and how a learner interacts with lessons."""

    most_active_time_of_day: str | None = None
    preferred_lesson_types: list[str] = field(default_factory=list)
    average_pauses_per_session: float = 0.0
    average_seeks_per_session: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "most_active_time_of_day": self.most_active_time_of_day,
            "preferred_lesson_types": self.preferred_lesson_types,
            "average_pauses_per_session": round(self.average_pauses_per_session, 2),
            "average_seeks_per_session": round(self.average_seeks_per_session, 2),
        }


def _bucket(position: float, width: int) -> int:
    return int(math.floor(position / width) * width)


class AnalyticsAggregator:
    """Computes course, lesson and learner rollups.

    Attributes:
        settings: Engine thresholds.
    """

    def __init__(self, settings: ProgressSettings) -> None:
        """Initialize aggregator.

        Args:
            settings: Engine thresholds.
        """
        self.settings = settings

    # ------------------------------------------------------------------
    # Course rollups
    # ------------------------------------------------------------------

    def calculate_dropoff_points(
        self,
        lessons: Sequence[LessonInfo],
        learner_counts: Mapping[str, int],
    ) -> list[DropoffPoint]:
        """Rank lesson-to-lesson attrition.

        Lessons must be ordered by (module order, lesson order). For each
        adjacent pair the dropoff rate is the share of learners with progress
        on the first lesson that have none on the second. Only rates above
        the threshold are reported, highest first.

        Args:
            lessons: Course lessons in course order.
            learner_counts: Learners with progress per lesson id.

        Returns:
            At most max_dropoff_points entries.
        """
        points: list[DropoffPoint] = []
        for current, following in zip(lessons, lessons[1:]):
            reached = learner_counts.get(current.id, 0)
            if reached == 0:
                continue
            continued = learner_counts.get(following.id, 0)
            rate = percentage(reached - continued, reached)
            if rate > self.settings.dropoff_threshold:
                points.append(DropoffPoint(current.id, current.title, rate))

        points.sort(key=lambda p: p.dropoff_rate, reverse=True)
        return points[: self.settings.max_dropoff_points]

    def calculate_performance_distribution(
        self,
        completion_rates: Sequence[float],
    ) -> PerformanceDistribution:
        """Split a cohort into performance tiers.

        The top and bottom tiers each take ceil(n * quartile) learners. For
        small cohorts the bottom tier is clamped so the tiers never exceed n.

        Args:
            completion_rates: Completion rate of each learner.

        Returns:
            Tier counts summing to len(completion_rates).
        """
        total = len(completion_rates)
        if total == 0:
            return PerformanceDistribution()

        tier = math.ceil(total * self.settings.performance_quartile)
        high = min(tier, total)
        struggling = min(tier, total - high)
        return PerformanceDistribution(
            high_performers=high,
            average_performers=total - high - struggling,
            struggling_students=struggling,
        )

    def calculate_engagement(
        self,
        sessions: Sequence[LearningSession],
        interaction_count: int,
    ) -> EngagementMetrics:
        """Engagement of a set of sessions. Open sessions count zero duration."""
        total_duration = sum(s.duration or 0 for s in sessions)
        return EngagementMetrics(
            average_session_length=safe_divide(total_duration, len(sessions)) / 60,
            total_view_time=total_duration / 60,
            interaction_rate=safe_divide(interaction_count, len(sessions)),
        )

    def rollup_learners(
        self,
        progress_rows: Iterable[Progress],
        sessions: Iterable[LearningSession],
    ) -> list[LearnerCourseAnalytics]:
        """Group course progress rows and sessions per learner.

        Args:
            progress_rows: Progress rows of a course.
            sessions: Sessions on the same course.

        Returns:
            One rollup per learner with progress, ordered by learner id.
        """
        rollups: dict[str, LearnerCourseAnalytics] = {}
        for progress in progress_rows:
            rollup = rollups.get(progress.learner_id)
            if rollup is None:
                rollup = LearnerCourseAnalytics(learner_id=progress.learner_id)
                rollups[progress.learner_id] = rollup
            rollup.total_lessons += 1
            rollup.total_time_spent += progress.time_spent
            if progress.completed:
                rollup.completed_lessons += 1
            if progress.last_accessed_at and (
                rollup.last_accessed_at is None
                or progress.last_accessed_at > rollup.last_accessed_at
            ):
                rollup.last_accessed_at = progress.last_accessed_at

        for session in sessions:
            if session.learner_id in rollups:
                rollups[session.learner_id].sessions += 1

        return [rollups[learner_id] for learner_id in sorted(rollups)]

    # ------------------------------------------------------------------
    # Lesson rollups
    # ------------------------------------------------------------------

    def calculate_lesson_dropoff_points(self, progress_rows: Iterable[Progress]) -> list[int]:
        """Common last positions of learners who did not finish a lesson.

        Returns:
            Bucket start offsets in seconds, most frequent first.
        """
        width = self.settings.dropoff_bucket_seconds
        counts = Counter(
            _bucket(p.last_position or 0.0, width) for p in progress_rows if not p.completed
        )
        buckets = [
            (bucket, count)
            for bucket, count in counts.items()
            if count >= self.settings.min_dropoff_learners
        ]
        buckets.sort(key=lambda item: (-item[1], item[0]))
        return [bucket for bucket, _ in buckets[: self.settings.max_lesson_dropoff_points]]

    def calculate_interaction_hotspots(
        self,
        interactions: Iterable[SessionInteraction],
    ) -> list[InteractionHotspot]:
        """Playback regions with the most interactions.

        Interactions without a position are ignored. Each hotspot reports
        its most frequent interaction type.
        """
        width = self.settings.hotspot_bucket_seconds
        types_by_bucket: dict[int, Counter] = defaultdict(Counter)
        for interaction in interactions:
            if interaction.position is None:
                continue
            types_by_bucket[_bucket(interaction.position, width)][
                InteractionType(interaction.type).value
            ] += 1

        hotspots = [
            InteractionHotspot(
                position=bucket,
                interaction_count=sum(types.values()),
                type=types.most_common(1)[0][0],
            )
            for bucket, types in types_by_bucket.items()
        ]
        hotspots = [
            h for h in hotspots if h.interaction_count >= self.settings.min_hotspot_interactions
        ]
        hotspots.sort(key=lambda h: (-h.interaction_count, h.position))
        return hotspots[: self.settings.max_hotspots]

    # ------------------------------------------------------------------
    # Learner rollups
    # ------------------------------------------------------------------

    def calculate_performance_metrics(
        self,
        sessions: Sequence[LearningSession],
        now: datetime,
    ) -> PerformanceMetrics:
        """Derive a learner's performance from their sessions.

        Completion velocity is completed sessions per week since the first
        session, counting at least one week. A lesson is struggling when its
        session time exceeds struggling_time_multiplier times the learner's
        average lesson time or it took more than struggling_attempt_limit
        sessions. A lesson is strong when it was completed in one session
        under strong_time_ratio times the average.

        Args:
            sessions: The learner's sessions.
            now: Reference instant.

        Returns:
            PerformanceMetrics for the learner.
        """
        if not sessions:
            return PerformanceMetrics()

        total_duration = sum(s.duration or 0 for s in sessions)
        first_started = min(ensure_utc(s.started_at) for s in sessions)
        weeks_active = max(1.0, (ensure_utc(now) - first_started) / timedelta(weeks=1))
        completed_sessions = sum(1 for s in sessions if s.completed)

        time_by_lesson: dict[str, int] = defaultdict(int)
        attempts_by_lesson: dict[str, int] = defaultdict(int)
        completed_by_lesson: dict[str, bool] = defaultdict(bool)
        for session in sessions:
            time_by_lesson[session.lesson_id] += session.duration or 0
            attempts_by_lesson[session.lesson_id] += 1
            completed_by_lesson[session.lesson_id] |= bool(session.completed)

        average_lesson_time = mean(time_by_lesson.values())
        struggling = [
            lesson_id
            for lesson_id, spent in time_by_lesson.items()
            if spent > average_lesson_time * self.settings.struggling_time_multiplier
            or attempts_by_lesson[lesson_id] > self.settings.struggling_attempt_limit
        ]
        strong = [
            lesson_id
            for lesson_id, spent in time_by_lesson.items()
            if completed_by_lesson[lesson_id]
            and spent < average_lesson_time * self.settings.strong_time_ratio
            and attempts_by_lesson[lesson_id] == 1
        ]

        return PerformanceMetrics(
            average_session_length=safe_divide(total_duration, len(sessions)) / 60,
            total_engagement_time=total_duration / 60,
            completion_velocity=completed_sessions / weeks_active,
            struggling_lessons=struggling,
            strong_lessons=strong,
        )

    def analyze_interaction_patterns(
        self,
        interactions: Sequence[tuple[SessionInteraction, str]],
    ) -> InteractionPatterns:
        """Summarize when and how a learner interacts.

        Args:
            interactions: Pairs of (interaction, lesson type).

        Returns:
            InteractionPatterns; pause and seek averages are per session
            that logged at least one interaction.
        """
        if not interactions:
            return InteractionPatterns()

        hours = Counter(ensure_utc(i.timestamp).hour for i, _ in interactions)
        lesson_types = Counter(lesson_type for _, lesson_type in interactions)

        pauses: dict[str, int] = defaultdict(int)
        seeks: dict[str, int] = defaultdict(int)
        for interaction, _ in interactions:
            kind = InteractionType(interaction.type)
            pauses[interaction.session_id] += kind == InteractionType.PAUSE
            seeks[interaction.session_id] += kind == InteractionType.SEEK

        session_count = len(pauses)
        most_active_hour = hours.most_common(1)[0][0]
        return InteractionPatterns(
            most_active_time_of_day=f"{most_active_hour:02d}:00",
            preferred_lesson_types=[t for t, _ in lesson_types.most_common()],
            average_pauses_per_session=safe_divide(sum(pauses.values()), session_count),
            average_seeks_per_session=safe_divide(sum(seeks.values()), session_count),
        )
