# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Progress tracking service.

This module turns player callbacks into durable per-lesson progress:

- start_session / end_session: learning session lifecycle
- record_interaction: best-effort append to the interaction log
- update_progress: the Progress state machine (NotStarted -> InProgress
  -> Completed), with forward-only time accrual
- is_course_complete: stamps enrollment completion
- get_progress_summary / get_user_progress / get_current_streak: learner reads

Usage:
    from src.domains.progress import ProgressService, SQLAlchemyProgressRepository

    service = ProgressService(SQLAlchemyProgressRepository(db))

    started = await service.start_session(learner_id, lesson_id)
    await service.update_progress(
        learner_id,
        lesson_id,
        current_time=30,
        duration=300,
        percent_watched=10,
    )
    await service.end_session(started.session_id)
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from src.core.config.settings import ProgressSettings, get_settings
from src.domains.progress.exceptions import (
    CourseNotFoundError,
    LessonNotFoundError,
    ProgressNotFoundError,
    SessionNotFoundError,
    StoreFailure,
)
from src.domains.progress.repository import LessonInfo, ProgressRepository
from src.domains.progress.streak import calculate_current_streak
from src.infrastructure.database.models import (
    InteractionType,
    LearningSession,
    Progress,
)
from src.utils.datetime import Clock, days_before, elapsed_seconds, format_iso, utc_date, utc_now
from src.utils.stats import percentage, safe_divide

logger = logging.getLogger(__name__)


@dataclass
class SessionStart:
    """Identifiers returned when a learning session is opened."""

    session_id: str
    progress_id: str
    started_at: datetime
    attempts: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "session_id": self.session_id,
            "progress_id": self.progress_id,
            "started_at": format_iso(self.started_at),
            "attempts": self.attempts,
        }


@dataclass
class ProgressSummary:
    """Rollup of a learner's progress, optionally scoped to one course."""

    learner_id: str
    course_id: str | None = None
    total_lessons: int = 0
    completed_lessons: int = 0
    total_time_spent: int = 0
    average_completion_time: float = 0.0
    completion_rate: float = 0.0
    last_accessed_at: datetime | None = None
    current_streak: int = 0
    total_sessions: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "learner_id": self.learner_id,
            "course_id": self.course_id,
            "total_lessons": self.total_lessons,
            "completed_lessons": self.completed_lessons,
            "total_time_spent": self.total_time_spent,
            "average_completion_time": round(self.average_completion_time, 2),
            "completion_rate": round(self.completion_rate, 2),
            "last_accessed_at": format_iso(self.last_accessed_at),
            "current_streak": self.current_streak,
            "total_sessions": self.total_sessions,
        }


@dataclass
class UserProgressEntry:
    """One Progress row with its lesson placement and latest session."""

    progress: Progress
    lesson: LessonInfo | None = None
    latest_session: LearningSession | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        progress = self.progress
        session = self.latest_session
        return {
            "progress_id": progress.id,
            "lesson_id": progress.lesson_id,
            "lesson_title": self.lesson.title if self.lesson else None,
            "module_id": self.lesson.module_id if self.lesson else None,
            "course_id": self.lesson.course_id if self.lesson else None,
            "last_position": progress.last_position,
            "percent_watched": progress.percent_watched,
            "time_spent": progress.time_spent,
            "completed": progress.completed,
            "completed_at": format_iso(progress.completed_at),
            "attempts": progress.attempts,
            "first_started_at": format_iso(progress.first_started_at),
            "last_accessed_at": format_iso(progress.last_accessed_at),
            "latest_session": (
                {
                    "session_id": session.id,
                    "started_at": format_iso(session.started_at),
                    "ended_at": format_iso(session.ended_at),
                    "duration": session.duration,
                    "completed": session.completed,
                }
                if session
                else None
            ),
        }


class ProgressService:
    """Service for session lifecycle and per-learner progress.

    Attributes:
        repository: Persistence handle.
        settings: Engine thresholds.
        clock: Source of the current UTC time.
    """

    def __init__(
        self,
        repository: ProgressRepository,
        settings: ProgressSettings | None = None,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize progress service.

        Args:
            repository: Persistence handle.
            settings: Engine thresholds, defaults to application settings.
            clock: Source of the current UTC time.
        """
        self.repository = repository
        self.settings = settings or get_settings().progress
        self.clock = clock

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start_session(self, learner_id: str, lesson_id: str) -> SessionStart:
        """Open a learning session on a lesson.

        Creates the Progress row on first start, otherwise counts a new
        attempt. Every call opens a new session.

        Args:
            learner_id: Authenticated learner identifier.
            lesson_id: Lesson being started.

        Returns:
            SessionStart with the session and progress ids.

        Raises:
            LessonNotFoundError: If the lesson does not exist.
            StoreFailure: If persistence fails.
        """
        lesson = await self.repository.get_lesson(lesson_id)
        if lesson is None:
            raise LessonNotFoundError(f"Lesson {lesson_id} not found")

        now = self.clock()
        progress, created = await self.repository.get_or_create_progress(
            learner_id, lesson_id, now
        )
        if not created:
            progress = await self.repository.register_attempt(progress.id, now)

        session = await self.repository.create_session(
            learner_id=learner_id,
            lesson_id=lesson_id,
            progress_id=progress.id,
            started_at=now,
        )
        await self.repository.add_interaction(session.id, InteractionType.START, now)
        await self.repository.commit()

        logger.info(
            "Started session: session=%s, learner=%s, lesson=%s, attempts=%s",
            session.id,
            learner_id,
            lesson_id,
            progress.attempts,
        )

        return SessionStart(
            session_id=session.id,
            progress_id=progress.id,
            started_at=now,
            attempts=progress.attempts,
        )

    async def end_session(
        self,
        session_id: str,
        learner_id: str | None = None,
    ) -> LearningSession:
        """Close a learning session.

        Duration is the wall-clock time since the session started and
        ``completed`` is copied from the owning Progress. A COMPLETE
        interaction marks the close. Ending an already closed session
        returns it unchanged.

        Args:
            session_id: Session identifier.
            learner_id: When given, the session must belong to this learner.

        Returns:
            The closed session.

        Raises:
            SessionNotFoundError: If the session does not exist or belongs
                to another learner.
            StoreFailure: If persistence fails.
        """
        session = await self.repository.get_session(session_id)
        if session is None or (learner_id and session.learner_id != learner_id):
            raise SessionNotFoundError(f"Session {session_id} not found")

        if not session.is_open:
            logger.warning("Session already ended: session=%s", session_id)
            return session

        now = self.clock()
        progress = await self.repository.get_progress(session.learner_id, session.lesson_id)

        session = await self.repository.close_session(
            session,
            ended_at=now,
            duration=max(0, elapsed_seconds(session.started_at, now)),
            completed=bool(progress and progress.completed),
        )
        await self.repository.add_interaction(session.id, InteractionType.COMPLETE, now)
        await self.repository.commit()

        logger.info(
            "Ended session: session=%s, duration=%ss, completed=%s",
            session_id,
            session.duration,
            session.completed,
        )
        return session

    async def record_interaction(
        self,
        session_id: str,
        interaction_type: InteractionType,
        timestamp: datetime | None = None,
        position: float | None = None,
        data: dict[str, Any] | None = None,
        learner_id: str | None = None,
    ) -> bool:
        """Append an interaction to a session's log.

        Best effort: a persistence failure (including an unknown session)
        is logged and reported as False, never raised. When learner_id is
        given, events for a session owned by someone else are dropped.

        Args:
            session_id: Session identifier.
            interaction_type: Kind of player event.
            timestamp: When the event happened, defaults to now.
            position: Playback position in seconds, if any.
            data: Free-form event payload.
            learner_id: Learner reporting the event, if known.

        Returns:
            True if the interaction was stored.
        """
        try:
            if learner_id is not None:
                session = await self.repository.get_session(session_id)
                if session is None or session.learner_id != learner_id:
                    logger.warning(
                        "Dropped interaction for foreign session: session=%s, learner=%s",
                        session_id,
                        learner_id,
                    )
                    return False

            await self.repository.add_interaction(
                session_id,
                interaction_type,
                timestamp or self.clock(),
                position=position,
                data=data,
            )
            await self.repository.commit()
        except StoreFailure as e:
            logger.warning(
                "Dropped interaction: session=%s, type=%s, error=%s",
                session_id,
                interaction_type.value,
                str(e),
            )
            try:
                await self.repository.rollback()
            except StoreFailure as rollback_error:
                logger.warning("Rollback after dropped interaction failed: %s", rollback_error)
            return False

        return True

    # ------------------------------------------------------------------
    # Progress state machine
    # ------------------------------------------------------------------

    async def update_progress(
        self,
        learner_id: str,
        lesson_id: str,
        *,
        current_time: float,
        duration: float = 0.0,
        percent_watched: float | None = None,
        completed: bool | None = None,
    ) -> Progress:
        """Apply a player progress report.

        Only forward movement accrues watch time: the increment is
        ``max(0, current_time - last_position)``, so seeking back never
        inflates time_spent. The lesson completes on an explicit signal or
        once percent_watched reaches the completion threshold, and stays
        completed afterwards.

        Args:
            learner_id: Authenticated learner identifier.
            lesson_id: Lesson being watched.
            current_time: Current playback position in seconds.
            duration: Media duration in seconds.
            percent_watched: Watched percentage, derived from
                current_time / duration when omitted.
            completed: Explicit completion signal from the player.

        Returns:
            The updated Progress.

        Raises:
            ProgressNotFoundError: If no session was ever started on the lesson.
            StoreFailure: If persistence fails.
        """
        progress = await self.repository.get_progress(learner_id, lesson_id)
        if progress is None:
            raise ProgressNotFoundError(
                f"No progress for learner {learner_id} on lesson {lesson_id}"
            )

        if percent_watched is None:
            percent_watched = percentage(current_time, duration)
        percent_watched = min(max(percent_watched, 0.0), 100.0)

        delta = max(0.0, current_time - (progress.last_position or 0.0))
        should_complete = bool(completed) or percent_watched >= self.settings.completion_threshold
        was_completed = progress.completed

        now = self.clock()
        progress = await self.repository.apply_progress_update(
            progress.id,
            time_spent_delta=round(delta),
            last_position=current_time,
            percent_watched=percent_watched,
            completed=should_complete,
            now=now,
        )

        if progress.completed and not was_completed:
            logger.info("Lesson completed: learner=%s, lesson=%s", learner_id, lesson_id)
            lesson = await self.repository.get_lesson(lesson_id)
            if lesson is not None:
                await self._check_course_completion(learner_id, lesson.course_id, now)

        await self.repository.commit()

        logger.debug(
            "Updated progress: learner=%s, lesson=%s, position=%s, time_spent=%s",
            learner_id,
            lesson_id,
            current_time,
            progress.time_spent,
        )
        return progress

    async def is_course_complete(self, learner_id: str, course_id: str) -> bool:
        """Check whether the learner completed every lesson of a course.

        When complete, the enrollment's completion time is stamped. Stamping
        is idempotent.

        Args:
            learner_id: Learner identifier.
            course_id: Course identifier.

        Returns:
            True if every lesson of the course is completed.
        """
        complete = await self._check_course_completion(learner_id, course_id, self.clock())
        if complete:
            await self.repository.commit()
        return complete

    async def _check_course_completion(
        self,
        learner_id: str,
        course_id: str,
        now: datetime,
    ) -> bool:
        total = await self.repository.count_course_lessons(course_id)
        if total == 0:
            return False

        completed = await self.repository.count_completed_lessons(learner_id, course_id)
        if completed < total:
            return False

        await self.repository.mark_enrollment_completed(learner_id, course_id, now)
        logger.info("Course completed: learner=%s, course=%s", learner_id, course_id)
        return True

    # ------------------------------------------------------------------
    # Learner reads
    # ------------------------------------------------------------------

    async def get_current_streak(self, learner_id: str) -> int:
        """Consecutive-day streak that is still alive today."""
        now = self.clock()
        sessions = await self.repository.list_learner_sessions(
            learner_id,
            since=days_before(now, self.settings.streak_lookback_days),
        )
        return calculate_current_streak(
            {utc_date(s.started_at) for s in sessions},
            utc_date(now),
            self.settings.streak_gap_tolerance_days,
        )

    async def get_progress_summary(
        self,
        learner_id: str,
        course_id: str | None = None,
    ) -> ProgressSummary:
        """Roll up a learner's progress.

        A learner with no progress gets a zero-valued summary.

        Args:
            learner_id: Learner identifier.
            course_id: Optional course scope.

        Returns:
            ProgressSummary for the learner.

        Raises:
            CourseNotFoundError: If course_id is given but unknown.
        """
        if course_id and await self.repository.get_course(course_id) is None:
            raise CourseNotFoundError(f"Course {course_id} not found")

        rows = await self.repository.list_learner_progress(learner_id, course_id)
        total_lessons = len(rows)
        completed_lessons = sum(1 for p in rows if p.completed)
        total_time_spent = sum(p.time_spent for p in rows)

        return ProgressSummary(
            learner_id=learner_id,
            course_id=course_id,
            total_lessons=total_lessons,
            completed_lessons=completed_lessons,
            total_time_spent=total_time_spent,
            average_completion_time=safe_divide(total_time_spent, completed_lessons),
            completion_rate=percentage(completed_lessons, total_lessons),
            last_accessed_at=max((p.last_accessed_at for p in rows), default=None),
            current_streak=await self.get_current_streak(learner_id),
            total_sessions=await self.repository.count_learner_sessions(learner_id, course_id),
        )

    async def get_user_progress(
        self,
        learner_id: str,
        course_id: str | None = None,
    ) -> list[UserProgressEntry]:
        """List a learner's progress rows, most recently accessed first.

        Args:
            learner_id: Learner identifier.
            course_id: Optional course scope.

        Returns:
            Entries with lesson placement and the latest session.
        """
        rows = await self.repository.list_learner_progress(learner_id, course_id)
        lessons = await self.repository.get_lessons([p.lesson_id for p in rows])
        latest = await self.repository.get_latest_sessions([p.id for p in rows])

        return [
            UserProgressEntry(
                progress=p,
                lesson=lessons.get(p.lesson_id),
                latest_session=latest.get(p.id),
            )
            for p in rows
        ]
