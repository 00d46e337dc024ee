# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- A fixed, advanceable clock
- An in-memory ProgressRepository with catalog helpers
- Engine settings with default thresholds
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Sequence
from uuid import uuid4

import pytest

from src.core.config.settings import ProgressSettings
from src.domains.progress.exceptions import StoreFailure
from src.domains.progress.repository import CourseInfo, LessonInfo, ProgressRepository
from src.infrastructure.database.models import (
    Enrollment,
    InteractionType,
    LearningSession,
    Progress,
    SessionInteraction,
)


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (API with fakes)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# =============================================================================
# Test Doubles
# =============================================================================


class FakeClock:
    """Callable clock returning a controllable instant."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class InMemoryProgressRepository(ProgressRepository):
    """ProgressRepository keeping everything in dictionaries.

    Mirrors the SQL implementation: attempts and time_spent are incremented
    in place, completion is sticky and completed_at is stamped once.
    """

    def __init__(self) -> None:
        self.courses: dict[str, CourseInfo] = {}
        self.lessons: dict[str, LessonInfo] = {}
        self.enrollments: list[Enrollment] = []
        self.progress: dict[str, Progress] = {}
        self.sessions: dict[str, LearningSession] = {}
        self.interactions: list[SessionInteraction] = []
        self.commits = 0
        self.rollbacks = 0
        self.fail_interactions = False

    # ------------------------------------------------------------------
    # Catalog helpers
    # ------------------------------------------------------------------

    def add_course(self, title: str = "Course") -> CourseInfo:
        course = CourseInfo(id=str(uuid4()), title=title)
        self.courses[course.id] = course
        return course

    def add_lesson(
        self,
        course_id: str,
        title: str = "Lesson",
        module_order: int = 0,
        lesson_order: int = 0,
        lesson_type: str = "video",
    ) -> LessonInfo:
        lesson = LessonInfo(
            id=str(uuid4()),
            title=title,
            module_id=f"{course_id}-m{module_order}",
            course_id=course_id,
            module_order=module_order,
            lesson_order=lesson_order,
            lesson_type=lesson_type,
        )
        self.lessons[lesson.id] = lesson
        return lesson

    def enroll(self, learner_id: str, course_id: str, enrolled_at: datetime) -> Enrollment:
        enrollment = Enrollment(
            id=str(uuid4()),
            learner_id=learner_id,
            course_id=course_id,
            enrolled_at=enrolled_at,
            completed_at=None,
        )
        self.enrollments.append(enrollment)
        return enrollment

    def seed_progress(
        self,
        learner_id: str,
        lesson_id: str,
        now: datetime,
        **fields: Any,
    ) -> Progress:
        progress = self._new_progress(learner_id, lesson_id, now)
        for name, value in fields.items():
            setattr(progress, name, value)
        self.progress[progress.id] = progress
        return progress

    def seed_session(
        self,
        learner_id: str,
        lesson_id: str,
        started_at: datetime,
        duration: int | None = None,
        completed: bool = False,
    ) -> LearningSession:
        progress = self._find_progress(learner_id, lesson_id)
        if progress is None:
            progress = self.seed_progress(learner_id, lesson_id, started_at)
        session = LearningSession(
            id=str(uuid4()),
            learner_id=learner_id,
            lesson_id=lesson_id,
            progress_id=progress.id,
            started_at=started_at,
            ended_at=started_at + timedelta(seconds=duration) if duration is not None else None,
            duration=duration,
            completed=completed,
        )
        self.sessions[session.id] = session
        return session

    def _new_progress(self, learner_id: str, lesson_id: str, now: datetime) -> Progress:
        return Progress(
            id=str(uuid4()),
            learner_id=learner_id,
            lesson_id=lesson_id,
            last_position=0.0,
            percent_watched=0.0,
            time_spent=0,
            completed=False,
            completed_at=None,
            attempts=1,
            first_started_at=now,
            last_accessed_at=now,
            created_at=now,
            updated_at=now,
        )

    def _find_progress(self, learner_id: str, lesson_id: str) -> Progress | None:
        for progress in self.progress.values():
            if progress.learner_id == learner_id and progress.lesson_id == lesson_id:
                return progress
        return None

    def _in_course(self, lesson_id: str, course_id: str | None) -> bool:
        if course_id is None:
            return True
        lesson = self.lessons.get(lesson_id)
        return lesson is not None and lesson.course_id == course_id

    # ------------------------------------------------------------------
    # ProgressRepository
    # ------------------------------------------------------------------

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1

    async def get_course(self, course_id: str) -> CourseInfo | None:
        return self.courses.get(course_id)

    async def get_lesson(self, lesson_id: str) -> LessonInfo | None:
        return self.lessons.get(lesson_id)

    async def get_lessons(self, lesson_ids: Sequence[str]) -> dict[str, LessonInfo]:
        return {i: self.lessons[i] for i in lesson_ids if i in self.lessons}

    async def list_course_lessons(self, course_id: str) -> list[LessonInfo]:
        lessons = [lesson for lesson in self.lessons.values() if lesson.course_id == course_id]
        return sorted(lessons, key=lambda lesson: (lesson.module_order, lesson.lesson_order))

    async def count_course_lessons(self, course_id: str) -> int:
        return len(await self.list_course_lessons(course_id))

    async def list_course_enrollments(self, course_id: str) -> list[Enrollment]:
        return [e for e in self.enrollments if e.course_id == course_id]

    async def list_learner_enrollments(
        self,
        learner_id: str,
        course_id: str | None = None,
    ) -> list[Enrollment]:
        matches = [
            e
            for e in self.enrollments
            if e.learner_id == learner_id and (course_id is None or e.course_id == course_id)
        ]
        return sorted(matches, key=lambda e: e.enrolled_at)

    async def mark_enrollment_completed(
        self,
        learner_id: str,
        course_id: str,
        completed_at: datetime,
    ) -> None:
        for enrollment in self.enrollments:
            if (
                enrollment.learner_id == learner_id
                and enrollment.course_id == course_id
                and enrollment.completed_at is None
            ):
                enrollment.completed_at = completed_at

    async def get_progress(self, learner_id: str, lesson_id: str) -> Progress | None:
        return self._find_progress(learner_id, lesson_id)

    async def get_or_create_progress(
        self,
        learner_id: str,
        lesson_id: str,
        now: datetime,
    ) -> tuple[Progress, bool]:
        existing = self._find_progress(learner_id, lesson_id)
        if existing is not None:
            return existing, False
        progress = self._new_progress(learner_id, lesson_id, now)
        self.progress[progress.id] = progress
        return progress, True

    async def register_attempt(self, progress_id: str, now: datetime) -> Progress:
        progress = self.progress[progress_id]
        progress.attempts += 1
        progress.last_accessed_at = now
        progress.updated_at = now
        return progress

    async def apply_progress_update(
        self,
        progress_id: str,
        *,
        time_spent_delta: int,
        last_position: float,
        percent_watched: float,
        completed: bool,
        now: datetime,
    ) -> Progress:
        progress = self.progress[progress_id]
        progress.time_spent += time_spent_delta
        progress.last_position = last_position
        progress.percent_watched = percent_watched
        progress.last_accessed_at = now
        progress.updated_at = now
        if completed:
            progress.completed = True
            if progress.completed_at is None:
                progress.completed_at = now
        return progress

    async def count_completed_lessons(self, learner_id: str, course_id: str) -> int:
        return sum(
            1
            for p in self.progress.values()
            if p.learner_id == learner_id and p.completed and self._in_course(p.lesson_id, course_id)
        )

    async def list_learner_progress(
        self,
        learner_id: str,
        course_id: str | None = None,
    ) -> list[Progress]:
        rows = [
            p
            for p in self.progress.values()
            if p.learner_id == learner_id and self._in_course(p.lesson_id, course_id)
        ]
        return sorted(rows, key=lambda p: p.last_accessed_at, reverse=True)

    async def list_course_progress(self, course_id: str) -> list[Progress]:
        return [p for p in self.progress.values() if self._in_course(p.lesson_id, course_id)]

    async def list_lesson_progress(self, lesson_id: str) -> list[Progress]:
        return [p for p in self.progress.values() if p.lesson_id == lesson_id]

    async def create_session(
        self,
        learner_id: str,
        lesson_id: str,
        progress_id: str,
        started_at: datetime,
    ) -> LearningSession:
        session = LearningSession(
            id=str(uuid4()),
            learner_id=learner_id,
            lesson_id=lesson_id,
            progress_id=progress_id,
            started_at=started_at,
            ended_at=None,
            duration=None,
            completed=False,
        )
        self.sessions[session.id] = session
        return session

    async def get_session(self, session_id: str) -> LearningSession | None:
        return self.sessions.get(session_id)

    async def close_session(
        self,
        session: LearningSession,
        *,
        ended_at: datetime,
        duration: int,
        completed: bool,
    ) -> LearningSession:
        session.ended_at = ended_at
        session.duration = duration
        session.completed = completed
        return session

    async def count_learner_sessions(
        self,
        learner_id: str,
        course_id: str | None = None,
    ) -> int:
        return len(await self.list_learner_sessions(learner_id, course_id))

    async def list_learner_sessions(
        self,
        learner_id: str,
        course_id: str | None = None,
        since: datetime | None = None,
    ) -> list[LearningSession]:
        rows = [
            s
            for s in self.sessions.values()
            if s.learner_id == learner_id
            and self._in_course(s.lesson_id, course_id)
            and (since is None or s.started_at >= since)
        ]
        return sorted(rows, key=lambda s: s.started_at)

    async def get_latest_sessions(
        self,
        progress_ids: Sequence[str],
    ) -> dict[str, LearningSession]:
        latest: dict[str, LearningSession] = {}
        for session in sorted(self.sessions.values(), key=lambda s: s.started_at, reverse=True):
            if session.progress_id in progress_ids:
                latest.setdefault(session.progress_id, session)
        return latest

    async def list_course_sessions(self, course_id: str) -> list[LearningSession]:
        return [s for s in self.sessions.values() if self._in_course(s.lesson_id, course_id)]

    async def add_interaction(
        self,
        session_id: str,
        interaction_type: InteractionType,
        timestamp: datetime,
        position: float | None = None,
        data: dict[str, Any] | None = None,
    ) -> SessionInteraction:
        if self.fail_interactions or session_id not in self.sessions:
            raise StoreFailure("Progress store write failed")
        interaction = SessionInteraction(
            id=str(uuid4()),
            session_id=session_id,
            type=interaction_type,
            timestamp=timestamp,
            position=position,
            data=data,
        )
        self.interactions.append(interaction)
        return interaction

    async def count_course_interactions(self, course_id: str) -> int:
        return sum(
            1
            for i in self.interactions
            if self._in_course(self.sessions[i.session_id].lesson_id, course_id)
        )

    async def list_lesson_interactions(self, lesson_id: str) -> list[SessionInteraction]:
        return [
            i
            for i in self.interactions
            if self.sessions[i.session_id].lesson_id == lesson_id and i.position is not None
        ]

    async def list_learner_interactions(
        self,
        learner_id: str,
        course_id: str | None = None,
    ) -> list[tuple[SessionInteraction, str]]:
        pairs = []
        for interaction in self.interactions:
            session = self.sessions[interaction.session_id]
            if session.learner_id != learner_id or not self._in_course(session.lesson_id, course_id):
                continue
            pairs.append((interaction, self.lessons[session.lesson_id].lesson_type))
        return pairs


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fixed_now() -> datetime:
    """Reference instant shared by time-dependent tests."""
    return datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(fixed_now: datetime) -> FakeClock:
    """Advanceable clock starting at fixed_now."""
    return FakeClock(fixed_now)


@pytest.fixture
def progress_settings() -> ProgressSettings:
    """Engine thresholds with their default values."""
    return ProgressSettings()


@pytest.fixture
def repository() -> InMemoryProgressRepository:
    """Empty in-memory persistence handle."""
    return InMemoryProgressRepository()


@pytest.fixture
def sample_learner_id() -> str:
    """Provide a sample learner ID for testing."""
    return "learner-550e8400"
