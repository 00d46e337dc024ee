# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Persistence handle for progress tracking and analytics.

ProgressRepository is the storage interface injected into ProgressService
and AnalyticsService. SQLAlchemyProgressRepository implements it over an
AsyncSession.

Concurrency contract:
- Progress.time_spent and Progress.attempts are advanced with single
  ``SET col = col + :delta`` statements, never read-modify-write.
- Progress.completed only moves to true and completed_at is stamped with
  COALESCE, so concurrent writers cannot unset or re-stamp completion.
- Remaining Progress fields are last-writer-wins.

Example:
    async with get_session() as db:
        repository = SQLAlchemyProgressRepository(db)
        service = ProgressService(repository)
        await service.start_session(learner_id, lesson_id)
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import Select, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.domains.progress.exceptions import StoreFailure
from src.infrastructure.database.models import (
    Course,
    Enrollment,
    InteractionType,
    LearningSession,
    Lesson,
    Module,
    Progress,
    SessionInteraction,
)
from src.infrastructure.database.models.base import generate_id

logger = logging.getLogger(__name__)


def is_valid_id(value: str) -> bool:
    """Whether a value parses as a UUID primary key."""
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


@dataclass(frozen=True)
class CourseInfo:
    """Catalog identity of a course."""

    id: str
    title: str


@dataclass(frozen=True)
class LessonInfo:
    """Catalog identity and ordering of a lesson."""

    id: str
    title: str
    module_id: str
    course_id: str
    module_order: int
    lesson_order: int
    lesson_type: str = "video"
    duration_seconds: int | None = None


class ProgressRepository(ABC):
    """Storage interface for the progress engine."""

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @abstractmethod
    async def commit(self) -> None:
        """Commit pending writes."""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """Discard pending writes."""
        ...

    # ------------------------------------------------------------------
    # Catalog (read-only)
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_course(self, course_id: str) -> CourseInfo | None:
        """Get a course by id."""
        ...

    @abstractmethod
    async def get_lesson(self, lesson_id: str) -> LessonInfo | None:
        """Get a lesson with its module/course placement."""
        ...

    @abstractmethod
    async def get_lessons(self, lesson_ids: Sequence[str]) -> dict[str, LessonInfo]:
        """Get several lessons keyed by id."""
        ...

    @abstractmethod
    async def list_course_lessons(self, course_id: str) -> list[LessonInfo]:
        """List course lessons ordered by (module order, lesson order)."""
        ...

    @abstractmethod
    async def count_course_lessons(self, course_id: str) -> int:
        """Count all lessons belonging to a course."""
        ...

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_course_enrollments(self, course_id: str) -> list[Enrollment]:
        """List enrollments of a course."""
        ...

    @abstractmethod
    async def list_learner_enrollments(
        self,
        learner_id: str,
        course_id: str | None = None,
    ) -> list[Enrollment]:
        """List a learner's enrollments, oldest first."""
        ...

    @abstractmethod
    async def mark_enrollment_completed(
        self,
        learner_id: str,
        course_id: str,
        completed_at: datetime,
    ) -> None:
        """Stamp enrollment completion. A second call keeps the first stamp."""
        ...

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_progress(self, learner_id: str, lesson_id: str) -> Progress | None:
        """Get progress for a (learner, lesson) pair."""
        ...

    @abstractmethod
    async def get_or_create_progress(
        self,
        learner_id: str,
        lesson_id: str,
        now: datetime,
    ) -> tuple[Progress, bool]:
        """Get progress for the pair, creating it on first start.

        Returns:
            Tuple of (progress, created).
        """
        ...

    @abstractmethod
    async def register_attempt(self, progress_id: str, now: datetime) -> Progress:
        """Atomically increment attempts and set last_accessed_at."""
        ...

    @abstractmethod
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
        """Apply one player progress report.

        time_spent is incremented atomically by time_spent_delta. When
        completed is true, the row is marked completed and completed_at is
        stamped only if it was not already set.
        """
        ...

    @abstractmethod
    async def count_completed_lessons(self, learner_id: str, course_id: str) -> int:
        """Count a learner's completed lessons inside a course."""
        ...

    @abstractmethod
    async def list_learner_progress(
        self,
        learner_id: str,
        course_id: str | None = None,
    ) -> list[Progress]:
        """List a learner's progress rows, most recently accessed first."""
        ...

    @abstractmethod
    async def list_course_progress(self, course_id: str) -> list[Progress]:
        """List progress rows of every learner for a course."""
        ...

    @abstractmethod
    async def list_lesson_progress(self, lesson_id: str) -> list[Progress]:
        """List progress rows of every learner for a lesson."""
        ...

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @abstractmethod
    async def create_session(
        self,
        learner_id: str,
        lesson_id: str,
        progress_id: str,
        started_at: datetime,
    ) -> LearningSession:
        """Open a new learning session."""
        ...

    @abstractmethod
    async def get_session(self, session_id: str) -> LearningSession | None:
        """Get a learning session by id."""
        ...

    @abstractmethod
    async def close_session(
        self,
        session: LearningSession,
        *,
        ended_at: datetime,
        duration: int,
        completed: bool,
    ) -> LearningSession:
        """Close a learning session."""
        ...

    @abstractmethod
    async def count_learner_sessions(
        self,
        learner_id: str,
        course_id: str | None = None,
    ) -> int:
        """Count a learner's sessions, optionally within a course."""
        ...

    @abstractmethod
    async def list_learner_sessions(
        self,
        learner_id: str,
        course_id: str | None = None,
        since: datetime | None = None,
    ) -> list[LearningSession]:
        """List a learner's sessions ordered by start time ascending."""
        ...

    @abstractmethod
    async def get_latest_sessions(
        self,
        progress_ids: Sequence[str],
    ) -> dict[str, LearningSession]:
        """Get the most recently started session per progress id."""
        ...

    @abstractmethod
    async def list_course_sessions(self, course_id: str) -> list[LearningSession]:
        """List every session on a course's lessons."""
        ...

    # ------------------------------------------------------------------
    # Interaction log
    # ------------------------------------------------------------------

    @abstractmethod
    async def add_interaction(
        self,
        session_id: str,
        interaction_type: InteractionType,
        timestamp: datetime,
        position: float | None = None,
        data: dict[str, Any] | None = None,
    ) -> SessionInteraction:
        """Append an interaction to a session's log."""
        ...

    @abstractmethod
    async def count_course_interactions(self, course_id: str) -> int:
        """Count interactions recorded on a course's sessions."""
        ...

    @abstractmethod
    async def list_lesson_interactions(self, lesson_id: str) -> list[SessionInteraction]:
        """List a lesson's interactions that carry a position."""
        ...

    @abstractmethod
    async def list_learner_interactions(
        self,
        learner_id: str,
        course_id: str | None = None,
    ) -> list[tuple[SessionInteraction, str]]:
        """List a learner's interactions paired with the lesson type."""
        ...


class SQLAlchemyProgressRepository(ProgressRepository):
    """ProgressRepository backed by an async SQLAlchemy session.

    Every SQLAlchemyError is re-raised as StoreFailure.

    Attributes:
        db: Async database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        """Initialize the repository.

        Args:
            db: Async database session.
        """
        self.db = db

    async def _execute(self, stmt: Any) -> Any:
        try:
            return await self.db.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Progress store query failed: %s", str(e))
            raise StoreFailure("Progress store query failed", e) from e

    async def _flush(self) -> None:
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error("Progress store write failed: %s", str(e))
            raise StoreFailure("Progress store write failed", e) from e

    async def commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            logger.error("Progress store commit failed: %s", str(e))
            raise StoreFailure("Progress store commit failed", e) from e

    async def rollback(self) -> None:
        try:
            await self.db.rollback()
        except SQLAlchemyError as e:
            raise StoreFailure("Progress store rollback failed", e) from e

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def _lesson_query(self) -> Select:
        return select(
            Lesson.id,
            Lesson.title,
            Lesson.module_id,
            Module.course_id,
            Module.sort_order,
            Lesson.sort_order,
            Lesson.lesson_type,
            Lesson.duration_seconds,
        ).join(Module, Lesson.module_id == Module.id)

    @staticmethod
    def _to_lesson_info(row: Any) -> LessonInfo:
        return LessonInfo(
            id=str(row[0]),
            title=row[1],
            module_id=str(row[2]),
            course_id=str(row[3]),
            module_order=row[4],
            lesson_order=row[5],
            lesson_type=row[6],
            duration_seconds=row[7],
        )

    async def get_course(self, course_id: str) -> CourseInfo | None:
        if not is_valid_id(course_id):
            return None
        result = await self._execute(
            select(Course.id, Course.title).where(Course.id == course_id)
        )
        row = result.one_or_none()
        if row is None:
            return None
        return CourseInfo(id=str(row[0]), title=row[1])

    async def get_lesson(self, lesson_id: str) -> LessonInfo | None:
        if not is_valid_id(lesson_id):
            return None
        result = await self._execute(self._lesson_query().where(Lesson.id == lesson_id))
        row = result.one_or_none()
        return self._to_lesson_info(row) if row is not None else None

    async def get_lessons(self, lesson_ids: Sequence[str]) -> dict[str, LessonInfo]:
        lesson_ids = [i for i in lesson_ids if is_valid_id(i)]
        if not lesson_ids:
            return {}
        result = await self._execute(
            self._lesson_query().where(Lesson.id.in_(list(lesson_ids)))
        )
        lessons = [self._to_lesson_info(row) for row in result.all()]
        return {lesson.id: lesson for lesson in lessons}

    async def list_course_lessons(self, course_id: str) -> list[LessonInfo]:
        result = await self._execute(
            self._lesson_query()
            .where(Module.course_id == course_id)
            .order_by(Module.sort_order, Lesson.sort_order)
        )
        return [self._to_lesson_info(row) for row in result.all()]

    async def count_course_lessons(self, course_id: str) -> int:
        result = await self._execute(
            select(func.count(Lesson.id))
            .join(Module, Lesson.module_id == Module.id)
            .where(Module.course_id == course_id)
        )
        return result.scalar_one()

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    async def list_course_enrollments(self, course_id: str) -> list[Enrollment]:
        result = await self._execute(
            select(Enrollment).where(Enrollment.course_id == course_id)
        )
        return list(result.scalars().all())

    async def list_learner_enrollments(
        self,
        learner_id: str,
        course_id: str | None = None,
    ) -> list[Enrollment]:
        query = select(Enrollment).where(Enrollment.learner_id == learner_id)
        if course_id:
            query = query.where(Enrollment.course_id == course_id)
        result = await self._execute(query.order_by(Enrollment.enrolled_at))
        return list(result.scalars().all())

    async def mark_enrollment_completed(
        self,
        learner_id: str,
        course_id: str,
        completed_at: datetime,
    ) -> None:
        await self._execute(
            update(Enrollment)
            .where(
                Enrollment.learner_id == learner_id,
                Enrollment.course_id == course_id,
                Enrollment.completed_at.is_(None),
            )
            .values(completed_at=completed_at, updated_at=completed_at)
            .execution_options(synchronize_session=False)
        )

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    async def get_progress(self, learner_id: str, lesson_id: str) -> Progress | None:
        if not is_valid_id(lesson_id):
            return None
        result = await self._execute(
            select(Progress).where(
                Progress.learner_id == learner_id,
                Progress.lesson_id == lesson_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_or_create_progress(
        self,
        learner_id: str,
        lesson_id: str,
        now: datetime,
    ) -> tuple[Progress, bool]:
        existing = await self.get_progress(learner_id, lesson_id)
        if existing is not None:
            return existing, False

        progress = Progress(
            id=generate_id(),
            learner_id=learner_id,
            lesson_id=lesson_id,
            last_position=0.0,
            percent_watched=0.0,
            time_spent=0,
            completed=False,
            attempts=1,
            first_started_at=now,
            last_accessed_at=now,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(progress)
        except IntegrityError:
            # A concurrent first start inserted the row first
            existing = await self.get_progress(learner_id, lesson_id)
            if existing is None:
                raise StoreFailure("Progress row vanished after unique conflict")
            return existing, False
        except SQLAlchemyError as e:
            raise StoreFailure("Failed to create progress", e) from e

        return progress, True

    async def _update_progress(self, progress_id: str, values: dict[str, Any]) -> Progress:
        result = await self._execute(
            update(Progress)
            .where(Progress.id == progress_id)
            .values(**values)
            .returning(Progress)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def register_attempt(self, progress_id: str, now: datetime) -> Progress:
        return await self._update_progress(
            progress_id,
            {
                "attempts": Progress.attempts + 1,
                "last_accessed_at": now,
                "updated_at": now,
            },
        )

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
        values: dict[str, Any] = {
            "time_spent": Progress.time_spent + time_spent_delta,
            "last_position": last_position,
            "percent_watched": percent_watched,
            "last_accessed_at": now,
            "updated_at": now,
        }
        if completed:
            values["completed"] = True
            values["completed_at"] = func.coalesce(Progress.completed_at, now)
        return await self._update_progress(progress_id, values)

    def _course_progress_query(self, course_id: str) -> Select:
        return (
            select(Progress)
            .join(Lesson, Progress.lesson_id == Lesson.id)
            .join(Module, Lesson.module_id == Module.id)
            .where(Module.course_id == course_id)
        )

    async def count_completed_lessons(self, learner_id: str, course_id: str) -> int:
        result = await self._execute(
            select(func.count(Progress.id))
            .join(Lesson, Progress.lesson_id == Lesson.id)
            .join(Module, Lesson.module_id == Module.id)
            .where(
                Module.course_id == course_id,
                Progress.learner_id == learner_id,
                Progress.completed.is_(True),
            )
        )
        return result.scalar_one()

    async def list_learner_progress(
        self,
        learner_id: str,
        course_id: str | None = None,
    ) -> list[Progress]:
        if course_id:
            query = self._course_progress_query(course_id)
        else:
            query = select(Progress)
        query = query.where(Progress.learner_id == learner_id).order_by(
            Progress.last_accessed_at.desc()
        )
        result = await self._execute(query)
        return list(result.scalars().all())

    async def list_course_progress(self, course_id: str) -> list[Progress]:
        result = await self._execute(self._course_progress_query(course_id))
        return list(result.scalars().all())

    async def list_lesson_progress(self, lesson_id: str) -> list[Progress]:
        result = await self._execute(
            select(Progress).where(Progress.lesson_id == lesson_id)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(
        self,
        learner_id: str,
        lesson_id: str,
        progress_id: str,
        started_at: datetime,
    ) -> LearningSession:
        session = LearningSession(
            id=generate_id(),
            learner_id=learner_id,
            lesson_id=lesson_id,
            progress_id=progress_id,
            started_at=started_at,
            completed=False,
        )
        self.db.add(session)
        await self._flush()
        return session

    async def get_session(self, session_id: str) -> LearningSession | None:
        if not is_valid_id(session_id):
            return None
        result = await self._execute(
            select(LearningSession).where(LearningSession.id == session_id)
        )
        return result.scalar_one_or_none()

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
        await self._flush()
        return session

    def _learner_sessions_query(self, learner_id: str, course_id: str | None) -> Select:
        query = select(LearningSession).where(LearningSession.learner_id == learner_id)
        if course_id:
            query = (
                query.join(Lesson, LearningSession.lesson_id == Lesson.id)
                .join(Module, Lesson.module_id == Module.id)
                .where(Module.course_id == course_id)
            )
        return query

    async def count_learner_sessions(
        self,
        learner_id: str,
        course_id: str | None = None,
    ) -> int:
        subquery = self._learner_sessions_query(learner_id, course_id).subquery()
        result = await self._execute(select(func.count()).select_from(subquery))
        return result.scalar_one()

    async def list_learner_sessions(
        self,
        learner_id: str,
        course_id: str | None = None,
        since: datetime | None = None,
    ) -> list[LearningSession]:
        query = self._learner_sessions_query(learner_id, course_id)
        if since is not None:
            query = query.where(LearningSession.started_at >= since)
        result = await self._execute(query.order_by(LearningSession.started_at))
        return list(result.scalars().all())

    async def get_latest_sessions(
        self,
        progress_ids: Sequence[str],
    ) -> dict[str, LearningSession]:
        if not progress_ids:
            return {}
        result = await self._execute(
            select(LearningSession)
            .where(LearningSession.progress_id.in_(list(progress_ids)))
            .order_by(LearningSession.started_at.desc())
        )
        latest: dict[str, LearningSession] = {}
        for session in result.scalars().all():
            latest.setdefault(str(session.progress_id), session)
        return latest

    async def list_course_sessions(self, course_id: str) -> list[LearningSession]:
        result = await self._execute(
            select(LearningSession)
            .join(Lesson, LearningSession.lesson_id == Lesson.id)
            .join(Module, Lesson.module_id == Module.id)
            .where(Module.course_id == course_id)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Interaction log
    # ------------------------------------------------------------------

    async def add_interaction(
        self,
        session_id: str,
        interaction_type: InteractionType,
        timestamp: datetime,
        position: float | None = None,
        data: dict[str, Any] | None = None,
    ) -> SessionInteraction:
        interaction = SessionInteraction(
            id=generate_id(),
            session_id=session_id,
            type=interaction_type,
            timestamp=timestamp,
            position=position,
            data=data,
        )
        self.db.add(interaction)
        await self._flush()
        return interaction

    async def count_course_interactions(self, course_id: str) -> int:
        result = await self._execute(
            select(func.count(SessionInteraction.id))
            .join(LearningSession, SessionInteraction.session_id == LearningSession.id)
            .join(Lesson, LearningSession.lesson_id == Lesson.id)
            .join(Module, Lesson.module_id == Module.id)
            .where(Module.course_id == course_id)
        )
        return result.scalar_one()

    async def list_lesson_interactions(self, lesson_id: str) -> list[SessionInteraction]:
        result = await self._execute(
            select(SessionInteraction)
            .join(LearningSession, SessionInteraction.session_id == LearningSession.id)
            .where(
                LearningSession.lesson_id == lesson_id,
                SessionInteraction.position.is_not(None),
            )
        )
        return list(result.scalars().all())

    async def list_learner_interactions(
        self,
        learner_id: str,
        course_id: str | None = None,
    ) -> list[tuple[SessionInteraction, str]]:
        query = (
            select(SessionInteraction, Lesson.lesson_type)
            .join(LearningSession, SessionInteraction.session_id == LearningSession.id)
            .join(Lesson, LearningSession.lesson_id == Lesson.id)
            .where(LearningSession.learner_id == learner_id)
        )
        if course_id:
            query = query.join(Module, Lesson.module_id == Module.id).where(
                Module.course_id == course_id
            )
        result = await self._execute(query)
        return [(row[0], row[1]) for row in result.all()]
