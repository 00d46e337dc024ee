# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Progress tracking models.

- Progress: one row per (learner, lesson); time_spent only ever grows and
  completed never reverts once set.
- LearningSession: one continuous viewing attempt, closed exactly once.
- SessionInteraction: append-only playback event log of a session.
"""

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.infrastructure.database.models.base import Base, TimestampMixin, generate_id
from src.infrastructure.database.models.catalog import Lesson


class InteractionType(str, enum.Enum):
    """Player and resource events recorded against a session."""

    START = "START"
    PAUSE = "PAUSE"
    RESUME = "RESUME"
    SEEK = "SEEK"
    COMPLETE = "COMPLETE"
    RESOURCE_DOWNLOAD = "RESOURCE_DOWNLOAD"
    QUIZ_START = "QUIZ_START"
    QUIZ_SUBMIT = "QUIZ_SUBMIT"
    NOTE_CREATE = "NOTE_CREATE"
    BOOKMARK_ADD = "BOOKMARK_ADD"


class Progress(Base, TimestampMixin):
    """Durable state of one learner on one lesson."""

    __tablename__ = "progress"
    __table_args__ = (
        UniqueConstraint("learner_id", "lesson_id", name="uq_progress_learner_lesson"),
        Index("ix_progress_lesson_completed", "lesson_id", "completed"),
        CheckConstraint("time_spent >= 0", name="time_spent_non_negative"),
        CheckConstraint("attempts >= 1", name="attempts_positive"),
    )

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=generate_id)
    learner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    lesson_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("lessons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    last_position: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    percent_watched: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    time_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    first_started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_accessed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    lesson: Mapped[Lesson] = relationship()
    sessions: Mapped[list["LearningSession"]] = relationship(back_populates="progress")


class LearningSession(Base):
    """A bounded viewing attempt of one learner on one lesson."""

    __tablename__ = "learning_sessions"
    __table_args__ = (
        Index("ix_learning_sessions_learner_started", "learner_id", "started_at"),
    )

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=generate_id)
    learner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    lesson_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("lessons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    progress_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("progress.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    progress: Mapped[Progress] = relationship(back_populates="sessions")
    interactions: Mapped[list["SessionInteraction"]] = relationship(back_populates="session")

    @property
    def is_open(self) -> bool:
        """Whether the session has not been closed yet."""
        return self.ended_at is None


class SessionInteraction(Base):
    """Append-only playback event. Never updated or deleted."""

    __tablename__ = "session_interactions"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=generate_id)
    session_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("learning_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[InteractionType] = mapped_column(
        Enum(InteractionType, name="interaction_type", native_enum=False, length=32),
        nullable=False,
    )
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    position: Mapped[float | None] = mapped_column(Float, nullable=True)
    data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    session: Mapped[LearningSession] = relationship(back_populates="interactions")
