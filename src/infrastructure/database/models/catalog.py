# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Course catalog and enrollment models.

These tables are written by the catalog and enrollment subsystems. The
progress engine reads the course -> module -> lesson hierarchy and its
ordering, counts enrollments, and stamps Enrollment.completed_at.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.infrastructure.database.models.base import Base, TimestampMixin, generate_id
from src.utils.datetime import utc_now


class Course(Base, TimestampMixin):
    """A course made of ordered modules."""

    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=generate_id)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    modules: Mapped[list["Module"]] = relationship(
        back_populates="course",
        order_by="Module.sort_order",
    )


class Module(Base, TimestampMixin):
    """An ordered group of lessons inside a course."""

    __tablename__ = "modules"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=generate_id)
    course_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    course: Mapped[Course] = relationship(back_populates="modules")
    lessons: Mapped[list["Lesson"]] = relationship(
        back_populates="module",
        order_by="Lesson.sort_order",
    )


class Lesson(Base, TimestampMixin):
    """A single playable lesson (video, document, quiz...)."""

    __tablename__ = "lessons"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=generate_id)
    module_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("modules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lesson_type: Mapped[str] = mapped_column(String(32), nullable=False, default="video")
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)

    module: Mapped[Module] = relationship(back_populates="lessons")


class Enrollment(Base, TimestampMixin):
    """A learner's enrollment in a course."""

    __tablename__ = "enrollments"
    __table_args__ = (
        UniqueConstraint("learner_id", "course_id", name="uq_enrollments_learner_course"),
    )

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=generate_id)
    learner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    course_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    enrolled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
