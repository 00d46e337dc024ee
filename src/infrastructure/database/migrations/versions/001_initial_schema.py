# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Initial learning progress schema.

Revision ID: 001_initial
Revises: None
Create Date: 2025-03-01

This migration creates the catalog mirror tables (courses, modules,
lessons, enrollments) and the progress tables (progress,
learning_sessions, session_interactions) based on the SQLAlchemy models
in src/infrastructure/database/models/.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=False),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _timestamp_columns() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    """Create learning progress tables."""
    # ==========================================================================
    # 1. Catalog mirror
    # ==========================================================================
    op.create_table(
        "courses",
        _id_column(),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint("id", name="pk_courses"),
    )

    op.create_table(
        "modules",
        _id_column(),
        sa.Column("course_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint("id", name="pk_modules"),
        sa.ForeignKeyConstraint(
            ["course_id"],
            ["courses.id"],
            name="fk_modules_course_id_courses",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_modules_course_id", "modules", ["course_id"])

    op.create_table(
        "lessons",
        _id_column(),
        sa.Column("module_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("lesson_type", sa.String(32), nullable=False, server_default="video"),
        sa.Column("duration_seconds", sa.Integer, nullable=True),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint("id", name="pk_lessons"),
        sa.ForeignKeyConstraint(
            ["module_id"],
            ["modules.id"],
            name="fk_lessons_module_id_modules",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_lessons_module_id", "lessons", ["module_id"])

    op.create_table(
        "enrollments",
        _id_column(),
        sa.Column("learner_id", sa.String(64), nullable=False),
        sa.Column("course_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column(
            "enrolled_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint("id", name="pk_enrollments"),
        sa.ForeignKeyConstraint(
            ["course_id"],
            ["courses.id"],
            name="fk_enrollments_course_id_courses",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("learner_id", "course_id", name="uq_enrollments_learner_course"),
    )
    op.create_index("ix_enrollments_learner_id", "enrollments", ["learner_id"])
    op.create_index("ix_enrollments_course_id", "enrollments", ["course_id"])

    # ==========================================================================
    # 2. Progress
    # ==========================================================================
    op.create_table(
        "progress",
        _id_column(),
        sa.Column("learner_id", sa.String(64), nullable=False),
        sa.Column("lesson_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("last_position", sa.Float, nullable=False, server_default="0"),
        sa.Column("percent_watched", sa.Float, nullable=False, server_default="0"),
        sa.Column("time_spent", sa.Integer, nullable=False, server_default="0"),
        sa.Column("completed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="1"),
        sa.Column("first_started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_accessed_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint("id", name="pk_progress"),
        sa.ForeignKeyConstraint(
            ["lesson_id"],
            ["lessons.id"],
            name="fk_progress_lesson_id_lessons",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("learner_id", "lesson_id", name="uq_progress_learner_lesson"),
        sa.CheckConstraint("time_spent >= 0", name="ck_progress_time_spent_non_negative"),
        sa.CheckConstraint("attempts >= 1", name="ck_progress_attempts_positive"),
    )
    op.create_index("ix_progress_learner_id", "progress", ["learner_id"])
    op.create_index("ix_progress_lesson_id", "progress", ["lesson_id"])
    op.create_index("ix_progress_lesson_completed", "progress", ["lesson_id", "completed"])

    # ==========================================================================
    # 3. Sessions and interaction log
    # ==========================================================================
    op.create_table(
        "learning_sessions",
        _id_column(),
        sa.Column("learner_id", sa.String(64), nullable=False),
        sa.Column("lesson_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("progress_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration", sa.Integer, nullable=True),
        sa.Column("completed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint("id", name="pk_learning_sessions"),
        sa.ForeignKeyConstraint(
            ["lesson_id"],
            ["lessons.id"],
            name="fk_learning_sessions_lesson_id_lessons",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["progress_id"],
            ["progress.id"],
            name="fk_learning_sessions_progress_id_progress",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_learning_sessions_lesson_id", "learning_sessions", ["lesson_id"])
    op.create_index("ix_learning_sessions_progress_id", "learning_sessions", ["progress_id"])
    op.create_index(
        "ix_learning_sessions_learner_started",
        "learning_sessions",
        ["learner_id", "started_at"],
    )

    op.create_table(
        "session_interactions",
        _id_column(),
        sa.Column("session_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("position", sa.Float, nullable=True),
        sa.Column("data", sa.JSON, nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_session_interactions"),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["learning_sessions.id"],
            name="fk_session_interactions_session_id_learning_sessions",
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        "ix_session_interactions_session_id",
        "session_interactions",
        ["session_id"],
    )


def downgrade() -> None:
    """Drop learning progress tables."""
    op.drop_table("session_interactions")
    op.drop_table("learning_sessions")
    op.drop_table("progress")
    op.drop_table("enrollments")
    op.drop_table("lessons")
    op.drop_table("modules")
    op.drop_table("courses")
