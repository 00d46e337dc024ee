# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy models for the learning progress service.

Catalog models (Course, Module, Lesson, Enrollment) mirror data owned by the
catalog and enrollment subsystems. Progress models (Progress,
LearningSession, SessionInteraction) are owned by the progress engine.
"""

from src.infrastructure.database.models.base import Base, TimestampMixin
from src.infrastructure.database.models.catalog import Course, Enrollment, Lesson, Module
from src.infrastructure.database.models.progress import (
    InteractionType,
    LearningSession,
    Progress,
    SessionInteraction,
)

__all__ = [
    "Base",
    "TimestampMixin",
    # Catalog
    "Course",
    "Module",
    "Lesson",
    "Enrollment",
    # Progress
    "InteractionType",
    "Progress",
    "LearningSession",
    "SessionInteraction",
]
