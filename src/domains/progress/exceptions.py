# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Exceptions for progress tracking and analytics.

This module defines the exception hierarchy for the progress engine:
- ProgressServiceError: Base exception for all progress errors
- NotFoundError: A referenced session, lesson, course or learner is unknown
- StoreFailure: The backing store failed or timed out
"""


class ProgressServiceError(Exception):
    """Base exception for progress service errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        """Initialize progress service error.

        Args:
            message: Human-readable error description.
        """
        self.message = message
        super().__init__(message)


class NotFoundError(ProgressServiceError):
    """Raised when a referenced entity does not exist."""

    pass


class SessionNotFoundError(NotFoundError):
    """Raised when a learning session is not found."""

    pass


class LessonNotFoundError(NotFoundError):
    """Raised when a lesson is not found."""

    pass


class CourseNotFoundError(NotFoundError):
    """Raised when a course is not found."""

    pass


class ProgressNotFoundError(NotFoundError):
    """Raised when no progress exists for a learner and lesson."""

    pass


class LearnerNotFoundError(NotFoundError):
    """Raised when a learner has no enrollment and no progress."""

    pass


class StoreFailure(ProgressServiceError):
    """Raised when the persistence layer fails.

    Attributes:
        original_error: The underlying storage exception.
    """

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        """Initialize store failure.

        Args:
            message: Human-readable error description.
            original_error: The exception raised by the storage layer.
        """
        super().__init__(message)
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message
