# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Progress tracking API endpoints.

This module provides the endpoints called by the lesson player:
- POST /sessions - Start a learning session
- POST /sessions/{session_id}/end - End a learning session
- POST /sessions/{session_id}/interactions - Record a player event
- PUT /lessons/{lesson_id} - Report playback progress
- GET /summary - Progress summary of the current learner
- GET "" - Progress rows of the current learner

Example:
    PUT /api/v1/progress/lessons/{lesson_id}
    X-User-ID: learner-123
    {"current_time": 30, "duration": 300, "percent_watched": 10}
"""

import logging
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from src.api.dependencies import get_progress_service, require_learner
from src.domains.progress import (
    LessonNotFoundError,
    ProgressNotFoundError,
    ProgressService,
    SessionNotFoundError,
    CourseNotFoundError,
)
from src.infrastructure.database.models import InteractionType

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================


class StartSessionRequest(BaseModel):
    """Start session request."""

    lesson_id: str = Field(min_length=1, description="Lesson to start")


class InteractionRequest(BaseModel):
    """Player event reported during a session."""

    type: InteractionType = Field(description="Interaction type")
    timestamp: datetime | None = Field(None, description="When it happened, defaults to now")
    position: float | None = Field(None, ge=0, description="Playback position in seconds")
    data: dict[str, Any] | None = Field(None, description="Free-form payload")


class ProgressUpdateRequest(BaseModel):
    """Playback progress report."""

    current_time: float = Field(ge=0, description="Current playback position in seconds")
    duration: float = Field(0, ge=0, description="Media duration in seconds")
    percent_watched: float | None = Field(None, ge=0, le=100, description="Watched percentage")
    completed: bool | None = Field(None, description="Explicit completion signal")


# ============================================================================
# Response Models
# ============================================================================


class SessionStartResponse(BaseModel):
    """Identifiers of a started session."""

    session_id: str = Field(description="Session identifier")
    progress_id: str = Field(description="Owning progress identifier")
    started_at: datetime = Field(description="Session start time")
    attempts: int = Field(description="Attempts on the lesson so far")


class SessionResponse(BaseModel):
    """A learning session."""

    id: str = Field(description="Session identifier")
    lesson_id: str = Field(description="Lesson identifier")
    progress_id: str = Field(description="Owning progress identifier")
    started_at: datetime = Field(description="Start time")
    ended_at: datetime | None = Field(None, description="End time")
    duration: int | None = Field(None, description="Duration in seconds")
    completed: bool = Field(description="Lesson completion at close")


class InteractionAcceptedResponse(BaseModel):
    """Result of a best-effort interaction append."""

    accepted: bool = Field(description="Whether the event was stored")


class ProgressResponse(BaseModel):
    """Progress of a learner on a lesson."""

    id: str = Field(description="Progress identifier")
    lesson_id: str = Field(description="Lesson identifier")
    last_position: float = Field(description="Last playback position in seconds")
    percent_watched: float = Field(description="Watched percentage")
    time_spent: int = Field(description="Accumulated watch time in seconds")
    completed: bool = Field(description="Whether the lesson is completed")
    completed_at: datetime | None = Field(None, description="Completion time")
    attempts: int = Field(description="Number of starts")
    first_started_at: datetime = Field(description="First start time")
    last_accessed_at: datetime = Field(description="Last access time")


class ProgressSummaryResponse(BaseModel):
    """Learner progress rollup."""

    learner_id: str
    course_id: str | None = None
    total_lessons: int
    completed_lessons: int
    total_time_spent: int = Field(description="Seconds")
    average_completion_time: float = Field(description="Seconds per completed lesson")
    completion_rate: float = Field(description="Percent")
    last_accessed_at: datetime | None = None
    current_streak: int = Field(description="Consecutive active days")
    total_sessions: int


class LatestSessionResponse(BaseModel):
    """Most recent session of a progress row."""

    session_id: str
    started_at: datetime
    ended_at: datetime | None = None
    duration: int | None = None
    completed: bool


class UserProgressResponse(BaseModel):
    """Progress row with lesson placement."""

    progress_id: str
    lesson_id: str
    lesson_title: str | None = None
    module_id: str | None = None
    course_id: str | None = None
    last_position: float
    percent_watched: float
    time_spent: int
    completed: bool
    completed_at: datetime | None = None
    attempts: int
    first_started_at: datetime
    last_accessed_at: datetime
    latest_session: LatestSessionResponse | None = None


def _not_found(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "/sessions",
    response_model=SessionStartResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start session",
    description="Open a learning session on a lesson for the current learner.",
)
async def start_session(
    request: StartSessionRequest,
    learner_id: str = Depends(require_learner),
    service: ProgressService = Depends(get_progress_service),
) -> SessionStartResponse:
    """Start a learning session.

    Args:
        request: Lesson to start.
        learner_id: Current learner.
        service: Progress service.

    Returns:
        SessionStartResponse with session and progress ids.

    Raises:
        HTTPException: If the lesson is not found.
    """
    try:
        started = await service.start_session(learner_id, request.lesson_id)
    except LessonNotFoundError as e:
        raise _not_found(e)

    return SessionStartResponse(
        session_id=started.session_id,
        progress_id=started.progress_id,
        started_at=started.started_at,
        attempts=started.attempts,
    )


@router.post(
    "/sessions/{session_id}/end",
    response_model=SessionResponse,
    summary="End session",
    description="Close a learning session and record its duration.",
)
async def end_session(
    session_id: str,
    learner_id: str = Depends(require_learner),
    service: ProgressService = Depends(get_progress_service),
) -> SessionResponse:
    """End a learning session.

    Raises:
        HTTPException: If the session is not found for this learner.
    """
    try:
        session = await service.end_session(session_id, learner_id=learner_id)
    except SessionNotFoundError as e:
        raise _not_found(e)

    return SessionResponse.model_validate(session, from_attributes=True)


@router.post(
    "/sessions/{session_id}/interactions",
    response_model=InteractionAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Record interaction",
    description="Append a player event. Failures are logged, never surfaced.",
)
async def record_interaction(
    session_id: str,
    request: InteractionRequest,
    learner_id: str = Depends(require_learner),
    service: ProgressService = Depends(get_progress_service),
) -> InteractionAcceptedResponse:
    """Record a player interaction."""
    accepted = await service.record_interaction(
        session_id,
        request.type,
        timestamp=request.timestamp,
        position=request.position,
        data=request.data,
        learner_id=learner_id,
    )
    return InteractionAcceptedResponse(accepted=accepted)


@router.put(
    "/lessons/{lesson_id}",
    response_model=ProgressResponse,
    summary="Update progress",
    description="Report the playback position of the current learner on a lesson.",
)
async def update_progress(
    lesson_id: str,
    request: ProgressUpdateRequest,
    learner_id: str = Depends(require_learner),
    service: ProgressService = Depends(get_progress_service),
) -> ProgressResponse:
    """Update lesson progress.

    Args:
        lesson_id: Lesson identifier.
        request: Playback report.
        learner_id: Current learner.
        service: Progress service.

    Returns:
        The updated progress.

    Raises:
        HTTPException: If no session was ever started on the lesson.
    """
    try:
        progress = await service.update_progress(
            learner_id,
            lesson_id,
            current_time=request.current_time,
            duration=request.duration,
            percent_watched=request.percent_watched,
            completed=request.completed,
        )
    except ProgressNotFoundError as e:
        raise _not_found(e)

    return ProgressResponse.model_validate(progress, from_attributes=True)


@router.get(
    "/summary",
    response_model=ProgressSummaryResponse,
    summary="Get progress summary",
    description="Roll up the current learner's progress, optionally for one course.",
)
async def get_progress_summary(
    course_id: Annotated[str | None, Query(description="Course scope")] = None,
    learner_id: str = Depends(require_learner),
    service: ProgressService = Depends(get_progress_service),
) -> ProgressSummaryResponse:
    """Get the current learner's progress summary."""
    try:
        summary = await service.get_progress_summary(learner_id, course_id)
    except CourseNotFoundError as e:
        raise _not_found(e)

    return ProgressSummaryResponse.model_validate(summary.to_dict())


@router.get(
    "",
    response_model=list[UserProgressResponse],
    summary="List progress",
    description="List the current learner's progress, most recently accessed first.",
)
async def list_progress(
    course_id: Annotated[str | None, Query(description="Course scope")] = None,
    learner_id: str = Depends(require_learner),
    service: ProgressService = Depends(get_progress_service),
) -> list[UserProgressResponse]:
    """List the current learner's progress rows."""
    entries = await service.get_user_progress(learner_id, course_id)
    return [UserProgressResponse.model_validate(entry.to_dict()) for entry in entries]
