# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Analytics API endpoints.

This module provides pull-based learning analytics:
- GET /courses/{course_id} - Course metrics
- GET /courses/{course_id}/learners - Per-learner course rollup
- GET /lessons/{lesson_id} - Lesson metrics
- GET /students/{learner_id} - Student metrics

Example:
    GET /api/v1/analytics/courses/{course_id}
"""

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from src.api.dependencies import get_analytics_service, require_learner
from src.domains.analytics import AnalyticsService
from src.domains.progress import (
    CourseNotFoundError,
    LearnerNotFoundError,
    LessonNotFoundError,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Response Models
# ============================================================================


class DropoffPointResponse(BaseModel):
    """Lesson with significant attrition to the next lesson."""

    lesson_id: str = Field(description="Lesson identifier")
    lesson_title: str = Field(description="Lesson title")
    dropoff_rate: float = Field(description="Percent of learners not reaching the next lesson")


class EngagementMetricsResponse(BaseModel):
    """Session engagement."""

    average_session_length: float = Field(description="Minutes per session")
    total_view_time: float = Field(description="Total minutes")
    interaction_rate: float = Field(description="Interactions per session")


class PerformanceDistributionResponse(BaseModel):
    """Learner counts per performance tier."""

    high_performers: int
    average_performers: int
    struggling_students: int


class CourseMetricsResponse(BaseModel):
    """Course metrics response."""

    course_id: str
    course_title: str
    total_students: int = Field(description="Enrolled learners")
    active_students: int = Field(description="Enrolled learners active in the window")
    completion_rate: float = Field(description="Percent of enrolled learners done")
    average_completion_time: float = Field(description="Hours per learner")
    dropoff_points: list[DropoffPointResponse]
    engagement_metrics: EngagementMetricsResponse
    performance_distribution: PerformanceDistributionResponse


class LearnerCourseAnalyticsResponse(BaseModel):
    """One learner's rollup in a course."""

    learner_id: str
    total_lessons: int = Field(description="Lessons with progress")
    completed_lessons: int
    total_time_spent: int = Field(description="Seconds")
    last_accessed_at: datetime | None = None
    sessions: int
    completion_rate: float = Field(description="Percent of touched lessons")
    average_time_per_lesson: float = Field(description="Seconds")


class InteractionHotspotResponse(BaseModel):
    """Playback region with many interactions."""

    position: int = Field(description="Bucket start in seconds")
    interaction_count: int
    type: str = Field(description="Most frequent interaction type")


class LessonMetricsResponse(BaseModel):
    """Lesson metrics response."""

    lesson_id: str
    lesson_title: str
    average_watch_time: float = Field(description="Seconds")
    completion_rate: float = Field(description="Percent")
    average_attempts: float
    common_dropoff_points: list[int] = Field(description="Bucket starts in seconds")
    interaction_hotspots: list[InteractionHotspotResponse]


class ProgressSummaryResponse(BaseModel):
    """Learner progress rollup."""

    learner_id: str
    course_id: str | None = None
    total_lessons: int
    completed_lessons: int
    total_time_spent: int
    average_completion_time: float
    completion_rate: float
    last_accessed_at: datetime | None = None
    current_streak: int
    total_sessions: int


class PerformanceMetricsResponse(BaseModel):
    """Session-derived performance."""

    average_session_length: float = Field(description="Minutes")
    total_engagement_time: float = Field(description="Minutes")
    completion_velocity: float = Field(description="Completed sessions per week")
    struggling_lessons: list[str]
    strong_lessons: list[str]


class StreakDataResponse(BaseModel):
    """Streak figures."""

    current_streak: int
    longest_streak: int
    streak_breaks: int


class InteractionPatternsResponse(BaseModel):
    """Interaction habits."""

    most_active_time_of_day: str | None = None
    preferred_lesson_types: list[str]
    average_pauses_per_session: float
    average_seeks_per_session: float


class StudentMetricsResponse(BaseModel):
    """Student metrics response."""

    learner_id: str
    enrollment_date: datetime | None = None
    last_active: datetime | None = None
    progress_summary: ProgressSummaryResponse
    performance_metrics: PerformanceMetricsResponse
    streak_data: StreakDataResponse
    interaction_patterns: InteractionPatternsResponse


# ============================================================================
# Endpoints
# ============================================================================


@router.get(
    "/courses/{course_id}",
    response_model=CourseMetricsResponse,
    summary="Get course metrics",
    description="Completion, activity, dropoff, engagement and performance of a course.",
)
async def get_course_metrics(
    course_id: str,
    _: str = Depends(require_learner),
    service: AnalyticsService = Depends(get_analytics_service),
) -> CourseMetricsResponse:
    """Get course metrics.

    Raises:
        HTTPException: If the course is not found.
    """
    try:
        metrics = await service.get_course_metrics(course_id)
    except CourseNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return CourseMetricsResponse.model_validate(metrics.to_dict())


@router.get(
    "/courses/{course_id}/learners",
    response_model=list[LearnerCourseAnalyticsResponse],
    summary="Get course learner analytics",
    description="Per-learner rollup of every learner with progress in a course.",
)
async def get_course_learner_analytics(
    course_id: str,
    _: str = Depends(require_learner),
    service: AnalyticsService = Depends(get_analytics_service),
) -> list[LearnerCourseAnalyticsResponse]:
    """Get per-learner analytics of a course."""
    try:
        rollups = await service.get_course_learner_analytics(course_id)
    except CourseNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return [LearnerCourseAnalyticsResponse.model_validate(r.to_dict()) for r in rollups]


@router.get(
    "/lessons/{lesson_id}",
    response_model=LessonMetricsResponse,
    summary="Get lesson metrics",
    description="Watch time, completion, dropoff positions and hotspots of a lesson.",
)
async def get_lesson_metrics(
    lesson_id: str,
    _: str = Depends(require_learner),
    service: AnalyticsService = Depends(get_analytics_service),
) -> LessonMetricsResponse:
    """Get lesson metrics.

    Raises:
        HTTPException: If the lesson is not found.
    """
    try:
        metrics = await service.get_lesson_metrics(lesson_id)
    except LessonNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return LessonMetricsResponse.model_validate(metrics.to_dict())


@router.get(
    "/students/{learner_id}",
    response_model=StudentMetricsResponse,
    summary="Get student metrics",
    description="Summary, performance, streaks and interaction patterns of a learner.",
)
async def get_student_metrics(
    learner_id: str,
    course_id: Annotated[str | None, Query(description="Course scope")] = None,
    _: str = Depends(require_learner),
    service: AnalyticsService = Depends(get_analytics_service),
) -> StudentMetricsResponse:
    """Get student metrics.

    Raises:
        HTTPException: If the learner or course is not found.
    """
    logger.info("Getting student metrics: learner=%s, course=%s", learner_id, course_id)

    try:
        metrics = await service.get_student_metrics(learner_id, course_id)
    except (LearnerNotFoundError, CourseNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return StudentMetricsResponse.model_validate(metrics.to_dict())
