# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Analytics domain services.

This module provides read-only learning analytics:
- Course metrics: completion, active learners, dropoff, engagement,
  performance tiers
- Lesson metrics: watch time, dropoff positions, interaction hotspots
- Student metrics: summary, performance, streaks, interaction patterns

Usage:
    from src.domains.analytics import AnalyticsService

    service = AnalyticsService(repository)
    metrics = await service.get_course_metrics(course_id)
"""

from src.domains.analytics.aggregator import (
    AnalyticsAggregator,
    DropoffPoint,
    EngagementMetrics,
    InteractionHotspot,
    InteractionPatterns,
    LearnerCourseAnalytics,
    PerformanceDistribution,
    PerformanceMetrics,
)
from src.domains.analytics.service import (
    AnalyticsService,
    CourseMetrics,
    LessonMetrics,
    StudentMetrics,
)

__all__ = [
    # Service
    "AnalyticsService",
    "CourseMetrics",
    "LessonMetrics",
    "StudentMetrics",
    # Aggregation
    "AnalyticsAggregator",
    "DropoffPoint",
    "EngagementMetrics",
    "InteractionHotspot",
    "InteractionPatterns",
    "LearnerCourseAnalytics",
    "PerformanceDistribution",
    "PerformanceMetrics",
]
