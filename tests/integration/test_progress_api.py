# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for the progress and analytics API.

The full application is built with create_app(); only the repository
dependency is swapped for the in-memory implementation.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from src.api.app import create_app
from src.api.dependencies import get_progress_repository
from src.api.middleware.rate_limit import get_client_identifier
from src.domains.progress import StoreFailure

LEARNER = {"X-User-ID": "learner-1"}


@pytest.fixture
def app(repository):
    """Create app wired to the in-memory repository."""
    app = create_app()
    app.dependency_overrides[get_progress_repository] = lambda: repository
    app.state.limiter.enabled = False
    yield app
    app.state.limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def catalog(repository):
    course = repository.add_course("Web APIs")
    lesson = repository.add_lesson(course.id, "HTTP", module_order=1, lesson_order=1)
    return course, lesson


class TestRouting:
    """Tests for route registration."""

    def test_routes_registered(self, app):
        routes = [route.path for route in app.routes]

        assert "/health" in routes
        assert "/health/ready" in routes
        assert "/api/v1/progress/sessions" in routes
        assert "/api/v1/progress/sessions/{session_id}/end" in routes
        assert "/api/v1/progress/sessions/{session_id}/interactions" in routes
        assert "/api/v1/progress/lessons/{lesson_id}" in routes
        assert "/api/v1/progress/summary" in routes
        assert "/api/v1/progress" in routes
        assert "/api/v1/analytics/courses/{course_id}" in routes
        assert "/api/v1/analytics/courses/{course_id}/learners" in routes
        assert "/api/v1/analytics/lessons/{lesson_id}" in routes
        assert "/api/v1/analytics/students/{learner_id}" in routes


class TestIdentity:
    """Tests for learner identity handling."""

    def test_missing_learner_header(self, client, catalog):
        _, lesson = catalog

        response = client.post("/api/v1/progress/sessions", json={"lesson_id": lesson.id})

        assert response.status_code == 401

    def test_request_id_is_echoed(self, client):
        response = client.get("/api/v1/progress", headers={**LEARNER, "X-Request-ID": "req-42"})

        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == "req-42"

    def test_request_id_is_generated(self, client):
        response = client.get("/api/v1/progress", headers=LEARNER)

        assert response.headers["X-Request-ID"]

    def test_rate_limit_key(self):
        request = MagicMock()
        request.state.learner_id = "learner-1"
        assert get_client_identifier(request) == "learner:learner-1"

        request.state.learner_id = None
        request.headers = {}
        request.client.host = "10.0.0.1"
        assert get_client_identifier(request).startswith("ip:")


class TestProgressEndpoints:
    """Tests for the lesson player endpoints."""

    def test_lesson_lifecycle(self, client, repository, catalog):
        course, lesson = catalog

        response = client.post(
            "/api/v1/progress/sessions", json={"lesson_id": lesson.id}, headers=LEARNER
        )
        assert response.status_code == 201
        started = response.json()
        assert started["attempts"] == 1

        response = client.put(
            f"/api/v1/progress/lessons/{lesson.id}",
            json={"current_time": 30, "duration": 300, "percent_watched": 10},
            headers=LEARNER,
        )
        assert response.status_code == 200
        assert response.json()["time_spent"] == 30

        response = client.post(
            f"/api/v1/progress/sessions/{started['session_id']}/interactions",
            json={"type": "PAUSE", "position": 30},
            headers=LEARNER,
        )
        assert response.status_code == 202
        assert response.json() == {"accepted": True}

        response = client.put(
            f"/api/v1/progress/lessons/{lesson.id}",
            json={"current_time": 270, "duration": 300, "percent_watched": 90},
            headers=LEARNER,
        )
        body = response.json()
        assert body["time_spent"] == 270
        assert body["completed"] is True
        assert body["completed_at"] is not None

        response = client.post(
            f"/api/v1/progress/sessions/{started['session_id']}/end", headers=LEARNER
        )
        assert response.status_code == 200
        assert response.json()["completed"] is True

        response = client.get(
            "/api/v1/progress/summary", params={"course_id": course.id}, headers=LEARNER
        )
        summary = response.json()
        assert summary["total_lessons"] == 1
        assert summary["completion_rate"] == 100
        assert summary["current_streak"] == 1
        assert summary["total_sessions"] == 1

        response = client.get("/api/v1/analytics/lessons/" + lesson.id, headers=LEARNER)
        metrics = response.json()
        assert metrics["completion_rate"] == 100
        assert metrics["average_attempts"] == 1

    def test_start_unknown_lesson(self, client):
        response = client.post(
            "/api/v1/progress/sessions", json={"lesson_id": "missing"}, headers=LEARNER
        )

        assert response.status_code == 404

    def test_update_before_start(self, client, catalog):
        _, lesson = catalog

        response = client.put(
            f"/api/v1/progress/lessons/{lesson.id}",
            json={"current_time": 10},
            headers=LEARNER,
        )

        assert response.status_code == 404

    def test_update_validation(self, client, catalog):
        _, lesson = catalog

        response = client.put(
            f"/api/v1/progress/lessons/{lesson.id}",
            json={"current_time": -5, "percent_watched": 140},
            headers=LEARNER,
        )

        assert response.status_code == 422

    def test_end_session_of_other_learner(self, client, catalog):
        _, lesson = catalog
        started = client.post(
            "/api/v1/progress/sessions", json={"lesson_id": lesson.id}, headers=LEARNER
        ).json()

        response = client.post(
            f"/api/v1/progress/sessions/{started['session_id']}/end",
            headers={"X-User-ID": "learner-2"},
        )

        assert response.status_code == 404

    def test_interaction_on_session_of_other_learner(self, client, repository, catalog):
        _, lesson = catalog
        started = client.post(
            "/api/v1/progress/sessions", json={"lesson_id": lesson.id}, headers=LEARNER
        ).json()

        response = client.post(
            f"/api/v1/progress/sessions/{started['session_id']}/interactions",
            json={"type": "SEEK", "position": 40},
            headers={"X-User-ID": "learner-2"},
        )

        assert response.status_code == 202
        assert response.json() == {"accepted": False}
        assert repository.interactions == []

    def test_interaction_on_unknown_session_is_not_an_error(self, client):
        response = client.post(
            "/api/v1/progress/sessions/missing/interactions",
            json={"type": "SEEK", "position": 12},
            headers=LEARNER,
        )

        assert response.status_code == 202
        assert response.json() == {"accepted": False}

    def test_invalid_interaction_type(self, client):
        response = client.post(
            "/api/v1/progress/sessions/any/interactions",
            json={"type": "DANCE"},
            headers=LEARNER,
        )

        assert response.status_code == 422

    def test_list_progress(self, client, catalog):
        course, lesson = catalog
        client.post("/api/v1/progress/sessions", json={"lesson_id": lesson.id}, headers=LEARNER)

        response = client.get("/api/v1/progress", headers=LEARNER)

        entries = response.json()
        assert len(entries) == 1
        assert entries[0]["lesson_title"] == "HTTP"
        assert entries[0]["course_id"] == course.id
        assert entries[0]["latest_session"]["ended_at"] is None

    def test_summary_unknown_course(self, client):
        response = client.get(
            "/api/v1/progress/summary", params={"course_id": "missing"}, headers=LEARNER
        )

        assert response.status_code == 404

    def test_store_failure_maps_to_503(self, client, repository, catalog):
        _, lesson = catalog
        repository.get_lesson = AsyncMock(side_effect=StoreFailure("connection lost"))

        response = client.post(
            "/api/v1/progress/sessions", json={"lesson_id": lesson.id}, headers=LEARNER
        )

        assert response.status_code == 503


class TestAnalyticsEndpoints:
    """Tests for analytics endpoints."""

    def test_course_metrics(self, client, repository, catalog, fixed_now):
        course, lesson = catalog
        repository.enroll("learner-1", course.id, fixed_now)

        response = client.get(f"/api/v1/analytics/courses/{course.id}", headers=LEARNER)

        assert response.status_code == 200
        body = response.json()
        assert body["course_title"] == "Web APIs"
        assert body["total_students"] == 1
        assert body["completion_rate"] == 0
        assert body["performance_distribution"] == {
            "high_performers": 0,
            "average_performers": 0,
            "struggling_students": 0,
        }

    def test_unknown_course(self, client):
        response = client.get("/api/v1/analytics/courses/missing", headers=LEARNER)

        assert response.status_code == 404

    def test_course_learners(self, client, catalog):
        course, lesson = catalog
        client.post("/api/v1/progress/sessions", json={"lesson_id": lesson.id}, headers=LEARNER)

        response = client.get(f"/api/v1/analytics/courses/{course.id}/learners", headers=LEARNER)

        assert [r["learner_id"] for r in response.json()] == ["learner-1"]

    def test_unknown_lesson(self, client):
        response = client.get("/api/v1/analytics/lessons/missing", headers=LEARNER)

        assert response.status_code == 404

    def test_student_metrics(self, client, catalog):
        course, lesson = catalog
        client.post("/api/v1/progress/sessions", json={"lesson_id": lesson.id}, headers=LEARNER)

        response = client.get(
            "/api/v1/analytics/students/learner-1",
            params={"course_id": course.id},
            headers=LEARNER,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["progress_summary"]["total_lessons"] == 1
        assert body["streak_data"]["current_streak"] == 1
        assert body["interaction_patterns"]["preferred_lesson_types"] == ["video"]

    def test_unknown_student(self, client):
        response = client.get("/api/v1/analytics/students/nobody", headers=LEARNER)

        assert response.status_code == 404

    def test_requires_learner(self, client):
        response = client.get("/api/v1/analytics/lessons/anything")

        assert response.status_code == 401


class TestHealth:
    """Tests for health endpoints."""

    @patch("src.api.routes.health.check_database_connection", new_callable=AsyncMock)
    def test_health_reports_database(self, mock_check, client):
        mock_check.return_value = True

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["database"]["status"] == "healthy"

    @patch("src.api.routes.health.check_database_connection", new_callable=AsyncMock)
    def test_degraded_when_database_down(self, mock_check, client):
        mock_check.return_value = False

        assert client.get("/health").json()["status"] == "degraded"
        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["ready"] is False
