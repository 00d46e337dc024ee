# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Learner identity and request context middleware.

Authentication happens upstream: the gateway forwards the authenticated
learner id in the X-User-ID header. This middleware copies it to
request.state and binds request-scoped logging context.

Example:
    POST /api/v1/progress/sessions
    X-User-ID: learner-123
"""

import logging
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)

LEARNER_HEADER = "X-User-ID"
REQUEST_ID_HEADER = "X-Request-ID"


class LearnerIdentityMiddleware(BaseHTTPMiddleware):
    """Populates request.state.learner_id and request.state.request_id."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        """Process the request.

        Args:
            request: HTTP request.
            call_next: Next handler in the chain.

        Returns:
            Response with the X-Request-ID header set.
        """
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        learner_id = (request.headers.get(LEARNER_HEADER) or "").strip() or None

        request.state.request_id = request_id
        request.state.learner_id = learner_id

        clear_context()
        bind_context(request_id=request_id, path=request.url.path)
        if learner_id:
            bind_context(learner_id=learner_id)

        try:
            response = await call_next(request)
        finally:
            clear_context()

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
