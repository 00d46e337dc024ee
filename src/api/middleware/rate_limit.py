# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Rate limiting middleware using slowapi.

This module provides rate limiting to protect the progress endpoints from
runaway players and retry loops. Limits are applied per learner when the
X-User-ID header is present, otherwise per IP address.

Example:
    >>> app.state.limiter = limiter
    >>> app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    >>> app.add_middleware(SlowAPIMiddleware)
"""

import logging

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from src.core.config import get_settings

logger = logging.getLogger(__name__)


def get_client_identifier(request: Request) -> str:
    """Get a unique identifier for the client.

    Uses the learner id if the gateway supplied one, otherwise the IP address.

    Args:
        request: HTTP request.

    Returns:
        Client identifier string.
    """
    learner_id = getattr(request.state, "learner_id", None)
    if learner_id:
        return f"learner:{learner_id}"
    return f"ip:{get_remote_address(request)}"


# Create the limiter instance
settings = get_settings()
limiter = Limiter(
    key_func=get_client_identifier,
    default_limits=[f"{settings.rate_limit.requests_per_minute}/minute"],
    storage_uri=settings.rate_limit.storage_uri,
    enabled=settings.rate_limit.enabled,
)


async def rate_limit_exceeded_handler(
    request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Returns a 429 Too Many Requests response with retry information.

    Args:
        request: HTTP request.
        exc: Rate limit exceeded exception.

    Returns:
        JSON response with error details.
    """
    logger.warning(
        "Rate limit exceeded: %s for %s",
        exc.detail,
        get_client_identifier(request),
    )

    return Response(
        content='{"detail": "Too many requests. Please try again later."}',
        status_code=429,
        media_type="application/json",
        headers={
            "Retry-After": "60",
            "X-RateLimit-Limit": str(settings.rate_limit.requests_per_minute),
        },
    )
