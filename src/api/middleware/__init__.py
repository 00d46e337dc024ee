# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API middleware components.

This package provides middleware for request processing:
- LearnerIdentityMiddleware: Reads the gateway learner id, binds log context.
- limiter: slowapi rate limiter per learner or client IP.
"""

from src.api.middleware.identity import LearnerIdentityMiddleware
from src.api.middleware.rate_limit import limiter, rate_limit_exceeded_handler

__all__ = [
    "LearnerIdentityMiddleware",
    "limiter",
    "rate_limit_exceeded_handler",
]
