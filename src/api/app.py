# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI Application Factory.

This module provides the main application factory for the learning
progress API.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from src.api.dependencies import close_db, init_db
from src.api.middleware.identity import LearnerIdentityMiddleware
from src.api.middleware.rate_limit import limiter, rate_limit_exceeded_handler
from src.api.routes import health
from src.api.v1 import router as v1_router
from src.core.config import get_settings
from src.domains.progress.exceptions import StoreFailure
from src.infrastructure.database.connection import DatabaseError
from src.utils.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown events for the application.
    Initializes and cleans up the database connection pool.

    Args:
        app: The FastAPI application instance.

    Yields:
        None during application runtime.
    """
    settings = get_settings()
    setup_logging(settings)
    logger.info(
        "Starting learning progress API: environment=%s, debug=%s",
        settings.environment,
        settings.debug,
    )

    # =========================================================================
    # Startup
    # =========================================================================

    try:
        await init_db()
        logger.info("Database connection initialized")
    except DatabaseError as e:
        logger.warning("Failed to initialize database connection: %s", str(e))

    yield

    # =========================================================================
    # Shutdown
    # =========================================================================

    try:
        await close_db()
        logger.info("Database connection closed")
    except DatabaseError as e:
        logger.warning("Error closing database connection: %s", str(e))

    logger.info("Shutting down learning progress API")


async def store_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map persistence failures to 503 Service Unavailable.

    Args:
        request: HTTP request.
        exc: StoreFailure or DatabaseError.

    Returns:
        JSON response asking the client to retry later.
    """
    logger.error("Store unavailable on %s: %s", request.url.path, str(exc))
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Progress store unavailable. Please try again later."},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    This factory function creates a new FastAPI instance with all
    middleware, routes, and configurations applied.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Learning Progress API",
        description="Learning progress tracking and analytics engine",
        version="1.0.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
        redirect_slashes=False,
    )

    # =========================================================================
    # State
    # =========================================================================

    app.state.limiter = limiter

    # =========================================================================
    # Exception handlers
    # =========================================================================

    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(StoreFailure, store_unavailable_handler)
    app.add_exception_handler(DatabaseError, store_unavailable_handler)

    # =========================================================================
    # Middleware (order matters - last added is first executed)
    # =========================================================================

    # Rate limiting keys on request.state.learner_id set by the identity middleware
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(LearnerIdentityMiddleware)

    # CORS middleware (should be last to execute first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins_list,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=settings.cors.allow_methods,
        allow_headers=settings.cors.allow_headers,
    )

    # =========================================================================
    # Routes
    # =========================================================================

    app.include_router(health.router, tags=["Health"])
    app.include_router(v1_router)

    return app
