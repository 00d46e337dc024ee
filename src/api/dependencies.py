# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

This module provides dependency functions for FastAPI endpoints.
Dependencies are used to:
- Get database sessions
- Get the learner identity supplied by the gateway
- Get service instances wired to one request-scoped repository

Example:
    @router.get("/progress/summary")
    async def get_summary(
        learner_id: str = Depends(require_learner),
        service: ProgressService = Depends(get_progress_service),
    ):
        ...
"""

import logging
from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import get_settings
from src.domains.analytics import AnalyticsService
from src.domains.progress import (
    ProgressRepository,
    ProgressService,
    SQLAlchemyProgressRepository,
)
from src.infrastructure.database.connection import (
    close_database,
    get_session,
    init_database,
)

logger = logging.getLogger(__name__)


async def init_db() -> None:
    """Initialize the database connection."""
    await init_database(get_settings())


async def close_db() -> None:
    """Close the database connection."""
    await close_database()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session.

    The session commits on success and rolls back on any exception.

    Yields:
        AsyncSession for the progress database.
    """
    async with get_session() as session:
        yield session


def get_progress_repository(
    db: AsyncSession = Depends(get_db),
) -> ProgressRepository:
    """Get the persistence handle for this request."""
    return SQLAlchemyProgressRepository(db)


def get_progress_service(
    repository: ProgressRepository = Depends(get_progress_repository),
) -> ProgressService:
    """Get a progress service bound to the request repository."""
    return ProgressService(repository, get_settings().progress)


def get_analytics_service(
    repository: ProgressRepository = Depends(get_progress_repository),
) -> AnalyticsService:
    """Get an analytics service bound to the request repository."""
    return AnalyticsService(repository, get_settings().progress)


def get_optional_learner(request: Request) -> str | None:
    """Get the learner id forwarded by the gateway, if any.

    Args:
        request: HTTP request.

    Returns:
        Learner id or None.
    """
    return getattr(request.state, "learner_id", None)


def require_learner(request: Request) -> str:
    """Require an authenticated learner.

    Args:
        request: HTTP request.

    Returns:
        Learner id.

    Raises:
        HTTPException: If the gateway did not supply a learner id.
    """
    learner_id = get_optional_learner(request)
    if not learner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing learner identity",
        )
    return learner_id
