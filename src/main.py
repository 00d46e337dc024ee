# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Server entry point.

Runs the API under uvicorn using the API_* settings.
"""

import uvicorn

from src.core.config import get_settings


def run() -> None:
    """Start the uvicorn server."""
    settings = get_settings()
    uvicorn.run(
        "src.api.app:create_app",
        factory=True,
        host=settings.api.host,
        port=settings.api.port,
        workers=settings.api.workers,
        reload=settings.api.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
