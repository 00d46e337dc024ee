# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Infrastructure layer for external service integrations.

This package contains:
- Database connections (PostgreSQL via SQLAlchemy async)
- ORM models and Alembic migrations
"""
