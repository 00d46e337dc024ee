# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database migrations package.

Alembic environment and revisions for the learning progress database.
Run from the repository root:

    alembic upgrade head
"""
