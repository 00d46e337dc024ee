# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer for the learning progress service.

Domains:
    progress: Session lifecycle, Progress state, summaries and streaks.
    analytics: Course, lesson and student analytics.
"""
