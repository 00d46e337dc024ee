"""Learning Progress Service.

Tracks per-lesson learner progress from player callbacks and serves
learner summaries and cross-learner course and lesson analytics.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
