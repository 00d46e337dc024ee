# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Zero-safe arithmetic helpers for analytics rollups."""

from typing import Iterable


def safe_divide(numerator: float, denominator: float) -> float:
    """Divide, returning 0.0 when the denominator is zero.

    Args:
        numerator: Dividend.
        denominator: Divisor.

    Returns:
        numerator / denominator, or 0.0 for a zero denominator.
    """
    if not denominator:
        return 0.0
    return numerator / denominator


def percentage(part: float, whole: float) -> float:
    """Percentage of part in whole, 0.0 for an empty whole."""
    return safe_divide(part, whole) * 100


def mean(values: Iterable[float]) -> float:
    """Arithmetic mean, 0.0 for an empty sequence."""
    items = list(values)
    return safe_divide(sum(items), len(items))
