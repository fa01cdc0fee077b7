"""
Weather-aware charge target math.

Author: Sebastian Gomez
Date: January 2026
"""

from __future__ import annotations

import math

MAX_CHARGE_TARGET = 90
GOOD_WEATHER_SHORTFALL = 5
RELEASE_PERCENT = 20
START_DELAY_MINUTES = 5
DEFAULT_SCALING = 100


def solar_shortfall(sunshine_percentage: int) -> int:
    """Percentage of expected sun that is missing (0 = clear sky)."""
    return max(0, min(100, 100 - int(sunshine_percentage)))


def needs_override(shortfall: int) -> bool:
    return shortfall > GOOD_WEATHER_SHORTFALL


def compute_charge_target(base_percent: int, shortfall: int, scaling_factor: int | None) -> int:
    """
    Raise the off-peak reserve in proportion to the forecast shortfall.

    ``adjustment = shortfall/100 * (100 - base) * scaling/100``, rounded half
    up and added to ``base``. The result never exceeds MAX_CHARGE_TARGET.

    Examples:
        >>> compute_charge_target(80, 100, 100)
        90
        >>> compute_charge_target(80, 50, 50)
        85
    """
    scaling = DEFAULT_SCALING if scaling_factor is None else scaling_factor
    headroom = 100 - base_percent
    adjustment = (shortfall / 100.0) * headroom * (scaling / 100.0)
    return min(MAX_CHARGE_TARGET, base_percent + int(math.floor(adjustment + 0.5)))
