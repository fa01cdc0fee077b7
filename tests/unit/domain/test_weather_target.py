"""Tests for the weather-aware charge target math."""

import pytest

from app.domain.schedules.weather import compute_charge_target, needs_override, solar_shortfall


def test_full_shortfall_is_capped():
    assert compute_charge_target(80, 100, 100) == 90


def test_half_shortfall_half_scaling():
    # 0.5 * 20 * 0.5 = 5
    assert compute_charge_target(80, 50, 50) == 85


def test_adjustment_rounds_half_up():
    # 0.5 * 50 * 0.5 = 12.5 -> 13
    assert compute_charge_target(50, 50, 50) == 63


def test_missing_scaling_means_full_strength():
    assert compute_charge_target(40, 50, None) == 70


@pytest.mark.parametrize("sunshine, shortfall", [(100, 0), (95, 5), (30, 70), (0, 100), (120, 0), (-5, 100)])
def test_shortfall_is_clamped(sunshine, shortfall):
    assert solar_shortfall(sunshine) == shortfall


def test_override_threshold():
    assert not needs_override(0)
    assert not needs_override(5)
    assert needs_override(6)
