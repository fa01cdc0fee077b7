"""Tests for the pure reconciliation decision table."""

import pytest

from app.domain.schedules.reconciliation import AlreadyCorrect, Correct, Skip, decide
from app.enums.schedules import PeakWindow


@pytest.mark.parametrize(
    "window, actual, target, expected",
    [
        (PeakWindow.ON_PEAK, 50, 20, Correct(20)),
        (PeakWindow.OFF_PEAK, 50, 80, Correct(80)),
        (PeakWindow.ON_PEAK, 20, 20, AlreadyCorrect()),
        (PeakWindow.OFF_PEAK, 80, 80, AlreadyCorrect()),
    ],
)
def test_decision_table(window, actual, target, expected):
    assert decide(window, actual, target) == expected


def test_on_peak_manual_lower_reserve_is_respected():
    decision = decide(PeakWindow.ON_PEAK, 10, 20)

    assert isinstance(decision, Skip)
    assert decision.reason == (
        "Skipping reconciliation: User has manually set backup reserve lower (10%) "
        "than scheduled (20%) during on-peak."
    )


def test_off_peak_manual_higher_reserve_is_respected():
    decision = decide(PeakWindow.OFF_PEAK, 95, 80)

    assert isinstance(decision, Skip)
    assert "higher (95%) than scheduled (80%) during off-peak" in decision.reason
