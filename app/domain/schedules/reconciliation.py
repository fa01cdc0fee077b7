"""
Reconciliation decision.

A pure function over (window, actual, target) so the drift-correction table
can be tested without a job loop, a database or a device.

| Window   | actual vs target | Decision        |
|----------|------------------|-----------------|
| on-peak  | actual > target  | Correct(target) |
| on-peak  | actual < target  | Skip            |
| off-peak | actual < target  | Correct(target) |
| off-peak | actual > target  | Skip            |
| either   | actual == target | AlreadyCorrect  |
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from app.enums.schedules import PeakWindow


@dataclass(frozen=True)
class Correct:
    target: int


@dataclass(frozen=True)
class Skip:
    reason: str


@dataclass(frozen=True)
class AlreadyCorrect:
    pass


Decision = Union[Correct, Skip, AlreadyCorrect]


def decide(window: PeakWindow, actual: int, target: int) -> Decision:
    """Return the action the reconciler should take for one user."""
    if actual == target:
        return AlreadyCorrect()

    if window == PeakWindow.ON_PEAK:
        if actual > target:
            return Correct(target)
        return Skip(
            f"Skipping reconciliation: User has manually set backup reserve lower "
            f"({actual}%) than scheduled ({target}%) during on-peak."
        )

    if actual < target:
        return Correct(target)
    return Skip(
        f"Skipping reconciliation: User has manually set backup reserve higher "
        f"({actual}%) than scheduled ({target}%) during off-peak."
    )
