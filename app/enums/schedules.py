"""
Schedule Enums
==============

Enumerations for backup-reserve schedule events, reconciliation policy,
execution history and audit trail.
"""

from enum import Enum


class EventKind(str, Enum):
    """Which half of a schedule period an event represents.

    - BEGIN_DISCHARGE: start of the on-peak window
    - BEGIN_CHARGE: end of the on-peak window (start of off-peak)
    """

    BEGIN_DISCHARGE = "begin_discharge"
    BEGIN_CHARGE = "begin_charge"

    def __str__(self):
        return self.value

    @property
    def description(self) -> str:
        if self is EventKind.BEGIN_DISCHARGE:
            return "start discharging (on-peak)"
        return "start charging (off-peak)"


class ReconciliationMode(str, Enum):
    """Whether a schedule takes part in periodic drift correction."""

    CONTINUOUS = "continuous"
    STARTUP_ONLY = "startup_only"

    def __str__(self):
        return self.value


class ScheduleKind(str, Enum):
    """Basic schedules follow the configured percentages, weather-aware ones may be overridden."""

    BASIC = "basic"
    WEATHER_AWARE = "weather_aware"

    def __str__(self):
        return self.value


class PeakWindow(str, Enum):
    """Side of the daily window a moment falls on."""

    ON_PEAK = "on-peak"
    OFF_PEAK = "off-peak"

    def __str__(self):
        return self.value


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"

    def __str__(self):
        return self.value


class JobType(str, Enum):
    """Job that produced an execution history row."""

    REGULAR_TRIGGER = "regular_trigger"
    CONTINUOUS_RECONCILIATION = "continuous_reconciliation"
    STARTUP_RECONCILIATION = "startup_reconciliation"
    WEATHER_EVALUATION = "weather_evaluation"

    def __str__(self):
        return self.value

    @property
    def display_name(self) -> str:
        return _JOB_TYPE_DISPLAY[self]


_JOB_TYPE_DISPLAY = {
    JobType.REGULAR_TRIGGER: "Scheduled Run",
    JobType.CONTINUOUS_RECONCILIATION: "Continuous Correction",
    JobType.STARTUP_RECONCILIATION: "Startup Correction",
    JobType.WEATHER_EVALUATION: "Weather Evaluation",
}


class AuditAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    WEATHER_UPDATE = "weather_update"

    def __str__(self):
        return self.value
