"""
Schedule Schemas
================

Pydantic models for backup-reserve schedule period requests, exports and
import results.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.domain.schedules.triggers import parse_time, resolve_timezone
from app.enums import ReconciliationMode, ScheduleKind

MAX_SCHEDULES_PER_IMPORT = 100


class SchedulePeriodRequest(BaseModel):
    """Schema for creating, updating or importing a schedule period."""

    name: str = Field(..., min_length=1, max_length=100, description="Schedule name")
    description: Optional[str] = Field(default=None, max_length=255)
    site_id: Optional[str] = Field(default=None, description="Energy site; resolved from the account when omitted")
    days_of_week: List[int] = Field(..., min_length=1, description="Active days (0=Monday, 6=Sunday)")
    start_time: str = Field(..., pattern=r"^\d{2}:\d{2}$", description="On-peak start HH:MM")
    end_time: str = Field(..., pattern=r"^\d{2}:\d{2}$", description="On-peak end (off-peak start) HH:MM")
    timezone: str = Field(..., min_length=1, description="IANA timezone name")
    on_peak_backup_percent: int = Field(..., ge=5, le=80, description="Reserve during on-peak")
    off_peak_backup_percent: int = Field(..., ge=5, le=80, description="Reserve during off-peak")
    enabled: bool = Field(default=True, description="Whether schedule is active")
    reconciliation_mode: Optional[ReconciliationMode] = Field(default=None, description="Drift correction mode")
    schedule_kind: Optional[ScheduleKind] = Field(default=None, description="Basic or weather-aware")
    weather_scaling_factor: Optional[int] = Field(default=None, ge=0, le=100)

    @field_validator("reconciliation_mode", mode="before")
    @classmethod
    def normalize_mode(cls, v):
        if isinstance(v, str):
            return ReconciliationMode(v.lower())
        return v

    @field_validator("schedule_kind", mode="before")
    @classmethod
    def normalize_kind(cls, v):
        if isinstance(v, str):
            return ScheduleKind(v.lower())
        return v

    @field_validator("days_of_week")
    @classmethod
    def validate_days(cls, v):
        if not all(0 <= d <= 6 for d in v):
            raise ValueError("Days must be 0-6 (Monday-Sunday)")
        return sorted(set(v))

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v):
        parse_time(v)
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v):
        resolve_timezone(v)
        return v

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Weekday Peak",
                "days_of_week": [0, 1, 2, 3, 4],
                "start_time": "07:00",
                "end_time": "21:00",
                "timezone": "America/Los_Angeles",
                "on_peak_backup_percent": 20,
                "off_peak_backup_percent": 80,
                "enabled": True,
                "reconciliation_mode": "continuous",
                "schedule_kind": "basic",
            }
        }
    )


class ImportResult(BaseModel):
    """Outcome of a schedule import."""

    imported_count: int = Field(default=0, ge=0)
    skipped_duplicate_names: int = Field(default=0, ge=0)
    skipped_duplicate_content: int = Field(default=0, ge=0)
