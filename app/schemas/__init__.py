"""
Schemas Module
==============

This module provides Pydantic models for request/response validation.
Schemas ensure data integrity and provide automatic validation.
"""

from app.schemas.schedules import MAX_SCHEDULES_PER_IMPORT, ImportResult, SchedulePeriodRequest

__all__ = [
    "SchedulePeriodRequest",
    "ImportResult",
    "MAX_SCHEDULES_PER_IMPORT",
]
