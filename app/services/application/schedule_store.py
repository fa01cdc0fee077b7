"""
Schedule Store
==============

Group-level CRUD over backup-reserve schedule events.

Features:
- Atomic create/update/delete of the Permanent BeginDischarge/BeginCharge pair
- Merged period view with weather override percentages
- Field-by-field audit diffs
- Portable export and deduplicating, all-or-nothing import
- Paginated execution history and audit queries

Author: Sebastian Gomez
Date: January 2026
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Optional

from pydantic import ValidationError as PydanticValidationError

from app.domain.exceptions import AccessDeniedError, NotFoundError, ValidationError
from app.domain.schedules.history import AuditRecord
from app.domain.schedules.period import SchedulePeriod, group_periods, merge_group
from app.domain.schedules.schedule_event import DEFAULT_WEATHER_SCALING_FACTOR, ScheduleEvent, new_id
from app.domain.schedules.triggers import format_days
from app.enums.schedules import AuditAction, EventKind, ExecutionStatus, ReconciliationMode, ScheduleKind
from app.schemas.schedules import MAX_SCHEDULES_PER_IMPORT, ImportResult, SchedulePeriodRequest
from app.utils.time import Clock, SystemClock
from infrastructure.database.pagination import PaginatedResponse, PaginationParams

if TYPE_CHECKING:
    from app.domain.schedules.repository import ScheduleEventRepository, ScheduleHistoryRepository
    from app.services.protocols import DeviceControl, UserProfileStore

logger = logging.getLogger(__name__)


def _pct(value: int) -> str:
    return f"{value}%"


@dataclass
class ScheduleStore:
    """
    High-level API for managing schedule periods.

    All mutations of one group run inside a single repository transaction
    together with their audit event.
    """

    events: "ScheduleEventRepository"
    history: "ScheduleHistoryRepository"
    device: Optional["DeviceControl"] = None
    profiles: Optional["UserProfileStore"] = None
    clock: Clock = field(default_factory=SystemClock)

    # --- Queries -----------------------------------------------------------------
    def list_by_user(self, user_id: str) -> list[SchedulePeriod]:
        """Merged periods owned by ``user_id``, newest first."""
        return group_periods(self.events.list_by_user(user_id))

    def get_by_group_id(self, group_id: str, user_id: str) -> SchedulePeriod:
        period = merge_group(self._load_owned_group(group_id, user_id))
        if period is None:
            raise NotFoundError(f"Schedule {group_id} is malformed", detail={"group_id": group_id})
        return period

    def list_user_ids(self) -> list[str]:
        return self.events.list_user_ids()

    def is_forced_charge_active(self, user_id: str) -> bool:
        if self.profiles is None:
            return False
        profile = self.profiles.get_profile(user_id)
        return bool(profile and profile.forced_charging_active)

    # --- Mutations ---------------------------------------------------------------
    def create_period(self, request: SchedulePeriodRequest | dict[str, Any], user_id: str) -> SchedulePeriod:
        req = self._validate(request)
        site_id = req.site_id or self._resolve_site(user_id)

        with self.events.transaction():
            group_id = self._insert_pair(req, user_id, site_id)
            self._record_created(group_id, user_id, req, "New schedule period created.")

        logger.info("Created schedule period %s (%s) for user %s", group_id, req.name, user_id)
        return self.get_by_group_id(group_id, user_id)

    def update_period(
        self, group_id: str, request: SchedulePeriodRequest | dict[str, Any], user_id: str
    ) -> SchedulePeriod:
        req = self._validate(request)
        period = merge_group(self._load_owned_group(group_id, user_id))
        if period is None:
            raise NotFoundError(f"Schedule {group_id} is missing a permanent event", detail={"group_id": group_id})

        discharge, charge = period.begin_discharge, period.begin_charge
        mode = req.reconciliation_mode or ReconciliationMode.CONTINUOUS
        kind = req.schedule_kind or discharge.schedule_kind
        scaling = req.weather_scaling_factor
        if scaling is None:
            scaling = discharge.weather_scaling_factor

        for event, at, percent in (
            (discharge, req.start_time, req.on_peak_backup_percent),
            (charge, req.end_time, req.off_peak_backup_percent),
        ):
            event.name = req.name
            event.description = req.description
            event.site_id = req.site_id or event.site_id
            event.days_of_week = list(req.days_of_week)
            event.timezone = req.timezone
            event.scheduled_time = at
            event.backup_percent = percent
            event.reconciliation_mode = mode
            event.schedule_kind = kind
            event.weather_scaling_factor = scaling
            event.updated_at = self.clock.now()
            event.refresh_trigger()

        changes = self._diff(period, discharge, charge)
        details: dict[str, Any]
        if changes:
            details = {"changes": changes}
        else:
            details = {"info": "Schedule updated, but no values were changed."}

        with self.events.transaction():
            self.events.update_many([discharge, charge])
            self._record_audit(group_id, user_id, req.name, AuditAction.UPDATED, details)

        logger.info("Updated schedule period %s with %d change(s)", group_id, len(changes))
        return self.get_by_group_id(group_id, user_id)

    def delete_period(self, group_id: str, user_id: str) -> None:
        group = self._load_owned_group(group_id, user_id)
        name = next((e.name for e in group if e.is_permanent), group[0].name)

        with self.events.transaction():
            self.events.delete_group(group_id)
            self._record_audit(
                group_id,
                user_id,
                name,
                AuditAction.DELETED,
                {"info": "Schedule period was deleted.", "name": name},
            )
        logger.info("Deleted schedule period %s (%s)", group_id, name)

    def set_enabled(self, group_id: str, enabled: bool, user_id: str) -> SchedulePeriod:
        """
        Enable or disable a whole group.

        Disabling also disables any temporary override; enabling only
        re-enables the permanent pair so a fired override stays retired.
        """
        group = self._load_owned_group(group_id, user_id)
        period = merge_group(group)
        if period is None:
            raise NotFoundError(f"Schedule {group_id} is malformed", detail={"group_id": group_id})

        before = "enabled" if period.enabled else "disabled"
        after = "enabled" if enabled else "disabled"

        with self.events.transaction():
            if enabled:
                for event in (period.begin_discharge, period.begin_charge):
                    self.events.set_enabled(event.id, True)
            else:
                self.events.set_group_enabled(group_id, False)
            self._record_audit(
                group_id,
                user_id,
                period.name,
                AuditAction.UPDATED,
                {"changes": [{"field": "Status", "from": before, "to": after}]},
            )
        return self.get_by_group_id(group_id, user_id)

    # --- Import / export ---------------------------------------------------------
    def export_for_user(self, user_id: str) -> list[dict[str, Any]]:
        """Configuration-only copies of the user's periods; no user or site ids."""
        exported = []
        for period in self.list_by_user(user_id):
            exported.append(
                {
                    "name": period.name,
                    "description": period.description,
                    "days_of_week": list(period.days_of_week),
                    "start_time": period.start_time,
                    "end_time": period.end_time,
                    "timezone": period.timezone,
                    "on_peak_backup_percent": period.permanent_on_peak_backup_percent,
                    "off_peak_backup_percent": period.permanent_off_peak_backup_percent,
                    "enabled": period.enabled,
                    "reconciliation_mode": period.reconciliation_mode.value,
                    "schedule_kind": period.schedule_kind.value,
                    "weather_scaling_factor": period.weather_scaling_factor,
                }
            )
        return exported

    def import_for_user(self, items: list[dict[str, Any]], user_id: str) -> ImportResult:
        """
        Import exported periods for ``user_id``.

        Items whose name already exists, or whose content matches an existing
        period, are skipped. Every remaining item must validate or nothing is
        imported.

        Raises:
            ValidationError: Not a list of objects, too many items, no energy site, or an invalid new item
        """
        if not isinstance(items, list):
            raise ValidationError("Import must be a list of schedules", detail={"type": type(items).__name__})
        malformed = [
            {"index": index, "type": type(item).__name__}
            for index, item in enumerate(items)
            if not isinstance(item, dict)
        ]
        if malformed:
            raise ValidationError(
                f"{len(malformed)} item(s) in the import are not schedule objects", detail={"items": malformed}
            )
        if len(items) > MAX_SCHEDULES_PER_IMPORT:
            raise ValidationError(
                f"Cannot import more than {MAX_SCHEDULES_PER_IMPORT} schedules at once",
                detail={"count": len(items)},
            )
        site_id = self._resolve_site(user_id)

        existing = self.list_by_user(user_id)
        names = {p.name for p in existing}
        contents = {self._period_content_key(p) for p in existing}

        result = ImportResult()
        fresh: list[dict[str, Any]] = []
        for item in items:
            key = self._item_content_key(item)
            if item.get("name") in names:
                result.skipped_duplicate_names += 1
            elif key is not None and key in contents:
                result.skipped_duplicate_content += 1
            else:
                fresh.append(item)
                names.add(item.get("name"))
                if key is not None:
                    contents.add(key)

        requests: list[SchedulePeriodRequest] = []
        errors: list[dict[str, Any]] = []
        for index, item in enumerate(fresh):
            try:
                requests.append(SchedulePeriodRequest.model_validate(item))
            except PydanticValidationError as exc:
                errors.append({"name": item.get("name"), "index": index, "errors": exc.errors(include_url=False)})
        if errors:
            raise ValidationError(f"{len(errors)} schedule(s) in the import are invalid", detail={"items": errors})

        with self.events.transaction():
            for req in requests:
                group_id = self._insert_pair(req, user_id, site_id)
                self._record_created(group_id, user_id, req, "New schedule period imported.")

        result.imported_count = len(requests)
        logger.info(
            "Imported %d schedule(s) for user %s (skipped %d by name, %d by content)",
            result.imported_count,
            user_id,
            result.skipped_duplicate_names,
            result.skipped_duplicate_content,
        )
        return result

    # --- History -----------------------------------------------------------------
    def get_execution_history(
        self,
        user_id: str,
        statuses: list[ExecutionStatus] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> PaginatedResponse:
        params = self._page(limit, offset)
        records, total = self.history.get_execution_history(user_id, statuses, params.limit, params.offset)
        return PaginatedResponse(
            items=[r.to_dict() for r in records], total=total, limit=params.limit, offset=params.offset
        )

    def get_audit_history(
        self,
        user_id: str,
        actions: list[AuditAction] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> PaginatedResponse:
        params = self._page(limit, offset)
        records, total = self.history.get_audit_history(user_id, actions, params.limit, params.offset)
        return PaginatedResponse(
            items=[r.to_dict() for r in records], total=total, limit=params.limit, offset=params.offset
        )

    # --- Helpers -----------------------------------------------------------------
    @staticmethod
    def _validate(request: SchedulePeriodRequest | dict[str, Any]) -> SchedulePeriodRequest:
        if isinstance(request, SchedulePeriodRequest):
            return request
        try:
            return SchedulePeriodRequest.model_validate(request)
        except PydanticValidationError as exc:
            raise ValidationError(
                "Invalid schedule request", detail={"errors": exc.errors(include_url=False)}
            ) from exc

    @staticmethod
    def _page(limit: int | None, offset: int | None) -> PaginationParams:
        try:
            return PaginationParams.from_request(limit=limit, offset=offset)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

    def _resolve_site(self, user_id: str) -> str:
        if self.device is None:
            raise ValidationError("No energy site available for this account", detail={"user_id": user_id})
        sites = self.device.list_energy_sites(user_id)
        if not sites:
            raise ValidationError("No energy site available for this account", detail={"user_id": user_id})
        return sites[0]

    def _load_owned_group(self, group_id: str, user_id: str) -> list[ScheduleEvent]:
        group = self.events.get_by_group(group_id)
        if not group:
            raise NotFoundError(f"Schedule {group_id} not found", detail={"group_id": group_id})
        if any(e.user_id != user_id for e in group):
            raise AccessDeniedError(
                "Schedule belongs to another user", detail={"group_id": group_id, "user_id": user_id}
            )
        return group

    def _insert_pair(self, req: SchedulePeriodRequest, user_id: str, site_id: str) -> str:
        group_id = new_id()
        now = self.clock.now()
        common = dict(
            group_id=group_id,
            user_id=user_id,
            site_id=site_id,
            name=req.name,
            description=req.description,
            days_of_week=list(req.days_of_week),
            timezone=req.timezone,
            enabled=req.enabled,
            reconciliation_mode=req.reconciliation_mode or ReconciliationMode.CONTINUOUS,
            schedule_kind=req.schedule_kind or ScheduleKind.BASIC,
            weather_scaling_factor=(
                req.weather_scaling_factor
                if req.weather_scaling_factor is not None
                else DEFAULT_WEATHER_SCALING_FACTOR
            ),
            created_at=now,
            updated_at=now,
        )
        self.events.create_many(
            [
                ScheduleEvent(
                    event_kind=EventKind.BEGIN_DISCHARGE,
                    scheduled_time=req.start_time,
                    backup_percent=req.on_peak_backup_percent,
                    **common,
                ),
                ScheduleEvent(
                    event_kind=EventKind.BEGIN_CHARGE,
                    scheduled_time=req.end_time,
                    backup_percent=req.off_peak_backup_percent,
                    **common,
                ),
            ]
        )
        return group_id

    def _record_created(self, group_id: str, user_id: str, req: SchedulePeriodRequest, info: str) -> None:
        self._record_audit(
            group_id,
            user_id,
            req.name,
            AuditAction.CREATED,
            {
                "info": info,
                "on-peak": f"{req.start_time} @{req.on_peak_backup_percent}%",
                "off-peak": f"{req.end_time} @{req.off_peak_backup_percent}%",
                "days": format_days(req.days_of_week),
            },
        )

    def _record_audit(
        self, group_id: str, user_id: str, name: str, action: AuditAction, details: dict[str, Any]
    ) -> None:
        self.history.log_audit(
            AuditRecord(
                group_id=group_id,
                user_id=user_id,
                schedule_name=name,
                action=action,
                timestamp=self.clock.now(),
                details=details,
            )
        )

    @staticmethod
    def _diff(old: SchedulePeriod, discharge: ScheduleEvent, charge: ScheduleEvent) -> list[dict[str, Any]]:
        pairs: Iterable[tuple[str, Any, Any]] = (
            ("Name", old.name, discharge.name),
            ("Description", old.description or "", discharge.description or ""),
            ("Site ID", old.site_id, discharge.site_id),
            ("Days", format_days(old.days_of_week), format_days(discharge.days_of_week)),
            ("Timezone", old.timezone, discharge.timezone),
            ("On-Peak Start Time", old.start_time, discharge.scheduled_time),
            ("Off-Peak Start Time", old.end_time, charge.scheduled_time),
            ("On-Peak Backup", _pct(old.permanent_on_peak_backup_percent), _pct(discharge.backup_percent)),
            ("Off-Peak Backup", _pct(old.permanent_off_peak_backup_percent), _pct(charge.backup_percent)),
            ("Correction Mode", old.reconciliation_mode.value, discharge.reconciliation_mode.value),
        )
        return [{"field": name, "from": before, "to": after} for name, before, after in pairs if before != after]

    @staticmethod
    def _period_content_key(period: SchedulePeriod) -> tuple:
        return (
            tuple(sorted(period.days_of_week)),
            period.start_time,
            period.end_time,
            period.timezone,
            period.permanent_on_peak_backup_percent,
            period.permanent_off_peak_backup_percent,
            period.reconciliation_mode.value,
        )

    @staticmethod
    def _item_content_key(item: dict[str, Any]) -> tuple | None:
        """Comparable content of an import item, or None if it is too malformed to compare."""
        try:
            mode = item.get("reconciliation_mode") or ReconciliationMode.CONTINUOUS.value
            return (
                tuple(sorted(set(int(d) for d in item.get("days_of_week") or []))),
                item.get("start_time"),
                item.get("end_time"),
                item.get("timezone"),
                int(item.get("on_peak_backup_percent")),
                int(item.get("off_peak_backup_percent")),
                str(mode).lower(),
            )
        except (TypeError, ValueError):
            return None
