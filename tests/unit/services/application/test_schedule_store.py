"""
Tests for ScheduleStore group-level CRUD, import/export and history queries.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from app.domain.exceptions import AccessDeniedError, NotFoundError, ValidationError
from app.domain.schedules.history import ExecutionRecord
from app.enums.schedules import AuditAction, EventKind, ExecutionStatus, JobType, ScheduleKind

NOW = datetime(2026, 1, 5, 14, 0, tzinfo=timezone.utc)

# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


def test_create_period_inserts_permanent_pair(store, event_repo, period_request):
    period = store.create_period(period_request(), "u1")

    events = event_repo.get_by_group(period.group_id)
    assert sorted(e.event_kind for e in events) == [EventKind.BEGIN_CHARGE, EventKind.BEGIN_DISCHARGE]
    assert all(e.is_permanent for e in events)
    assert {e.site_id for e in events} == {"site-u1"}
    assert period.start_time == "07:00"
    assert period.end_time == "21:00"
    assert period.on_peak_backup_percent == 20
    assert period.off_peak_backup_percent == 80
    assert period.weather_scaling_factor == 70


def test_create_period_records_audit(store, period_request, mock_audit_logger):
    period = store.create_period(period_request(), "u1")

    page = store.get_audit_history("u1")
    assert page.total == 1
    entry = page.items[0]
    assert entry["action"] == "created"
    assert entry["group_id"] == period.group_id
    assert entry["details"] == {
        "info": "New schedule period created.",
        "on-peak": "07:00 @20%",
        "off-peak": "21:00 @80%",
        "days": "Monday, Tuesday, Wednesday, Thursday, Friday, Saturday, Sunday",
    }
    mock_audit_logger.log_event.assert_called_once()
    assert mock_audit_logger.log_event.call_args.kwargs["action"] == "schedule_created"


def test_create_period_uses_explicit_site(store, period_request):
    period = store.create_period(period_request(site_id="site-explicit"), "u1")
    assert period.site_id == "site-explicit"


def test_create_period_without_site_fails(store, period_request, event_repo):
    with pytest.raises(ValidationError):
        store.create_period(period_request(), "u3")
    assert event_repo.list_by_user("u3") == []


@pytest.mark.parametrize(
    "overrides",
    [
        {"on_peak_backup_percent": 95},
        {"off_peak_backup_percent": 2},
        {"start_time": "25:00"},
        {"days_of_week": []},
        {"timezone": "Mars/Olympus"},
        {"name": ""},
    ],
)
def test_create_period_rejects_invalid_request(store, period_request, overrides):
    with pytest.raises(ValidationError):
        store.create_period(period_request(**overrides), "u1")


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------


def test_update_period_rewrites_both_halves(store, event_repo, period_request):
    period = store.create_period(period_request(), "u1")

    updated = store.update_period(
        period.group_id,
        period_request(start_time="16:00", end_time="20:00", on_peak_backup_percent=10, days_of_week=[0, 1]),
        "u1",
    )

    assert updated.start_time == "16:00"
    assert updated.end_time == "20:00"
    assert updated.on_peak_backup_percent == 10
    triggers = sorted(e.trigger_expression for e in event_repo.get_by_group(period.group_id))
    assert triggers == ["0 16 * * mon,tue", "0 20 * * mon,tue"]


def test_update_period_audit_lists_changes(store, period_request):
    period = store.create_period(period_request(), "u1")
    store.update_period(period.group_id, period_request(name="Evening", off_peak_backup_percent=60), "u1")

    entry = store.get_audit_history("u1", actions=[AuditAction.UPDATED]).items[0]
    assert entry["details"]["changes"] == [
        {"field": "Name", "from": "Daily Peak", "to": "Evening"},
        {"field": "Off-Peak Backup", "from": "80%", "to": "60%"},
    ]


def test_update_period_without_changes(store, period_request):
    period = store.create_period(period_request(), "u1")
    store.update_period(period.group_id, period_request(), "u1")

    entry = store.get_audit_history("u1", actions=[AuditAction.UPDATED]).items[0]
    assert entry["details"] == {"info": "Schedule updated, but no values were changed."}


def test_update_period_keeps_schedule_kind_when_omitted(store, period_request):
    period = store.create_period(period_request(schedule_kind="weather_aware"), "u1")
    updated = store.update_period(period.group_id, period_request(schedule_kind=None), "u1")
    assert updated.schedule_kind is ScheduleKind.WEATHER_AWARE


def test_update_unknown_group(store, period_request):
    with pytest.raises(NotFoundError):
        store.update_period("missing", period_request(), "u1")


# ---------------------------------------------------------------------------
# Ownership, delete and enable
# ---------------------------------------------------------------------------


def test_other_user_cannot_touch_group(store, period_request):
    period = store.create_period(period_request(), "u1")

    with pytest.raises(AccessDeniedError):
        store.get_by_group_id(period.group_id, "u2")
    with pytest.raises(AccessDeniedError):
        store.delete_period(period.group_id, "u2")
    with pytest.raises(AccessDeniedError):
        store.set_enabled(period.group_id, False, "u2")


def test_delete_period_removes_group_and_audits(store, event_repo, seed, period_request):
    period = store.create_period(period_request(), "u1")
    seed.temporary(period.begin_charge, kind=EventKind.BEGIN_CHARGE, percent=85, expires_at=NOW)

    store.delete_period(period.group_id, "u1")

    assert event_repo.get_by_group(period.group_id) == []
    entry = store.get_audit_history("u1", actions=[AuditAction.DELETED]).items[0]
    assert entry["details"] == {"info": "Schedule period was deleted.", "name": "Daily Peak"}
    with pytest.raises(NotFoundError):
        store.get_by_group_id(period.group_id, "u1")


def test_set_enabled_disables_whole_group(store, event_repo, seed, period_request):
    period = store.create_period(period_request(), "u1")
    temp = seed.temporary(period.begin_charge, kind=EventKind.BEGIN_CHARGE, percent=85, expires_at=NOW)

    disabled = store.set_enabled(period.group_id, False, "u1")
    assert disabled.enabled is False
    assert all(not e.enabled for e in event_repo.get_by_group(period.group_id))

    enabled = store.set_enabled(period.group_id, True, "u1")
    assert enabled.enabled is True
    by_id = {e.id: e for e in event_repo.get_by_group(period.group_id)}
    assert by_id[temp.id].enabled is False

    entry = store.get_audit_history("u1", actions=[AuditAction.UPDATED]).items[0]
    assert entry["details"]["changes"] == [{"field": "Status", "from": "disabled", "to": "enabled"}]


def test_list_by_user_is_scoped_and_newest_first(store, seed):
    seed.pair("u1", name="Old", created_at=NOW.replace(day=1))
    seed.pair("u1", name="New")
    seed.pair("u2", name="Other")

    assert [p.name for p in store.list_by_user("u1")] == ["New", "Old"]
    assert store.list_user_ids() == ["u1", "u2"]


def test_is_forced_charge_active(store, seed):
    seed.profile("u1", forced=True)
    assert store.is_forced_charge_active("u1") is True
    assert store.is_forced_charge_active("u2") is False


# ---------------------------------------------------------------------------
# Import / export
# ---------------------------------------------------------------------------


def test_export_strips_identity(store, period_request):
    store.create_period(period_request(), "u1")

    exported = store.export_for_user("u1")

    assert len(exported) == 1
    assert "user_id" not in exported[0]
    assert "site_id" not in exported[0]
    assert "group_id" not in exported[0]
    assert exported[0]["on_peak_backup_percent"] == 20


def test_export_import_into_another_user(store, period_request):
    store.create_period(period_request(), "u1")
    store.create_period(period_request(name="Weekend", days_of_week=[5, 6], start_time="10:00"), "u1")

    result = store.import_for_user(store.export_for_user("u1"), "u2")

    assert result.imported_count == 2
    periods = store.list_by_user("u2")
    assert {p.name for p in periods} == {"Daily Peak", "Weekend"}
    assert {p.site_id for p in periods} == {"site-u2"}
    imported = store.get_audit_history("u2").items
    assert {e["details"]["info"] for e in imported} == {"New schedule period imported."}


def test_import_skips_duplicates(store, period_request):
    store.create_period(period_request(), "u1")
    same_name = period_request(start_time="08:00")
    same_content = period_request(name="Renamed copy")
    fresh = period_request(name="Fresh", start_time="09:00")

    result = store.import_for_user([same_name, same_content, fresh], "u1")

    assert result.imported_count == 1
    assert result.skipped_duplicate_names == 1
    assert result.skipped_duplicate_content == 1


def test_import_is_all_or_nothing(store, period_request):
    items = [period_request(name="Good"), period_request(name="Bad", on_peak_backup_percent=99)]

    with pytest.raises(ValidationError) as exc:
        store.import_for_user(items, "u1")

    assert exc.value.detail["items"][0]["name"] == "Bad"
    assert store.list_by_user("u1") == []


@pytest.mark.parametrize("bad_item", [["Daily Peak"], "Daily Peak", 42, None])
def test_import_rejects_non_object_items(store, period_request, bad_item):
    items = [period_request(name="Good"), bad_item]

    with pytest.raises(ValidationError) as exc:
        store.import_for_user(items, "u1")

    assert exc.value.detail["items"] == [{"index": 1, "type": type(bad_item).__name__}]
    assert store.list_by_user("u1") == []


def test_import_rejects_non_list_payload(store, period_request):
    with pytest.raises(ValidationError):
        store.import_for_user(period_request(), "u1")


def test_import_rejects_oversized_batch(store, period_request):
    items = [period_request(name=f"Schedule {i}") for i in range(101)]
    with pytest.raises(ValidationError):
        store.import_for_user(items, "u1")


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


def _log(history_repo, event, status, details="done"):
    history_repo.log_execution(
        ExecutionRecord.for_event(
            event, execution_time=NOW, status=status, job_type=JobType.REGULAR_TRIGGER, details=details
        )
    )


def test_execution_history_filters_and_paginates(store, seed, history_repo):
    discharge, _ = seed.pair("u1")
    other, _ = seed.pair("u2")
    for _ in range(3):
        _log(history_repo, discharge, ExecutionStatus.SUCCESS)
    _log(history_repo, discharge, ExecutionStatus.FAILURE)
    _log(history_repo, other, ExecutionStatus.SUCCESS)

    page = store.get_execution_history("u1", limit=2, offset=0)
    assert page.total == 4
    assert len(page.items) == 2
    assert page.has_next

    failures = store.get_execution_history("u1", statuses=[ExecutionStatus.FAILURE])
    assert failures.total == 1
    assert failures.items[0]["status"] == "failure"
    assert failures.items[0]["trigger_description"] == "At 07:00, only on Monday, Tuesday, Wednesday, Thursday, Friday, Saturday and Sunday"


def test_history_rejects_bad_page(store):
    with pytest.raises(ValidationError):
        store.get_execution_history("u1", limit=0)
