"""
Tests for the weather-aware planner.

The weather-aware pair used here runs on-peak 17:00-07:00 UTC, so the
pinned clock (Monday 14:00 UTC) sits in its off-peak window.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from app.enums.schedules import AuditAction, EventKind, ExecutionStatus, JobType, ScheduleKind
from app.workers.weather_planner import (
    START_CHARGE_DESCRIPTION,
    STOP_CHARGE_DESCRIPTION,
    WeatherAwarePlanner,
    next_local_occurrence,
)
from infrastructure.database.repositories.job_leases import LeaseManager

NOW = datetime(2026, 1, 5, 14, 0, tzinfo=timezone.utc)


def _weather_pair(seed, user_id="u1", **overrides):
    fields = dict(start_time="17:00", end_time="07:00", schedule_kind=ScheduleKind.WEATHER_AWARE)
    fields.update(overrides)
    return seed.pair(user_id, **fields)


def _temporaries(event_repo, group_id):
    return [e for e in event_repo.get_by_group(group_id) if e.is_temporary]


def _audits(history_repo, user_id):
    records, _ = history_repo.get_audit_history(user_id)
    return records


def _executions(history_repo, user_id):
    records, _ = history_repo.get_execution_history(user_id)
    return records


# ==================== Injection ====================


def test_shortfall_injects_temporary_pair(planner, seed, forecast, event_repo, profile_repo, device):
    discharge, charge = _weather_pair(seed)
    seed.profile("u1")
    forecast.sunshine["u1"] = 50
    device.reserves[("u1", "site-u1")] = 80

    outcome = planner.plan_user("u1")

    assert outcome.action == "override_created"
    assert outcome.shortfall == 50
    assert outcome.base_target == 80
    # 0.5 * (100 - 80) * 0.7 = 7
    assert outcome.target == 87

    temps = {e.event_kind: e for e in _temporaries(event_repo, charge.group_id)}
    start, stop = temps[EventKind.BEGIN_CHARGE], temps[EventKind.BEGIN_DISCHARGE]
    assert start.name == "Temporary Start Charge for Daily Peak"
    assert start.description == START_CHARGE_DESCRIPTION
    assert start.backup_percent == 87
    assert start.trigger_expression == "5 14 5 1 *"
    assert stop.name == "Temporary Stop Charge for Daily Peak"
    assert stop.description == STOP_CHARGE_DESCRIPTION
    assert stop.backup_percent == 20
    assert stop.trigger_expression == "0 17 5 1 *"
    expected_expiry = datetime(2026, 1, 5, 17, 0, tzinfo=timezone.utc)
    assert start.expires_at == expected_expiry
    assert stop.expires_at == expected_expiry

    assert profile_repo.get_profile("u1").forced_charging_active is True
    # Immediate reconcile applies the new off-peak target
    assert device.reserves[("u1", "site-u1")] == 87


def test_injection_records_note_audit_and_history(planner, seed, forecast, event_repo, history_repo, device):
    discharge, charge = _weather_pair(seed)
    seed.profile("u1")
    forecast.sunshine["u1"] = 50
    device.reserves[("u1", "site-u1")] = 80

    planner.plan_user("u1")

    note = (
        "Solar shortfall of 50% detected. Adjusting charge target from 80% to 87%. "
        "Forecast reason: Overcast all day"
    )
    stored = {e.id: e for e in event_repo.get_by_group(charge.group_id)}
    assert stored[discharge.id].last_evaluation_note == note
    assert stored[charge.id].last_evaluation_note == note

    audit = _audits(history_repo, "u1")[0]
    assert audit.action == AuditAction.WEATHER_UPDATE
    assert audit.details["action_taken"] is True
    assert audit.details["target"] == 87

    weather_rows = [r for r in _executions(history_repo, "u1") if r.job_type == JobType.WEATHER_EVALUATION]
    assert len(weather_rows) == 1
    assert weather_rows[0].status == ExecutionStatus.SUCCESS
    assert weather_rows[0].schedule_id == charge.id


def test_target_is_capped(planner, seed, forecast, device):
    _weather_pair(seed, weather_scaling_factor=100)
    seed.profile("u1")
    forecast.sunshine["u1"] = 0
    device.reserves[("u1", "site-u1")] = 80

    assert planner.plan_user("u1").target == 90


# ==================== No action ====================


def test_good_weather_records_note_without_override(planner, seed, forecast, event_repo, history_repo):
    _, charge = _weather_pair(seed)
    seed.profile("u1")
    forecast.sunshine["u1"] = 96

    outcome = planner.plan_user("u1")

    assert outcome.action == "good_weather"
    assert _temporaries(event_repo, charge.group_id) == []
    assert outcome.note == "Good solar potential detected. Reason: Overcast all day"
    audit = _audits(history_repo, "u1")[0]
    assert audit.details["action_taken"] is False
    assert _executions(history_repo, "u1")[0].status == ExecutionStatus.SKIPPED


def test_on_peak_skips_without_forecast(planner, seed, forecast, history_repo):
    _weather_pair(seed, start_time="07:00", end_time="21:00")
    seed.profile("u1")

    assert planner.plan_user("u1").action == "skipped_on_peak"
    assert forecast.calls == []
    assert _audits(history_repo, "u1") == []


def test_missing_location_skips_without_forecast(planner, seed, forecast, history_repo):
    _weather_pair(seed)
    seed.profile("u1", zip_code=None)

    assert planner.plan_user("u1").action == "skipped_no_location"
    assert forecast.calls == []
    assert _audits(history_repo, "u1") == []


def test_basic_schedules_are_not_planned(planner, seed, forecast):
    seed.pair("u1", start_time="17:00", end_time="07:00")
    seed.profile("u1")

    assert planner.plan_user("u1").action == "no_weather_schedule"
    assert forecast.calls == []


def test_forecast_failure_is_audited(planner, seed, forecast, history_repo, event_repo):
    _, charge = _weather_pair(seed)
    seed.profile("u1")
    forecast.failing_users.add("u1")

    outcome = planner.plan_user("u1")

    assert outcome.action == "forecast_failed"
    assert _temporaries(event_repo, charge.group_id) == []
    audit = _audits(history_repo, "u1")[0]
    assert audit.details == {
        "info": "Weather forecast evaluation failed: Forecast provider unavailable",
        "action_taken": False,
    }
    row = _executions(history_repo, "u1")[0]
    assert row.status == ExecutionStatus.FAILURE
    assert row.job_type == JobType.WEATHER_EVALUATION
    assert row.schedule_id == charge.id


# ==================== Escalation ====================


def test_live_override_is_not_downgraded(planner, seed, forecast, event_repo):
    _, charge = _weather_pair(seed)
    seed.profile("u1", forced=True)
    live = seed.temporary(charge, kind=EventKind.BEGIN_CHARGE, percent=88, expires_at=NOW + timedelta(hours=3))
    forecast.sunshine["u1"] = 50

    outcome = planner.plan_user("u1")

    assert outcome.action == "override_kept"
    assert outcome.note.startswith("Forced charge already active at 88%. New, lower target of 87% ignored.")
    assert [e.id for e in _temporaries(event_repo, charge.group_id)] == [live.id]


def test_higher_target_replaces_live_override(planner, seed, forecast, event_repo, device):
    _, charge = _weather_pair(seed)
    seed.profile("u1", forced=True)
    live = seed.temporary(charge, kind=EventKind.BEGIN_CHARGE, percent=84, expires_at=NOW + timedelta(hours=3))
    forecast.sunshine["u1"] = 50
    device.reserves[("u1", "site-u1")] = 84

    outcome = planner.plan_user("u1")

    assert outcome.action == "override_created"
    temps = _temporaries(event_repo, charge.group_id)
    assert live.id not in {e.id for e in temps}
    assert sorted(e.backup_percent for e in temps) == [20, 87]
    assert device.reserves[("u1", "site-u1")] == 87


# ==================== Cleanup ====================


def test_cleanup_reaps_and_clears_flag(planner, seed, event_repo, profile_repo):
    _, charge = _weather_pair(seed)
    seed.profile("u1", zip_code=None, forced=True)
    seed.temporary(charge, kind=EventKind.BEGIN_CHARGE, percent=88, expires_at=NOW - timedelta(minutes=1))
    seed.temporary(charge, kind=EventKind.BEGIN_DISCHARGE, percent=20, expires_at=NOW + timedelta(hours=1),
                   enabled=False)

    outcome = planner.plan_user("u1")

    assert outcome.reaped == 2
    assert _temporaries(event_repo, charge.group_id) == []
    assert profile_repo.get_profile("u1").forced_charging_active is False


def test_cleanup_keeps_flag_while_override_is_live(planner, seed, event_repo, profile_repo):
    _, charge = _weather_pair(seed)
    seed.profile("u1", zip_code=None, forced=True)
    seed.temporary(charge, kind=EventKind.BEGIN_CHARGE, percent=88, expires_at=NOW + timedelta(hours=3))

    assert planner.plan_user("u1").reaped == 0
    assert profile_repo.get_profile("u1").forced_charging_active is True


def test_cleanup_failure_does_not_stop_planning(planner, seed, forecast, event_repo, history_repo, monkeypatch):
    _, charge = _weather_pair(seed)
    seed.profile("u1")
    seed.temporary(charge, kind=EventKind.BEGIN_CHARGE, percent=88, expires_at=NOW - timedelta(minutes=1))
    forecast.sunshine["u1"] = 96

    def broken_delete(event_ids):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(event_repo, "delete_events", broken_delete)

    outcome = planner.plan_user("u1")

    assert outcome.cleanup_error == "database is locked"
    assert outcome.reaped == 0
    assert outcome.action == "good_weather"
    assert forecast.calls == ["u1"]
    assert [a.action for a in _audits(history_repo, "u1")] == [AuditAction.WEATHER_UPDATE]


def test_cleanup_failure_is_reported_in_sweep(planner, seed, forecast, event_repo, monkeypatch):
    _, charge = _weather_pair(seed)
    seed.profile("u1")
    seed.temporary(charge, kind=EventKind.BEGIN_CHARGE, percent=88, expires_at=NOW - timedelta(minutes=1))

    def broken_delete(event_ids):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(event_repo, "delete_events", broken_delete)

    summary = planner.plan_all()

    assert summary.errors == ["u1: cleanup failed: database is locked"]
    assert forecast.calls == ["u1"]


# ==================== Sweep ====================


def test_plan_all_isolates_users(planner, seed, forecast, device, monkeypatch):
    _weather_pair(seed, "u1")
    _weather_pair(seed, "u2")
    seed.profile("u1")
    seed.profile("u2")
    forecast.sunshine.update({"u1": 50, "u2": 50})
    device.reserves[("u1", "site-u1")] = 80

    def broken_evaluate(user_id):
        if user_id == "u2":
            raise RuntimeError("provider crashed")
        return original(user_id)

    original = forecast.evaluate
    monkeypatch.setattr(forecast, "evaluate", broken_evaluate)

    summary = planner.plan_all()

    assert summary.users == 2
    assert summary.overrides_created == 1
    assert summary.errors == ["u2: provider crashed"]


def test_run_respects_lease(event_repo, history_repo, forecast, profile_repo, reconciler, clock, db_handler, seed):
    _weather_pair(seed)
    seed.profile("u1")
    LeaseManager(db_handler, instance_id="holder", clock=clock).acquire(
        "weather_planning", timedelta(minutes=10), timedelta(minutes=1)
    )
    planner = WeatherAwarePlanner(
        event_repo, history_repo, forecast, profile_repo, reconciler, clock=clock,
        lease=LeaseManager(db_handler, instance_id="me", clock=clock),
    )

    assert planner.run() is None
    assert forecast.calls == []


def test_next_local_occurrence_rolls_to_tomorrow():
    assert next_local_occurrence(NOW, "UTC", "17:00") == datetime(2026, 1, 5, 17, 0, tzinfo=timezone.utc)
    assert next_local_occurrence(NOW, "UTC", "07:00") == datetime(2026, 1, 6, 7, 0, tzinfo=timezone.utc)
    # 14:00 UTC is 06:00 in Los Angeles; 06:00 has already arrived
    assert next_local_occurrence(NOW, "America/Los_Angeles", "06:00") == datetime(
        2026, 1, 6, 14, 0, tzinfo=timezone.utc
    )
