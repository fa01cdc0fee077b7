"""Tests for the merged period view, the peak window and temporary reaping."""

from datetime import datetime, time, timedelta, timezone

import pytest

from app.domain.schedules.period import group_periods, is_on_peak, merge_group, select_reapable
from app.domain.schedules.schedule_event import Temporary
from app.enums.schedules import EventKind, PeakWindow

NOW = datetime(2026, 1, 5, 14, 0, tzinfo=timezone.utc)


def _pair(make_event, group_id="g1", **common):
    discharge = make_event(group_id=group_id, event_kind=EventKind.BEGIN_DISCHARGE, scheduled_time="07:00",
                           backup_percent=20, **common)
    charge = make_event(group_id=group_id, event_kind=EventKind.BEGIN_CHARGE, scheduled_time="21:00",
                        backup_percent=80, **common)
    return discharge, charge


# ---------------------------------------------------------------------------
# Peak window
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "now_local, expected",
    [(time(23, 0), True), (time(3, 0), True), (time(21, 0), True), (time(12, 0), False), (time(7, 0), False)],
)
def test_wrap_around_window(now_local, expected):
    assert is_on_peak(now_local, time(21, 0), time(7, 0)) is expected


def test_same_day_window_is_half_open():
    assert is_on_peak(time(7, 0), time(7, 0), time(21, 0))
    assert is_on_peak(time(14, 0), time(7, 0), time(21, 0))
    assert not is_on_peak(time(21, 0), time(7, 0), time(21, 0))


def test_window_is_evaluated_in_period_timezone(make_event):
    period = merge_group(list(_pair(make_event, timezone="America/Los_Angeles")))
    # 22:00 UTC = 14:00 Los Angeles
    assert period.window_at(datetime(2026, 1, 5, 22, 0, tzinfo=timezone.utc)) == PeakWindow.ON_PEAK
    # 14:00 UTC = 06:00 Los Angeles
    assert period.window_at(NOW) == PeakWindow.OFF_PEAK


def test_active_day_uses_period_timezone(make_event):
    period = merge_group(list(_pair(make_event, days_of_week=[0], timezone="Pacific/Auckland")))
    # Monday 14:00 UTC is already Tuesday in Auckland
    assert not period.is_active_on(NOW)
    assert merge_group(list(_pair(make_event, days_of_week=[0]))).is_active_on(NOW)


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def test_merge_uses_permanent_pair(make_event):
    period = merge_group(list(_pair(make_event)))

    assert period.start_time == "07:00"
    assert period.end_time == "21:00"
    assert period.on_peak_backup_percent == 20
    assert period.off_peak_backup_percent == 80
    assert period.overridden_by_weather is False
    assert period.effective_percent(PeakWindow.ON_PEAK) == 20


def test_enabled_temporary_overrides_effective_percent(make_event):
    discharge, charge = _pair(make_event)
    temp = make_event(event_kind=EventKind.BEGIN_CHARGE, backup_percent=88,
                      permanence=Temporary(expires_at=NOW + timedelta(hours=6)))

    period = merge_group([discharge, charge, temp])

    assert period.off_peak_backup_percent == 88
    assert period.permanent_off_peak_backup_percent == 80
    assert period.overridden_by_weather is True
    # Window still comes from the permanent pair
    assert period.end_time == "21:00"
    assert period.temporary_events == [temp]


def test_disabled_temporary_does_not_override(make_event):
    discharge, charge = _pair(make_event)
    temp = make_event(event_kind=EventKind.BEGIN_CHARGE, backup_percent=88, enabled=False,
                      permanence=Temporary(expires_at=NOW + timedelta(hours=6)))

    period = merge_group([discharge, charge, temp])

    assert period.off_peak_backup_percent == 80
    assert period.overridden_by_weather is False


def test_group_missing_permanent_half_is_excluded(make_event):
    discharge, _ = _pair(make_event, group_id="broken")
    complete = _pair(make_event, group_id="ok")

    assert merge_group([discharge]) is None
    assert [p.group_id for p in group_periods([discharge, *complete])] == ["ok"]


def test_group_periods_newest_first(make_event):
    old = _pair(make_event, group_id="old", created_at=NOW - timedelta(days=2))
    new = _pair(make_event, group_id="new", created_at=NOW)

    assert [p.group_id for p in group_periods([*old, *new])] == ["new", "old"]


# ---------------------------------------------------------------------------
# Reaping
# ---------------------------------------------------------------------------


def test_select_reapable(make_event):
    permanent = make_event(enabled=False)
    fired = make_event(enabled=False, permanence=Temporary(expires_at=NOW + timedelta(hours=1)))
    expired = make_event(permanence=Temporary(expires_at=NOW - timedelta(minutes=1)))
    live = make_event(permanence=Temporary(expires_at=NOW + timedelta(hours=1)))

    assert select_reapable([permanent, fired, expired, live], NOW) == [fired, expired]
