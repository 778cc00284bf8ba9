from __future__ import annotations

import random
from datetime import date, datetime, timezone

import pytest

from shiftboard import service
from shiftboard.domain import AllocationConfig, ShiftAssignment, ShiftSlot, ShiftType, WeekRange, WeekSettings
from shiftboard.errors import (
    CapacityConflictError,
    NotFoundError,
    PersistenceFailure,
    RegistrationRejected,
    WeekRangeError,
)
from shiftboard.store import SqlScheduleStore

WEEK = WeekRange.starting(date(2025, 1, 6))
MONDAY = WEEK.start
ROSTER = ["Alice", "Bob", "Cara"]
NOW = datetime(2025, 1, 3, 12, 0, tzinfo=timezone.utc)


class FlakyStore(SqlScheduleStore):
    """Store whose writes can be switched off to simulate an unavailable backend."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_registration_writes = False
        self.fail_merges = False

    def put_registration(self, registration):
        if self.fail_registration_writes:
            return False
        return super().put_registration(registration)

    def merge_finalized_schedule(self, week_key, assignments, capacity=None):
        if self.fail_merges:
            return False
        return super().merge_finalized_schedule(week_key, assignments, capacity=capacity)


def every_day(shift_type: ShiftType, *extra: ShiftSlot) -> list[ShiftSlot]:
    return [ShiftSlot(day, shift_type) for day in WEEK.dates()] + list(extra)


@pytest.fixture()
def store() -> SqlScheduleStore:
    store = SqlScheduleStore()
    service.save_week_settings(store, WeekSettings(week=WEEK, active=True, employees=list(ROSTER)))
    return store


def test_submit_registration_stores_pending_entry(store):
    registration = service.submit_registration(store, " Alice ", every_day(ShiftType.A), now=NOW)

    loaded = store.get_registration(registration.id)
    assert loaded.employee_name == "Alice"
    assert loaded.week_key == WEEK.key
    assert len(loaded.shifts) == 7
    assert loaded.approved is False
    assert loaded.allocated is False


def test_submit_rejects_two_rest_days(store):
    selection = [ShiftSlot(day, ShiftType.A) for day in WEEK.dates()[:5]]

    with pytest.raises(RegistrationRejected) as excinfo:
        service.submit_registration(store, "Alice", selection)

    assert "rest day" in excinfo.value.reason
    assert store.get_registrations(WEEK.key) == []


def test_submit_rejects_unknown_employee(store):
    with pytest.raises(RegistrationRejected, match="roster"):
        service.submit_registration(store, "Mallory", every_day(ShiftType.A))


def test_submit_rejects_when_week_inactive(store):
    service.save_week_settings(store, WeekSettings(week=WEEK, active=False, employees=list(ROSTER)))

    with pytest.raises(RegistrationRejected, match="not open"):
        service.submit_registration(store, "Alice", every_day(ShiftType.A))


def test_week_settings_must_be_a_monday_week():
    store = SqlScheduleStore()
    with pytest.raises(WeekRangeError):
        service.save_week_settings(store, WeekSettings(week=WeekRange(date(2025, 1, 7), date(2025, 1, 13))))
    assert store.get_week_settings() is None


def test_changing_week_clears_registrations_but_keeps_history(store):
    registration = service.submit_registration(store, "Alice", every_day(ShiftType.A))
    service.approve_registration(store, registration.id)

    next_week = WeekRange.starting(date(2025, 1, 13))
    service.save_week_settings(store, WeekSettings(week=next_week, active=True, employees=list(ROSTER)))

    assert store.get_registrations(WEEK.key) == []
    assert store.get_finalized_schedule(WEEK.key) is not None


def test_saving_same_week_keeps_registrations(store):
    service.submit_registration(store, "Alice", every_day(ShiftType.A))
    service.save_week_settings(store, WeekSettings(week=WEEK, active=False, employees=list(ROSTER)))
    assert len(store.get_registrations(WEEK.key)) == 1


def test_approve_merges_into_finalized_schedule(store):
    registration = service.submit_registration(store, "Alice", every_day(ShiftType.A))

    approved = service.approve_registration(store, registration.id)

    assert approved.approved is True
    assert store.get_registration(registration.id).approved is True
    schedule = store.get_finalized_schedule(WEEK.key)
    assert len(schedule.shifts) == 7
    assert all(a.employees == ["Alice"] for a in schedule.shifts)


def test_approve_reports_capacity_conflict(store):
    extra = ShiftSlot(MONDAY, ShiftType.C)
    alice = service.submit_registration(store, "Alice", every_day(ShiftType.A, extra))
    bob = service.submit_registration(store, "Bob", every_day(ShiftType.B, extra))
    service.approve_registration(store, alice.id)

    with pytest.raises(CapacityConflictError) as excinfo:
        service.approve_registration(store, bob.id)

    conflicts = excinfo.value.conflicts
    assert [(c.date, c.shift_type, c.current, c.max) for c in conflicts] == [(MONDAY, ShiftType.C, 1, 1)]
    assert store.get_registration(bob.id).approved is False
    schedule = store.get_finalized_schedule(WEEK.key)
    assert schedule.find(extra).employees == ["Alice"]


def test_approve_refuses_second_schedule_for_same_employee(store):
    first = service.submit_registration(store, "Alice", every_day(ShiftType.A))
    second = service.submit_registration(store, "Alice", every_day(ShiftType.B))
    service.approve_registration(store, first.id)

    with pytest.raises(RegistrationRejected, match="already has an approved schedule"):
        service.approve_registration(store, second.id)


def test_approve_unknown_registration(store):
    with pytest.raises(NotFoundError):
        service.approve_registration(store, "missing")


def test_run_allocation_trims_and_persists(store):
    extra = ShiftSlot(MONDAY, ShiftType.C)
    for name in ROSTER:
        service.submit_registration(store, name, every_day(ShiftType.A, extra))

    report = service.run_allocation(store, rng=random.Random(5), now=NOW)

    assert report.success
    assert report.result.processed == 3
    stored = store.get_registrations(WEEK.key)
    assert all(r.allocated for r in stored)
    assert sum(1 for r in stored if extra in r.shifts) == 1
    # A is 2 on weekdays and 3 on weekends.
    for day in WEEK.dates():
        holders = sum(1 for r in stored if ShiftSlot(day, ShiftType.A) in r.shifts)
        assert holders == (3 if day.weekday() >= 5 else 2)
    assert report.stats.total_employees == 3


def test_run_allocation_uses_stored_config(store):
    store.save_allocation_config(AllocationConfig(fairness_enabled=False))
    for name in ROSTER:
        service.submit_registration(store, name, every_day(ShiftType.C))

    report = service.run_allocation(store, rng=random.Random(1))

    for day in WEEK.dates():
        assert sum(1 for r in report.result.registrations if ShiftSlot(day, ShiftType.C) in r.shifts) == 1


def test_run_allocation_twice_is_a_no_op(store):
    for name in ROSTER:
        service.submit_registration(store, name, every_day(ShiftType.C))
    service.run_allocation(store, rng=random.Random(2))
    before = {r.id: r.shifts for r in store.get_registrations(WEEK.key)}

    report = service.run_allocation(store, rng=random.Random(3))

    assert report.result.removals == []
    assert {r.id: r.shifts for r in store.get_registrations(WEEK.key)} == before


def test_run_allocation_with_nothing_registered(store):
    report = service.run_allocation(store)
    assert report.result.processed == 0
    assert report.success


def test_week_gaps_after_allocation(store):
    service.submit_registration(store, "Alice", every_day(ShiftType.A))
    service.run_allocation(store, rng=random.Random(0))

    week, report = service.week_gaps(store)

    assert week == WEEK
    saturday = [w for w in report.warnings if w.date == date(2025, 1, 11) and w.shift_type == ShiftType.A]
    assert saturday[0].missing == 2


def test_week_gaps_rejects_bad_week_key(store):
    with pytest.raises(WeekRangeError):
        service.week_gaps(store, "not-a-date")


def test_schedule_history_groups_by_employee_with_hours(store):
    store.merge_finalized_schedule(
        WEEK.key,
        [
            ShiftAssignment(MONDAY, ShiftType.A, ["Alice", "Bob"]),
            ShiftAssignment(MONDAY, ShiftType.C, ["Alice"]),
        ],
    )

    history = service.schedule_history(store)

    assert len(history) == 1
    entry = history[0]
    assert entry.week == WEEK
    hours = {e.employee_name: e.hours for e in entry.employees}
    assert hours == {"Alice": 11, "Bob": 6}


def test_delete_schedule(store):
    store.merge_finalized_schedule(WEEK.key, [ShiftAssignment(MONDAY, ShiftType.A, ["Alice"])])
    service.delete_schedule(store, WEEK.key)
    with pytest.raises(NotFoundError):
        service.delete_schedule(store, WEEK.key)


@pytest.mark.parametrize("week_key", ["2025-01-07", "2025-01-12"])
def test_week_keys_must_be_mondays(store, week_key):
    with pytest.raises(WeekRangeError, match="Monday"):
        service.week_gaps(store, week_key)
    with pytest.raises(WeekRangeError, match="Monday"):
        service.run_allocation(store, week_key)


def test_run_allocation_reports_failed_writes():
    store = FlakyStore()
    service.save_week_settings(store, WeekSettings(week=WEEK, active=True, employees=list(ROSTER)))
    submitted = [service.submit_registration(store, name, every_day(ShiftType.C)) for name in ROSTER]
    store.fail_registration_writes = True

    report = service.run_allocation(store, rng=random.Random(4))

    assert report.success is False
    assert sorted(report.failed_ids) == sorted(r.id for r in submitted)
    assert not any(r.allocated for r in store.get_registrations(WEEK.key))


def test_approve_raises_when_merge_cannot_be_written():
    store = FlakyStore()
    service.save_week_settings(store, WeekSettings(week=WEEK, active=True, employees=list(ROSTER)))
    registration = service.submit_registration(store, "Alice", every_day(ShiftType.A))
    store.fail_merges = True

    with pytest.raises(PersistenceFailure):
        service.approve_registration(store, registration.id)

    assert store.get_registration(registration.id).approved is False
    assert store.get_finalized_schedule(WEEK.key) is None
