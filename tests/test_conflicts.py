from datetime import date

from shiftboard.conflicts import check_conflict, find_conflicts
from shiftboard.domain import FinalizedSchedule, ShiftAssignment, ShiftType
from shiftboard.store import SqlScheduleStore

WEEK_KEY = "2025-01-06"
MONDAY = date(2025, 1, 6)
SATURDAY = date(2025, 1, 11)


def test_no_finalized_schedule_means_no_conflict():
    store = SqlScheduleStore()
    proposed = [ShiftAssignment(MONDAY, ShiftType.C, ["Alice", "Bob", "Cara"])]

    report = check_conflict(store, WEEK_KEY, proposed)

    assert report.has_conflict is False
    assert report.conflicts == []


def test_full_slot_is_reported_with_counts():
    store = SqlScheduleStore()
    assert store.merge_finalized_schedule(WEEK_KEY, [ShiftAssignment(MONDAY, ShiftType.C, ["Alice"])])

    report = check_conflict(store, WEEK_KEY, [ShiftAssignment(MONDAY, ShiftType.C, ["Bob"])])

    assert report.has_conflict
    conflict = report.conflicts[0]
    assert (conflict.date, conflict.shift_type, conflict.current, conflict.max) == (MONDAY, ShiftType.C, 1, 1)
    assert conflict.new_employees == ("Bob",)
    assert conflict.excess == 1
    assert conflict.to_dict()["shift"] == "C"


def test_slot_with_room_is_not_a_conflict():
    store = SqlScheduleStore()
    store.merge_finalized_schedule(WEEK_KEY, [ShiftAssignment(SATURDAY, ShiftType.A, ["Alice"])])

    report = check_conflict(store, WEEK_KEY, [ShiftAssignment(SATURDAY, ShiftType.A, ["Bob", "Cara"])])

    assert not report.has_conflict


def test_check_does_not_change_the_schedule():
    store = SqlScheduleStore()
    store.merge_finalized_schedule(WEEK_KEY, [ShiftAssignment(MONDAY, ShiftType.C, ["Alice"])])

    check_conflict(store, WEEK_KEY, [ShiftAssignment(MONDAY, ShiftType.C, ["Bob"])])

    schedule = store.get_finalized_schedule(WEEK_KEY)
    assert [a.employees for a in schedule.shifts] == [["Alice"]]


def test_missing_slot_counts_as_empty():
    schedule = FinalizedSchedule(WEEK_KEY, [ShiftAssignment(MONDAY, ShiftType.A, ["Alice"])])

    ok = find_conflicts(schedule, [ShiftAssignment(MONDAY, ShiftType.B, ["Bob"])])
    over = find_conflicts(schedule, [ShiftAssignment(MONDAY, ShiftType.B, ["Bob", "Cara"])])

    assert not ok.has_conflict
    assert over.has_conflict
    assert over.conflicts[0].current == 0
    assert over.conflicts[0].max == 1


def test_employee_already_on_the_slot_is_not_counted_twice():
    schedule = FinalizedSchedule(WEEK_KEY, [ShiftAssignment(MONDAY, ShiftType.C, ["Alice"])])
    assert not find_conflicts(schedule, [ShiftAssignment(MONDAY, ShiftType.C, ["Alice"])]).has_conflict
