from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Iterable

from shiftboard.allocation import AllocationResult, AllocationStats, allocate, allocation_stats
from shiftboard.capacity import limit
from shiftboard.conflicts import check_conflict
from shiftboard.domain import (
    SHIFT_HOURS,
    WEEK_DAYS,
    FinalizedSchedule,
    Registration,
    ShiftAssignment,
    ShiftSlot,
    WeekRange,
    WeekSettings,
)
from shiftboard.errors import (
    CapacityConflictError,
    NotFoundError,
    PersistenceFailure,
    RegistrationRejected,
    WeekRangeError,
)
from shiftboard.staffing import GapReport, ShiftStatistics, check_gaps, shift_statistics
from shiftboard.store import ScheduleStore
from shiftboard.validation import validate_selection, validate_week_range

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AllocationReport:
    result: AllocationResult
    stats: AllocationStats
    failed_ids: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed_ids


@dataclass
class EmployeeWeek:
    employee_name: str
    shifts: list[ShiftSlot]

    @property
    def hours(self) -> int:
        return sum(SHIFT_HOURS[slot.shift_type] for slot in self.shifts)


@dataclass
class ScheduleHistoryEntry:
    week: WeekRange
    employees: list[EmployeeWeek]


def _require_week(store: ScheduleStore) -> WeekSettings:
    settings = store.get_week_settings()
    if settings is None:
        raise NotFoundError("No registration week has been configured")
    return settings


def _resolve_week(store: ScheduleStore, week_key: str | None) -> WeekRange:
    if week_key is None:
        return _require_week(store).week
    try:
        start = date.fromisoformat(week_key)
    except ValueError as exc:
        raise WeekRangeError(f"Invalid week key {week_key!r}") from exc
    week = WeekRange.starting(start)
    validate_week_range(week)
    return week


def save_week_settings(store: ScheduleStore, settings: WeekSettings) -> bool:
    """Persist the active week. Changing the date range discards the old week's registrations."""
    validate_week_range(settings.week)
    previous = store.get_week_settings()
    if previous is not None and previous.week != settings.week:
        logger.info("Week changed from %s to %s; clearing old registrations", previous.week.key, settings.week.key)
        if not store.clear_registrations(previous.week.key):
            raise PersistenceFailure()
    if not store.save_week_settings(settings):
        raise PersistenceFailure()
    return True


def submit_registration(
    store: ScheduleStore,
    employee_name: str,
    selection: Iterable[ShiftSlot],
    now: datetime | None = None,
) -> Registration:
    settings = store.get_week_settings()
    if settings is None or not settings.active:
        raise RegistrationRejected("Registration is not open. Please contact the administrator.")
    name = employee_name.strip()
    if not name:
        raise RegistrationRejected("Please choose an employee name.")
    if name not in settings.employees:
        raise RegistrationRejected(f"{name} is not on this week's roster.")

    slots = sorted(set(selection))
    result = validate_selection(slots, settings.week)
    if not result.ok:
        logger.info("Registration from %s rejected: %s", name, result.reason)
        raise RegistrationRejected(result.reason or "Invalid selection.")

    registration = Registration(
        id=uuid.uuid4().hex,
        employee_name=name,
        shifts=slots,
        timestamp=now or utcnow(),
        week_key=settings.week.key,
    )
    if not store.put_registration(registration):
        raise PersistenceFailure()
    logger.info("Registration %s stored for %s (%d shifts)", registration.id, name, len(slots))
    return registration


def approve_registration(store: ScheduleStore, registration_id: str) -> Registration:
    """Merge one registration into the finalized schedule of its week."""
    registration = store.get_registration(registration_id)
    if registration is None:
        raise NotFoundError(f"Registration {registration_id} not found")
    if registration.approved:
        return registration

    others = store.get_registrations(registration.week_key)
    if any(r.id != registration.id and r.employee_name == registration.employee_name and r.approved for r in others):
        raise RegistrationRejected(f"{registration.employee_name} already has an approved schedule this week.")

    proposed = [ShiftAssignment(slot.date, slot.shift_type, [registration.employee_name]) for slot in registration.shifts]
    report = check_conflict(store, registration.week_key, proposed)
    if report.has_conflict:
        raise CapacityConflictError(report.conflicts)

    if not store.merge_finalized_schedule(registration.week_key, proposed, capacity=limit):
        # Either a concurrent approval filled a slot first or the write failed.
        report = check_conflict(store, registration.week_key, proposed)
        if report.has_conflict:
            raise CapacityConflictError(report.conflicts)
        raise PersistenceFailure()

    registration.approved = True
    if not store.put_registration(registration):
        raise PersistenceFailure()
    logger.info("Registration %s for %s approved", registration.id, registration.employee_name)
    return registration


def delete_registration(store: ScheduleStore, registration_id: str) -> None:
    if not store.delete_registration(registration_id):
        raise NotFoundError(f"Registration {registration_id} not found")


def run_allocation(
    store: ScheduleStore,
    week_key: str | None = None,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> AllocationReport:
    """Allocate a week's registrations and persist the trimmed result.

    Defaults to the active week. The whole pass runs in memory before anything
    is written. Registrations whose write fails are listed in ``failed_ids``;
    re-running is safe. Callers must not run two passes for the same week at
    once.
    """
    week = _resolve_week(store, week_key)
    registrations = store.get_registrations(week.key)
    config = store.get_allocation_config()
    clock = (lambda: now) if now is not None else utcnow
    result = allocate(registrations, week, config=config, rng=rng, clock=clock)

    failed = [reg.id for reg in result.registrations if not store.put_registration(reg)]
    if failed:
        logger.error("Allocation for week %s: %d registration write(s) failed", week.key, len(failed))
    return AllocationReport(result=result, stats=allocation_stats(result.registrations), failed_ids=failed)


def week_gaps(store: ScheduleStore, week_key: str | None = None) -> tuple[WeekRange, GapReport]:
    week = _resolve_week(store, week_key)
    return week, check_gaps(week, store.get_registrations(week.key))


def week_statistics(store: ScheduleStore, week_key: str | None = None) -> ShiftStatistics:
    week = _resolve_week(store, week_key)
    return shift_statistics(week, store.get_registrations(week.key))


def employee_weeks(schedule: FinalizedSchedule) -> list[EmployeeWeek]:
    by_employee: dict[str, list[ShiftSlot]] = {}
    for assignment in schedule.shifts:
        for name in assignment.employees:
            by_employee.setdefault(name, []).append(assignment.slot)
    return [EmployeeWeek(name, sorted(slots)) for name, slots in by_employee.items()]


def history_entry(schedule: FinalizedSchedule) -> ScheduleHistoryEntry:
    start = date.fromisoformat(schedule.week_key)
    return ScheduleHistoryEntry(
        week=WeekRange(start, start + timedelta(days=WEEK_DAYS - 1)),
        employees=employee_weeks(schedule),
    )


def schedule_history(store: ScheduleStore) -> list[ScheduleHistoryEntry]:
    return [history_entry(schedule) for schedule in store.list_finalized_schedules()]


def delete_schedule(store: ScheduleStore, week_key: str) -> None:
    if not store.delete_finalized_schedule(week_key):
        raise NotFoundError(f"No finalized schedule for week {week_key}")
