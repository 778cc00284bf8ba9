"""Staffing gap report for an allocated week."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from shiftboard.capacity import is_weekend, limit
from shiftboard.domain import DAY_NAMES, SHIFT_TYPES, Registration, ShiftSlot, ShiftType, WeekRange


@dataclass(frozen=True)
class GapWarning:
    date: date
    shift_type: ShiftType
    current: int
    limit: int

    @property
    def missing(self) -> int:
        return self.limit - self.current

    @property
    def message(self) -> str:
        day_name = DAY_NAMES[self.date.weekday()]
        return (
            f"Missing {self.missing} employee(s) for shift {self.shift_type.value} "
            f"on {day_name} {self.date.isoformat()} ({self.current}/{self.limit})"
        )


@dataclass
class GapReport:
    warnings: list[GapWarning] = field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    @property
    def total_missing(self) -> int:
        return sum(w.missing for w in self.warnings)


@dataclass
class ShiftStatistics:
    total_employees: int
    total_shifts: int
    shift_distribution: dict[str, int]
    weekday_shifts: int
    weekend_shifts: int
    warnings: list[GapWarning]


def count_employees_for_slot(registrations: list[Registration], slot: ShiftSlot) -> int:
    return sum(1 for reg in registrations if reg.has_slot(slot))


def check_gaps(week: WeekRange, registrations: list[Registration]) -> GapReport:
    allocated = [reg for reg in registrations if reg.allocated]
    report = GapReport()
    for day in week.dates():
        for shift_type in SHIFT_TYPES:
            cap = limit(shift_type, day)
            current = count_employees_for_slot(allocated, ShiftSlot(day, shift_type))
            if current < cap:
                report.warnings.append(GapWarning(date=day, shift_type=shift_type, current=current, limit=cap))
    return report


def shift_statistics(week: WeekRange, registrations: list[Registration]) -> ShiftStatistics:
    allocated = [reg for reg in registrations if reg.allocated]
    distribution = {shift_type.value: 0 for shift_type in SHIFT_TYPES}
    weekday = weekend = 0
    for reg in allocated:
        for slot in reg.shifts:
            distribution[slot.shift_type.value] += 1
            if is_weekend(slot.date):
                weekend += 1
            else:
                weekday += 1
    return ShiftStatistics(
        total_employees=len(allocated),
        total_shifts=weekday + weekend,
        shift_distribution=distribution,
        weekday_shifts=weekday,
        weekend_shifts=weekend,
        warnings=check_gaps(week, registrations).warnings,
    )
