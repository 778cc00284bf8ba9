from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum


class ShiftType(str, Enum):
    A = "A"  # morning
    B = "B"  # afternoon
    C = "C"  # evening


SHIFT_TYPES = (ShiftType.A, ShiftType.B, ShiftType.C)
SHIFT_HOURS = {ShiftType.A: 6, ShiftType.B: 5, ShiftType.C: 5}
DAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
WEEK_DAYS = 7


@dataclass(frozen=True, order=True)
class ShiftSlot:
    date: date
    shift_type: ShiftType

    def to_dict(self) -> dict[str, str]:
        return {"date": self.date.isoformat(), "shift": self.shift_type.value}

    @classmethod
    def from_dict(cls, data: dict) -> ShiftSlot:
        return cls(date=date.fromisoformat(data["date"]), shift_type=ShiftType(data["shift"]))


@dataclass(frozen=True)
class WeekRange:
    start: date
    end: date

    @classmethod
    def starting(cls, start: date) -> WeekRange:
        return cls(start=start, end=start + timedelta(days=WEEK_DAYS - 1))

    @property
    def key(self) -> str:
        return self.start.isoformat()

    @property
    def length_days(self) -> int:
        return (self.end - self.start).days + 1

    def dates(self) -> list[date]:
        """Seven consecutive dates starting at ``start``, whatever ``end`` says."""
        return [self.start + timedelta(days=i) for i in range(WEEK_DAYS)]

    def is_well_formed(self) -> bool:
        return self.length_days == WEEK_DAYS and self.start.weekday() == 0


@dataclass
class WeekSettings:
    week: WeekRange
    active: bool = False
    employees: list[str] = field(default_factory=list)


@dataclass
class Registration:
    id: str
    employee_name: str
    shifts: list[ShiftSlot]
    timestamp: datetime
    week_key: str = ""
    approved: bool = False
    allocated: bool = False
    allocated_at: datetime | None = None
    version: int = 0

    def has_slot(self, slot: ShiftSlot) -> bool:
        return slot in self.shifts


@dataclass
class ShiftAssignment:
    date: date
    shift_type: ShiftType
    employees: list[str] = field(default_factory=list)

    @property
    def slot(self) -> ShiftSlot:
        return ShiftSlot(self.date, self.shift_type)

    def to_dict(self) -> dict:
        return {"date": self.date.isoformat(), "shift": self.shift_type.value, "employees": list(self.employees)}

    @classmethod
    def from_dict(cls, data: dict) -> ShiftAssignment:
        return cls(
            date=date.fromisoformat(data["date"]),
            shift_type=ShiftType(data["shift"]),
            employees=list(data.get("employees", [])),
        )


@dataclass
class FinalizedSchedule:
    week_key: str
    shifts: list[ShiftAssignment] = field(default_factory=list)

    def find(self, slot: ShiftSlot) -> ShiftAssignment | None:
        for assignment in self.shifts:
            if assignment.slot == slot:
                return assignment
        return None


@dataclass(frozen=True)
class AllocationConfig:
    fairness_enabled: bool = True
    max_shifts_per_employee: int | None = None
