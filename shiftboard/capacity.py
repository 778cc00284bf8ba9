from __future__ import annotations

from datetime import date

from shiftboard.domain import SHIFT_TYPES, ShiftSlot, ShiftType

# Indexed by date.weekday(): Mon .. Sun
SHIFT_CAPACITY: dict[ShiftType, tuple[int, ...]] = {
    ShiftType.A: (2, 2, 2, 2, 2, 3, 3),
    ShiftType.B: (1, 2, 1, 2, 1, 2, 2),
    ShiftType.C: (1, 1, 1, 1, 1, 1, 1),
}


def limit(shift_type: ShiftType, day: date) -> int:
    return SHIFT_CAPACITY[ShiftType(shift_type)][day.weekday()]


def slot_limit(slot: ShiftSlot) -> int:
    return limit(slot.shift_type, slot.date)


def daily_limits(day: date) -> dict[ShiftType, int]:
    return {shift_type: limit(shift_type, day) for shift_type in SHIFT_TYPES}


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5
