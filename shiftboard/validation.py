"""Rules deciding whether a week configuration or a shift selection is legal."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date
from typing import Iterable

from shiftboard.domain import WEEK_DAYS, ShiftSlot, WeekRange
from shiftboard.errors import WeekRangeError

MAX_SHIFTS_PER_DAY = 3
MAX_REST_DAYS = 1
MIN_WORKING_DAYS = 6


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    reason: str | None = None

    @classmethod
    def accepted(cls) -> ValidationResult:
        return cls(ok=True)

    @classmethod
    def rejected(cls, reason: str) -> ValidationResult:
        return cls(ok=False, reason=reason)


def validate_week_range(week: WeekRange) -> None:
    if week.end < week.start:
        raise WeekRangeError("Week end date must not be before the start date")
    if week.length_days != WEEK_DAYS:
        raise WeekRangeError(f"Week must span exactly {WEEK_DAYS} days, got {week.length_days}")
    if week.start.weekday() != 0:
        raise WeekRangeError(f"Week must start on a Monday, {week.start.isoformat()} is not")


def _format_day(day: date) -> str:
    return day.strftime("%a %Y-%m-%d")


def validate_selection(selection: Iterable[ShiftSlot], week: WeekRange) -> ValidationResult:
    """Check one employee's weekly selection.

    Checks run in a fixed order and stop at the first failure: non-empty
    selection, dates inside the week, at most three shifts per day, at most
    one rest day, at least six working days.
    """
    slots = set(selection)
    if not slots:
        return ValidationResult.rejected("You must select at least one shift.")

    week_dates = week.dates()
    allowed = set(week_dates)
    outside = sorted(slot.date for slot in slots if slot.date not in allowed)
    if outside:
        return ValidationResult.rejected(
            f"{_format_day(outside[0])} is outside the registration week "
            f"{week_dates[0].isoformat()} to {week_dates[-1].isoformat()}."
        )

    per_day = Counter(slot.date for slot in slots)
    for day in week_dates:
        if per_day[day] > MAX_SHIFTS_PER_DAY:
            return ValidationResult.rejected(
                f"{_format_day(day)}: at most {MAX_SHIFTS_PER_DAY} shifts may be selected per day."
            )

    rest_days = sum(1 for day in week_dates if per_day[day] == 0)
    if rest_days > MAX_REST_DAYS:
        return ValidationResult.rejected(
            f"At most {MAX_REST_DAYS} rest day is allowed per week, you selected {rest_days}."
        )

    working_days = WEEK_DAYS - rest_days
    if working_days < MIN_WORKING_DAYS:
        return ValidationResult.rejected(
            f"You must work at least {MIN_WORKING_DAYS} days per week, you selected {working_days}."
        )
    return ValidationResult.accepted()
