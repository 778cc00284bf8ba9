from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Iterable

from shiftboard.capacity import limit
from shiftboard.domain import FinalizedSchedule, ShiftAssignment, ShiftType

if TYPE_CHECKING:
    from shiftboard.store import ScheduleStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotConflict:
    date: date
    shift_type: ShiftType
    current: int
    max: int
    new_employees: tuple[str, ...] = ()

    @property
    def excess(self) -> int:
        return self.current + len(self.new_employees) - self.max

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "shift": self.shift_type.value,
            "current": self.current,
            "max": self.max,
            "new_employees": list(self.new_employees),
            "excess": self.excess,
        }


@dataclass
class ConflictReport:
    conflicts: list[SlotConflict] = field(default_factory=list)

    @property
    def has_conflict(self) -> bool:
        return bool(self.conflicts)


def find_conflicts(schedule: FinalizedSchedule | None, proposed: Iterable[ShiftAssignment]) -> ConflictReport:
    """Flag slots where the existing schedule plus the proposal would exceed capacity.

    Names already on a slot are not counted twice. A slot the schedule does not
    list yet starts at zero, so a proposal that alone exceeds capacity conflicts.
    """
    report = ConflictReport()
    if schedule is None:
        return report
    for assignment in proposed:
        existing = schedule.find(assignment.slot)
        existing_names = set(existing.employees) if existing else set()
        incoming = tuple(name for name in assignment.employees if name not in existing_names)
        current = len(existing_names)
        max_people = limit(assignment.shift_type, assignment.date)
        if current + len(incoming) > max_people:
            report.conflicts.append(
                SlotConflict(
                    date=assignment.date,
                    shift_type=assignment.shift_type,
                    current=current,
                    max=max_people,
                    new_employees=incoming,
                )
            )
    return report


def check_conflict(store: ScheduleStore, week_key: str, proposed: list[ShiftAssignment]) -> ConflictReport:
    """Compare proposed assignments with the finalized schedule of ``week_key``.

    Read-only. A week without a finalized schedule never conflicts.
    """
    report = find_conflicts(store.get_finalized_schedule(week_key), proposed)
    if report.has_conflict:
        logger.info("Week %s: %d proposed slot(s) over capacity", week_key, len(report.conflicts))
    return report
