"""Trim over-subscribed shift slots down to capacity.

The engine is purely subtractive: it only removes slot entries from the
registrations it is given, never adds any. Every registration passed in is
marked allocated afterwards, whether or not it lost a shift.
"""

from __future__ import annotations

import logging
import math
import random
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from shiftboard.capacity import slot_limit
from shiftboard.domain import SHIFT_TYPES, AllocationConfig, Registration, ShiftSlot, WeekRange
from shiftboard.errors import InvariantViolation

logger = logging.getLogger(__name__)

BASE_FAIRNESS_SCORE = 20
CAPPED_SCORE = -math.inf
NOTHING_TO_ALLOCATE = "Nothing to allocate"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Candidate:
    registration: Registration
    score: float = 0.0


@dataclass(frozen=True)
class Overload:
    slot: ShiftSlot
    registered: int
    limit: int

    @property
    def excess(self) -> int:
        return self.registered - self.limit


@dataclass(frozen=True)
class Removal:
    registration_id: str
    employee_name: str
    slot: ShiftSlot


@dataclass
class AllocationResult:
    registrations: list[Registration]
    processed: int
    overloads: list[Overload] = field(default_factory=list)
    removals: list[Removal] = field(default_factory=list)
    message: str = ""


@dataclass
class AllocationStats:
    total_employees: int
    total_shifts: int
    average_shifts_per_employee: float
    shift_distribution: dict[str, int]


def count_slot_registrations(registrations: list[Registration]) -> Counter:
    counts: Counter = Counter()
    for reg in registrations:
        for slot in set(reg.shifts):
            counts[slot] += 1
    return counts


def find_overloaded_slots(counts: Counter) -> list[Overload]:
    overloads = []
    for slot in sorted(counts):
        cap = slot_limit(slot)
        if counts[slot] > cap:
            overloads.append(Overload(slot=slot, registered=counts[slot], limit=cap))
    return overloads


def _shift_totals(registrations: list[Registration]) -> dict[str, int]:
    totals: dict[str, int] = defaultdict(int)
    for reg in registrations:
        totals[reg.employee_name] += len(reg.shifts)
    return totals


def select_keepers(
    candidates: list[Candidate],
    keep: int,
    registrations: list[Registration],
    config: AllocationConfig,
    rng: random.Random,
) -> list[Candidate]:
    if not config.fairness_enabled:
        return rng.sample(candidates, keep)

    totals = _shift_totals(registrations)
    cap = config.max_shifts_per_employee
    for candidate in candidates:
        total = totals[candidate.registration.employee_name]
        if cap is not None and total >= cap:
            candidate.score = CAPPED_SCORE
        else:
            candidate.score = BASE_FAIRNESS_SCORE - total

    # Shuffle first so the stable sort leaves equal scores in random order.
    shuffled = list(candidates)
    rng.shuffle(shuffled)
    shuffled.sort(key=lambda c: -c.score)
    return shuffled[:keep]


def allocate(
    registrations: list[Registration],
    week: WeekRange,
    config: AllocationConfig | None = None,
    rng: random.Random | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> AllocationResult:
    """Reduce every over-subscribed slot in ``registrations`` to its capacity.

    Registrations are mutated in place and returned in the result. Pass a seeded
    ``random.Random`` to make tie-breaking reproducible.
    """
    if not week.is_well_formed():
        raise InvariantViolation(
            f"Refusing to allocate week {week.start.isoformat()}..{week.end.isoformat()}: "
            f"expected a Monday-start 7-day range, got {week.length_days} day(s)"
        )
    if not registrations:
        return AllocationResult(registrations=[], processed=0, message=NOTHING_TO_ALLOCATE)

    config = config or AllocationConfig()
    rng = rng or random.Random()

    overloads = find_overloaded_slots(count_slot_registrations(registrations))
    removals: list[Removal] = []
    for overload in overloads:
        slot = overload.slot
        candidates = [Candidate(reg) for reg in registrations if reg.has_slot(slot)]
        if len(candidates) <= overload.limit:
            continue
        keepers = {id(c.registration) for c in select_keepers(candidates, overload.limit, registrations, config, rng)}
        for candidate in candidates:
            reg = candidate.registration
            if id(reg) in keepers:
                continue
            reg.shifts = [s for s in reg.shifts if s != slot]
            removals.append(Removal(registration_id=reg.id, employee_name=reg.employee_name, slot=slot))
        logger.info(
            "Slot %s %s trimmed from %d to %d",
            slot.date.isoformat(),
            slot.shift_type.value,
            len(candidates),
            overload.limit,
        )

    allocated_at = clock()
    for reg in registrations:
        reg.allocated = True
        reg.allocated_at = allocated_at

    logger.info(
        "Allocated %d registration(s) for week %s: %d overloaded slot(s), %d removal(s)",
        len(registrations),
        week.key,
        len(overloads),
        len(removals),
    )
    return AllocationResult(
        registrations=registrations,
        processed=len(registrations),
        overloads=overloads,
        removals=removals,
        message=f"Allocated {len(registrations)} employee(s)",
    )


def allocation_stats(registrations: list[Registration]) -> AllocationStats:
    total_shifts = sum(len(reg.shifts) for reg in registrations)
    distribution = {shift_type.value: 0 for shift_type in SHIFT_TYPES}
    for reg in registrations:
        for slot in reg.shifts:
            distribution[slot.shift_type.value] += 1
    total_employees = len(registrations)
    return AllocationStats(
        total_employees=total_employees,
        total_shifts=total_shifts,
        average_shifts_per_employee=total_shifts / total_employees if total_employees else 0.0,
        shift_distribution=distribution,
    )
