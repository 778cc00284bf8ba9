"""Persistence for week settings, registrations and finalized schedules.

Write operations report failure as ``False`` and never raise for storage
errors; reads raise :class:`PersistenceFailure`. Nothing here retries.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Iterable, Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import shiftboard.db as app_db
from shiftboard.domain import (
    AllocationConfig,
    FinalizedSchedule,
    Registration,
    ShiftAssignment,
    ShiftSlot,
    ShiftType,
    WeekRange,
    WeekSettings,
)
from shiftboard.errors import PersistenceFailure
from shiftboard.models import (
    AllocationConfigRecord,
    FinalizedScheduleRecord,
    RegistrationRecord,
    WeekSettingsRecord,
)

logger = logging.getLogger(__name__)

CURRENT_WEEK_ID = 1
ALLOCATION_CONFIG_ID = 1

CapacityFn = Callable[[ShiftType, date], int]


class ScheduleStore(Protocol):
    def get_week_settings(self) -> WeekSettings | None: ...

    def save_week_settings(self, settings: WeekSettings) -> bool: ...

    def get_registrations(self, week_key: str) -> list[Registration]: ...

    def get_registration(self, registration_id: str) -> Registration | None: ...

    def put_registration(self, registration: Registration) -> bool: ...

    def delete_registration(self, registration_id: str) -> bool: ...

    def clear_registrations(self, week_key: str) -> bool: ...

    def get_finalized_schedule(self, week_key: str) -> FinalizedSchedule | None: ...

    def list_finalized_schedules(self) -> list[FinalizedSchedule]: ...

    def merge_finalized_schedule(
        self, week_key: str, assignments: list[ShiftAssignment], capacity: CapacityFn | None = None
    ) -> bool: ...

    def delete_finalized_schedule(self, week_key: str) -> bool: ...

    def get_allocation_config(self) -> AllocationConfig: ...

    def save_allocation_config(self, config: AllocationConfig) -> bool: ...


def merge_assignments(existing: Iterable[ShiftAssignment], incoming: Iterable[ShiftAssignment]) -> list[ShiftAssignment]:
    """Union employees on matching (date, shift) entries and append the rest."""
    merged = [ShiftAssignment(a.date, a.shift_type, list(a.employees)) for a in existing]
    by_slot = {a.slot: a for a in merged}
    for assignment in incoming:
        target = by_slot.get(assignment.slot)
        if target is None:
            target = ShiftAssignment(assignment.date, assignment.shift_type, [])
            merged.append(target)
            by_slot[target.slot] = target
        for name in assignment.employees:
            if name not in target.employees:
                target.employees.append(name)
    return merged


def _to_registration(record: RegistrationRecord) -> Registration:
    return Registration(
        id=record.id,
        employee_name=record.employee_name,
        shifts=[ShiftSlot.from_dict(item) for item in record.shifts],
        timestamp=record.timestamp,
        week_key=record.week_key,
        approved=record.approved,
        allocated=record.allocated,
        allocated_at=record.allocated_at,
        version=record.version,
    )


def _to_schedule(record: FinalizedScheduleRecord) -> FinalizedSchedule:
    return FinalizedSchedule(
        week_key=record.week_key,
        shifts=[ShiftAssignment.from_dict(item) for item in record.shifts],
    )


class SqlScheduleStore:
    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory

    def _session(self) -> Session:
        factory = self._session_factory or app_db.SessionLocal
        return factory()

    def _read_failed(self, action: str) -> PersistenceFailure:
        logger.exception("Store read failed: %s", action)
        return PersistenceFailure()

    # Week settings

    def get_week_settings(self) -> WeekSettings | None:
        try:
            with self._session() as db:
                record = db.get(WeekSettingsRecord, CURRENT_WEEK_ID)
                if record is None:
                    return None
                return WeekSettings(
                    week=WeekRange(record.date_from, record.date_to),
                    active=record.active,
                    employees=list(record.employees),
                )
        except SQLAlchemyError as exc:
            raise self._read_failed("get_week_settings") from exc

    def save_week_settings(self, settings: WeekSettings) -> bool:
        try:
            with self._session() as db:
                record = db.get(WeekSettingsRecord, CURRENT_WEEK_ID)
                if record is None:
                    record = WeekSettingsRecord(id=CURRENT_WEEK_ID)
                    db.add(record)
                record.date_from = settings.week.start
                record.date_to = settings.week.end
                record.active = settings.active
                record.employees = list(settings.employees)
                db.commit()
            return True
        except SQLAlchemyError:
            logger.exception("Saving week settings failed")
            return False

    # Registrations

    def get_registrations(self, week_key: str) -> list[Registration]:
        try:
            with self._session() as db:
                records = db.scalars(
                    select(RegistrationRecord)
                    .where(RegistrationRecord.week_key == week_key)
                    .order_by(RegistrationRecord.timestamp.desc(), RegistrationRecord.id)
                ).all()
                return [_to_registration(record) for record in records]
        except SQLAlchemyError as exc:
            raise self._read_failed(f"get_registrations({week_key})") from exc

    def get_registration(self, registration_id: str) -> Registration | None:
        try:
            with self._session() as db:
                record = db.get(RegistrationRecord, registration_id)
                return _to_registration(record) if record is not None else None
        except SQLAlchemyError as exc:
            raise self._read_failed(f"get_registration({registration_id})") from exc

    def put_registration(self, registration: Registration) -> bool:
        """Insert, or update if the stored version still matches ``registration.version``."""
        values = {
            "week_key": registration.week_key,
            "employee_name": registration.employee_name,
            "shifts": [slot.to_dict() for slot in registration.shifts],
            "timestamp": registration.timestamp,
            "approved": registration.approved,
            "allocated": registration.allocated,
            "allocated_at": registration.allocated_at,
        }
        try:
            with self._session() as db:
                if db.get(RegistrationRecord, registration.id) is None:
                    db.add(RegistrationRecord(id=registration.id, version=registration.version, **values))
                    db.commit()
                    return True
                result = db.execute(
                    update(RegistrationRecord)
                    .where(
                        RegistrationRecord.id == registration.id,
                        RegistrationRecord.version == registration.version,
                    )
                    .values(version=registration.version + 1, **values)
                )
                if result.rowcount != 1:
                    db.rollback()
                    logger.warning("Registration %s changed since it was read; update refused", registration.id)
                    return False
                db.commit()
            registration.version += 1
            return True
        except SQLAlchemyError:
            logger.exception("Saving registration %s failed", registration.id)
            return False

    def delete_registration(self, registration_id: str) -> bool:
        try:
            with self._session() as db:
                result = db.execute(delete(RegistrationRecord).where(RegistrationRecord.id == registration_id))
                db.commit()
                return bool(result.rowcount)
        except SQLAlchemyError:
            logger.exception("Deleting registration %s failed", registration_id)
            return False

    def clear_registrations(self, week_key: str) -> bool:
        try:
            with self._session() as db:
                result = db.execute(delete(RegistrationRecord).where(RegistrationRecord.week_key == week_key))
                db.commit()
            logger.info("Cleared %d registration(s) for week %s", int(result.rowcount or 0), week_key)
            return True
        except SQLAlchemyError:
            logger.exception("Clearing registrations for week %s failed", week_key)
            return False

    # Finalized schedules

    def get_finalized_schedule(self, week_key: str) -> FinalizedSchedule | None:
        try:
            with self._session() as db:
                record = db.get(FinalizedScheduleRecord, week_key)
                return _to_schedule(record) if record is not None else None
        except SQLAlchemyError as exc:
            raise self._read_failed(f"get_finalized_schedule({week_key})") from exc

    def list_finalized_schedules(self) -> list[FinalizedSchedule]:
        try:
            with self._session() as db:
                records = db.scalars(
                    select(FinalizedScheduleRecord).order_by(FinalizedScheduleRecord.week_key.desc())
                ).all()
                return [_to_schedule(record) for record in records]
        except SQLAlchemyError as exc:
            raise self._read_failed("list_finalized_schedules") from exc

    def merge_finalized_schedule(
        self, week_key: str, assignments: list[ShiftAssignment], capacity: CapacityFn | None = None
    ) -> bool:
        """Merge ``assignments`` into the week's schedule.

        With ``capacity`` the touched slots are re-checked inside the write
        transaction and the merge is refused if any would be over capacity.
        """
        try:
            with self._session() as db:
                record = db.scalars(
                    select(FinalizedScheduleRecord)
                    .where(FinalizedScheduleRecord.week_key == week_key)
                    .with_for_update()
                ).one_or_none()
                existing = _to_schedule(record).shifts if record is not None else []
                merged = merge_assignments(existing, assignments)
                if capacity is not None:
                    touched = {a.slot for a in assignments}
                    over = [a for a in merged if a.slot in touched and len(a.employees) > capacity(a.shift_type, a.date)]
                    if over:
                        db.rollback()
                        logger.warning("Merge into week %s refused: %d slot(s) over capacity", week_key, len(over))
                        return False
                payload = [a.to_dict() for a in merged]
                if record is None:
                    db.add(FinalizedScheduleRecord(week_key=week_key, shifts=payload))
                else:
                    record.shifts = payload
                db.commit()
            return True
        except SQLAlchemyError:
            logger.exception("Merging finalized schedule for week %s failed", week_key)
            return False

    def delete_finalized_schedule(self, week_key: str) -> bool:
        try:
            with self._session() as db:
                result = db.execute(delete(FinalizedScheduleRecord).where(FinalizedScheduleRecord.week_key == week_key))
                db.commit()
                return bool(result.rowcount)
        except SQLAlchemyError:
            logger.exception("Deleting finalized schedule for week %s failed", week_key)
            return False

    # Allocation config

    def get_allocation_config(self) -> AllocationConfig:
        try:
            with self._session() as db:
                record = db.get(AllocationConfigRecord, ALLOCATION_CONFIG_ID)
                if record is None:
                    return AllocationConfig()
                return AllocationConfig(
                    fairness_enabled=record.fairness_enabled,
                    max_shifts_per_employee=record.max_shifts_per_employee,
                )
        except SQLAlchemyError as exc:
            raise self._read_failed("get_allocation_config") from exc

    def save_allocation_config(self, config: AllocationConfig) -> bool:
        try:
            with self._session() as db:
                record = db.get(AllocationConfigRecord, ALLOCATION_CONFIG_ID)
                if record is None:
                    record = AllocationConfigRecord(id=ALLOCATION_CONFIG_ID)
                    db.add(record)
                record.fairness_enabled = config.fairness_enabled
                record.max_shifts_per_employee = config.max_shifts_per_employee
                db.commit()
            return True
        except SQLAlchemyError:
            logger.exception("Saving allocation config failed")
            return False
