from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator

from shiftboard import service
from shiftboard.config import AppConfig
from shiftboard.domain import AllocationConfig, Registration, ShiftSlot, ShiftType, WeekRange, WeekSettings
from shiftboard.errors import (
    GENERIC_FAILURE_MESSAGE,
    CapacityConflictError,
    InvariantViolation,
    NotFoundError,
    PersistenceFailure,
    RegistrationRejected,
    WeekRangeError,
)
from shiftboard.logging_config import setup_logging
from shiftboard.security import verify_admin_token
from shiftboard.staffing import GapReport
from shiftboard.store import ScheduleStore, SqlScheduleStore


@asynccontextmanager
async def lifespan(_: FastAPI):
    setup_logging(AppConfig.from_env().log_level)
    yield


app = FastAPI(title="Shiftboard", lifespan=lifespan)


@app.middleware("http")
async def disable_cache_for_api(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith("/api/"):
        response.headers["Cache-Control"] = "no-store, no-cache, max-age=0, must-revalidate"
        response.headers["Pragma"] = "no-cache"
    return response


@app.exception_handler(RegistrationRejected)
async def registration_rejected_handler(_: Request, exc: RegistrationRejected) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": exc.reason})


@app.exception_handler(WeekRangeError)
async def week_range_handler(_: Request, exc: WeekRangeError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(CapacityConflictError)
async def capacity_conflict_handler(_: Request, exc: CapacityConflictError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": str(exc), "conflicts": [conflict.to_dict() for conflict in exc.conflicts]},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(_: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(PersistenceFailure)
async def persistence_failure_handler(_: Request, __: PersistenceFailure) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": GENERIC_FAILURE_MESSAGE})


@app.exception_handler(InvariantViolation)
async def invariant_violation_handler(_: Request, __: InvariantViolation) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "Internal error"})


def get_store() -> ScheduleStore:
    return SqlScheduleStore()


def require_admin(admin_token: str | None = Header(default=None, alias="X-Admin-Token")) -> None:
    configured = AppConfig.from_env().admin_token
    if not configured:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Admin token is not configured")
    if not verify_admin_token(admin_token, configured):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")


class SlotPayload(BaseModel):
    date: date
    shift: ShiftType

    @classmethod
    def from_slot(cls, slot: ShiftSlot) -> "SlotPayload":
        return cls(date=slot.date, shift=slot.shift_type)


class WeekSettingsPayload(BaseModel):
    date_from: date
    date_to: date
    active: bool = False
    employees: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def strip_employee_names(self) -> "WeekSettingsPayload":
        names = []
        for name in self.employees:
            cleaned = name.strip()
            if cleaned and cleaned not in names:
                names.append(cleaned)
        self.employees = names
        return self

    @classmethod
    def from_settings(cls, settings: WeekSettings) -> "WeekSettingsPayload":
        return cls(
            date_from=settings.week.start,
            date_to=settings.week.end,
            active=settings.active,
            employees=settings.employees,
        )


class AllocationConfigPayload(BaseModel):
    fairness_enabled: bool = True
    max_shifts_per_employee: int | None = Field(default=None, ge=1)


class RegistrationCreate(BaseModel):
    employee_name: str
    shifts: list[SlotPayload]


class RegistrationOut(BaseModel):
    id: str
    employee_name: str
    week_key: str
    shifts: list[SlotPayload]
    timestamp: datetime
    approved: bool
    allocated: bool
    allocated_at: datetime | None = None

    @classmethod
    def from_registration(cls, registration: Registration) -> "RegistrationOut":
        return cls(
            id=registration.id,
            employee_name=registration.employee_name,
            week_key=registration.week_key,
            shifts=[SlotPayload.from_slot(slot) for slot in registration.shifts],
            timestamp=registration.timestamp,
            approved=registration.approved,
            allocated=registration.allocated,
            allocated_at=registration.allocated_at,
        )


class AllocationOut(BaseModel):
    processed: int
    overloaded_slots: int
    removed: list[dict[str, Any]]
    message: str
    total_shifts: int
    average_shifts_per_employee: float
    shift_distribution: dict[str, int]
    failed_ids: list[str]


class GapWarningOut(BaseModel):
    date: date
    shift: ShiftType
    current: int
    limit: int
    missing: int
    message: str


class GapReportOut(BaseModel):
    week_key: str
    has_warnings: bool
    warnings: list[GapWarningOut]
    total_missing: int

    @classmethod
    def from_report(cls, week: WeekRange, report: GapReport) -> "GapReportOut":
        return cls(
            week_key=week.key,
            has_warnings=report.has_warnings,
            warnings=[
                GapWarningOut(
                    date=w.date,
                    shift=w.shift_type,
                    current=w.current,
                    limit=w.limit,
                    missing=w.missing,
                    message=w.message,
                )
                for w in report.warnings
            ],
            total_missing=report.total_missing,
        )


class StatisticsOut(BaseModel):
    total_employees: int
    total_shifts: int
    shift_distribution: dict[str, int]
    weekday_shifts: int
    weekend_shifts: int
    total_missing: int


class EmployeeWeekOut(BaseModel):
    employee_name: str
    shifts: list[SlotPayload]
    hours: int


class ScheduleOut(BaseModel):
    week_key: str
    date_from: date
    date_to: date
    employees: list[EmployeeWeekOut]


def serialize_history_entry(entry: service.ScheduleHistoryEntry) -> ScheduleOut:
    return ScheduleOut(
        week_key=entry.week.key,
        date_from=entry.week.start,
        date_to=entry.week.end,
        employees=[
            EmployeeWeekOut(
                employee_name=employee.employee_name,
                shifts=[SlotPayload.from_slot(slot) for slot in employee.shifts],
                hours=employee.hours,
            )
            for employee in sorted(entry.employees, key=lambda e: e.employee_name)
        ],
    )


@app.get("/health")
def health() -> dict[str, bool | str]:
    return {"ok": True, "env": AppConfig.from_env().environment}


@app.get("/api/week", response_model=WeekSettingsPayload)
def get_week(store: ScheduleStore = Depends(get_store)) -> WeekSettingsPayload:
    settings = store.get_week_settings()
    if settings is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No registration week configured")
    return WeekSettingsPayload.from_settings(settings)


@app.put("/api/week", response_model=WeekSettingsPayload)
def put_week(
    payload: WeekSettingsPayload,
    _: None = Depends(require_admin),
    store: ScheduleStore = Depends(get_store),
) -> WeekSettingsPayload:
    settings = WeekSettings(
        week=WeekRange(payload.date_from, payload.date_to),
        active=payload.active,
        employees=payload.employees,
    )
    service.save_week_settings(store, settings)
    return WeekSettingsPayload.from_settings(settings)


@app.get("/api/allocation-config", response_model=AllocationConfigPayload)
def get_allocation_config(store: ScheduleStore = Depends(get_store)) -> AllocationConfigPayload:
    config = store.get_allocation_config()
    return AllocationConfigPayload(
        fairness_enabled=config.fairness_enabled,
        max_shifts_per_employee=config.max_shifts_per_employee,
    )


@app.put("/api/allocation-config", response_model=AllocationConfigPayload)
def put_allocation_config(
    payload: AllocationConfigPayload,
    _: None = Depends(require_admin),
    store: ScheduleStore = Depends(get_store),
) -> AllocationConfigPayload:
    config = AllocationConfig(
        fairness_enabled=payload.fairness_enabled,
        max_shifts_per_employee=payload.max_shifts_per_employee,
    )
    if not store.save_allocation_config(config):
        raise PersistenceFailure()
    return payload


@app.post("/api/registrations", response_model=RegistrationOut, status_code=status.HTTP_201_CREATED)
def create_registration(payload: RegistrationCreate, store: ScheduleStore = Depends(get_store)) -> RegistrationOut:
    selection = [ShiftSlot(item.date, item.shift) for item in payload.shifts]
    registration = service.submit_registration(store, payload.employee_name, selection)
    return RegistrationOut.from_registration(registration)


@app.get("/api/registrations", response_model=list[RegistrationOut])
def list_registrations(
    week_key: str | None = None,
    _: None = Depends(require_admin),
    store: ScheduleStore = Depends(get_store),
) -> list[RegistrationOut]:
    if week_key is None:
        settings = store.get_week_settings()
        if settings is None:
            return []
        week_key = settings.week.key
    return [RegistrationOut.from_registration(reg) for reg in store.get_registrations(week_key)]


@app.delete("/api/registrations/{registration_id}")
def remove_registration(
    registration_id: str,
    _: None = Depends(require_admin),
    store: ScheduleStore = Depends(get_store),
) -> dict[str, bool]:
    service.delete_registration(store, registration_id)
    return {"ok": True}


@app.post("/api/registrations/{registration_id}/approve", response_model=RegistrationOut)
def approve_registration(
    registration_id: str,
    _: None = Depends(require_admin),
    store: ScheduleStore = Depends(get_store),
) -> RegistrationOut:
    return RegistrationOut.from_registration(service.approve_registration(store, registration_id))


@app.post("/api/allocation", response_model=AllocationOut)
def allocate_week(
    week_key: str | None = None,
    _: None = Depends(require_admin),
    store: ScheduleStore = Depends(get_store),
) -> AllocationOut:
    report = service.run_allocation(store, week_key)
    result = report.result
    return AllocationOut(
        processed=result.processed,
        overloaded_slots=len(result.overloads),
        removed=[
            {"registration_id": r.registration_id, "employee_name": r.employee_name, **r.slot.to_dict()}
            for r in result.removals
        ],
        message=result.message,
        total_shifts=report.stats.total_shifts,
        average_shifts_per_employee=report.stats.average_shifts_per_employee,
        shift_distribution=report.stats.shift_distribution,
        failed_ids=report.failed_ids,
    )


@app.get("/api/warnings", response_model=GapReportOut)
def get_warnings(week_key: str | None = None, store: ScheduleStore = Depends(get_store)) -> GapReportOut:
    week, report = service.week_gaps(store, week_key)
    return GapReportOut.from_report(week, report)


@app.get("/api/statistics", response_model=StatisticsOut)
def get_statistics(week_key: str | None = None, store: ScheduleStore = Depends(get_store)) -> StatisticsOut:
    stats = service.week_statistics(store, week_key)
    return StatisticsOut(
        total_employees=stats.total_employees,
        total_shifts=stats.total_shifts,
        shift_distribution=stats.shift_distribution,
        weekday_shifts=stats.weekday_shifts,
        weekend_shifts=stats.weekend_shifts,
        total_missing=sum(w.missing for w in stats.warnings),
    )


@app.get("/api/schedules", response_model=list[ScheduleOut])
def list_schedules(store: ScheduleStore = Depends(get_store)) -> list[ScheduleOut]:
    return [serialize_history_entry(entry) for entry in service.schedule_history(store)]


@app.get("/api/schedules/{week_key}", response_model=ScheduleOut)
def get_schedule(week_key: str, store: ScheduleStore = Depends(get_store)) -> ScheduleOut:
    schedule = store.get_finalized_schedule(week_key)
    if schedule is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Finalized schedule not found")
    return serialize_history_entry(service.history_entry(schedule))


@app.delete("/api/schedules/{week_key}")
def delete_schedule(
    week_key: str,
    _: None = Depends(require_admin),
    store: ScheduleStore = Depends(get_store),
) -> dict[str, bool]:
    service.delete_schedule(store, week_key)
    return {"ok": True}
