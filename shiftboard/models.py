from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import Boolean, Date, DateTime, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from shiftboard.db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WeekSettingsRecord(Base):
    __tablename__ = "week_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    date_from: Mapped[date] = mapped_column(Date, nullable=False)
    date_to: Mapped[date] = mapped_column(Date, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    employees: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class RegistrationRecord(Base):
    __tablename__ = "registrations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    week_key: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    employee_name: Mapped[str] = mapped_column(String(255), nullable=False)
    shifts: Mapped[list[dict[str, str]]] = mapped_column(JSON, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    allocated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    allocated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class FinalizedScheduleRecord(Base):
    __tablename__ = "finalized_schedules"

    week_key: Mapped[str] = mapped_column(String(10), primary_key=True)
    shifts: Mapped[list[dict]] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class AllocationConfigRecord(Base):
    __tablename__ = "allocation_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    fairness_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_shifts_per_employee: Mapped[int | None] = mapped_column(Integer, nullable=True)
