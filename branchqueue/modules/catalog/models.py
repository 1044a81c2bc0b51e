import uuid
from datetime import date, time
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, Date, Time, ForeignKey, JSON, UniqueConstraint, CheckConstraint
from branchqueue.core.base import Base, TimestampedMixin

class Branch(Base, TimestampedMixin):
    name: Mapped[str] = mapped_column(String(160))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


# One row per branch; a missing row means the defaults below.
class BranchPolicy(Base, TimestampedMixin):
    __tablename__ = "branch_policy"
    branch_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("branch.id"), unique=True)

    # booking window
    max_advance_booking_days: Mapped[int] = mapped_column(Integer, default=30)
    min_advance_booking_hours: Mapped[int] = mapped_column(Integer, default=0)
    allow_same_day_booking: Mapped[bool] = mapped_column(Boolean, default=True)
    auto_confirm: Mapped[bool] = mapped_column(Boolean, default=False)

    # cancellation / rescheduling
    allow_cancellation: Mapped[bool] = mapped_column(Boolean, default=True)
    cancellation_hours: Mapped[int] = mapped_column(Integer, default=24)
    allow_rescheduling: Mapped[bool] = mapped_column(Boolean, default=True)
    reschedule_hours: Mapped[int] = mapped_column(Integer, default=4)
    max_reschedules: Mapped[int] = mapped_column(Integer, default=3)

    # emergency mode
    emergency_mode: Mapped[bool] = mapped_column(Boolean, default=False)
    skip_queue: Mapped[bool] = mapped_column(Boolean, default=True)
    priority_service_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)  # ["<service uuid>", ...]


# Holidays and exceptional days
class BranchClosure(Base, TimestampedMixin):
    __tablename__ = "branch_closure"
    __table_args__ = (UniqueConstraint("branch_id", "closure_date"),)
    branch_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("branch.id"), index=True)
    closure_date: Mapped[date] = mapped_column(Date)
    reason: Mapped[str | None] = mapped_column(String(160), nullable=True)
    closed: Mapped[bool] = mapped_column(Boolean, default=True)
    open_time: Mapped[time | None] = mapped_column(Time, nullable=True)   # custom hours when not closed
    close_time: Mapped[time | None] = mapped_column(Time, nullable=True)


class Service(Base, TimestampedMixin):
    __table_args__ = (CheckConstraint("duration_minutes > 0", name="ck_service_duration_positive"),)
    name: Mapped[str] = mapped_column(String(160))
    duration_minutes: Mapped[int] = mapped_column(Integer)
    branch_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("branch.id"), index=True)
    form_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("form.id"), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


# Recurring weekly availability: day_of_week 0=Sun..6=Sat, wall-clock times
class Schedule(Base, TimestampedMixin):
    __table_args__ = (CheckConstraint("start_time < end_time", name="ck_schedule_window"),)
    service_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("service.id"), index=True)
    day_of_week: Mapped[int] = mapped_column(Integer)  # 0..6
    start_time: Mapped[time] = mapped_column(Time)
    end_time: Mapped[time] = mapped_column(Time)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class ServicePoint(Base, TimestampedMixin):
    __tablename__ = "service_point"
    branch_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("branch.id"), index=True)
    name: Mapped[str] = mapped_column(String(120))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class ServicePointService(Base, TimestampedMixin):
    __tablename__ = "service_point_service"
    __table_args__ = (UniqueConstraint("service_point_id", "service_id"),)
    service_point_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("service_point.id"), index=True)
    service_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("service.id"), index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
