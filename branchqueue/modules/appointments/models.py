import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, ForeignKey, JSON, Index, text
from branchqueue.core.base import Base, TimestampedMixin, UTCDateTime

_ACTIVE_BOOKING = text("kind = 'appointment' AND status NOT IN ('cancelled', 'no-show')")

class Appointment(Base, TimestampedMixin):
    __table_args__ = (
        # backstop for the arbiter: one live booking per service point and start
        Index(
            "uq_appointment_active_slot", "service_point_id", "scheduled_at",
            unique=True, postgresql_where=_ACTIVE_BOOKING, sqlite_where=_ACTIVE_BOOKING,
        ),
        Index("ix_appointment_queue", "service_point_id", "status"),
    )

    kind: Mapped[str] = mapped_column(String(16), default="appointment")  # appointment | turn
    service_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("service.id"), index=True)
    service_point_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("service_point.id"), nullable=True)
    branch_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("branch.id"), index=True)

    scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime())
    ends_at: Mapped[datetime] = mapped_column(UTCDateTime())
    duration_minutes: Mapped[int] = mapped_column(Integer)  # service duration at booking time

    confirmation_code: Mapped[str] = mapped_column(String(16), unique=True, index=True)
    status: Mapped[str] = mapped_column(String(16), default="scheduled")  # scheduled, confirmed, waiting, serving, completed, cancelled, no-show

    # customer
    customer_name: Mapped[str] = mapped_column(String(160))
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    form_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # queue
    queued_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    ticket_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_priority: Mapped[bool] = mapped_column(Boolean, default=False)
    queue_position: Mapped[int | None] = mapped_column(Integer, nullable=True)
    estimated_wait_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # lifecycle stamps
    served_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    no_show_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # reschedule lineage
    root_appointment_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)
    rescheduled_from_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    reschedule_count: Mapped[int] = mapped_column(Integer, default=0)


class AppointmentReschedule(Base, TimestampedMixin):
    __tablename__ = "appointment_reschedule"
    root_appointment_id: Mapped[uuid.UUID] = mapped_column(index=True)
    appointment_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("appointment.id"))
    previous_appointment_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("appointment.id"))
    original_scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime())
    new_scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime())
    actor: Mapped[str] = mapped_column(String(80))
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
