import uuid
from datetime import datetime
from typing import Literal
from pydantic import BaseModel, ConfigDict, EmailStr, Field

StatusName = Literal["scheduled", "confirmed", "waiting", "serving", "completed", "cancelled", "no-show"]

class CustomerIn(BaseModel):
    name: str = Field(max_length=160)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=40)
    form_data: dict | None = None

class ReserveRequest(BaseModel):
    service_id: uuid.UUID
    service_point_id: uuid.UUID
    scheduled_at: datetime
    customer: CustomerIn

class TurnRequest(BaseModel):
    service_id: uuid.UUID
    service_point_id: uuid.UUID
    customer: CustomerIn

class StatusChange(BaseModel):
    status: StatusName
    service_point_id: uuid.UUID | None = None  # check-in at a point other than the booked one

class CancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=255)

class RescheduleRequest(BaseModel):
    scheduled_at: datetime
    service_point_id: uuid.UUID | None = None
    reason: str | None = Field(default=None, max_length=255)

class TransferRequest(BaseModel):
    service_point_id: uuid.UUID

class AppointmentOut(BaseModel):
    id: uuid.UUID
    kind: str
    service_id: uuid.UUID
    service_point_id: uuid.UUID | None
    branch_id: uuid.UUID
    scheduled_at: datetime
    ends_at: datetime
    duration_minutes: int
    confirmation_code: str
    status: str
    customer_name: str
    customer_email: str | None = None
    customer_phone: str | None = None
    form_data: dict | None = None
    created_at: datetime
    queued_at: datetime | None = None
    ticket_number: int | None = None
    is_priority: bool = False
    queue_position: int | None = None
    estimated_wait_minutes: int | None = None
    served_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None
    no_show_at: datetime | None = None
    root_appointment_id: uuid.UUID | None = None
    rescheduled_from_id: uuid.UUID | None = None
    reschedule_count: int = 0
    model_config = ConfigDict(from_attributes=True)

class RescheduleOut(BaseModel):
    id: uuid.UUID
    root_appointment_id: uuid.UUID
    appointment_id: uuid.UUID
    previous_appointment_id: uuid.UUID
    original_scheduled_at: datetime
    new_scheduled_at: datetime
    actor: str
    reason: str | None = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)

class QueueSnapshotOut(BaseModel):
    service_point_id: uuid.UUID
    waiting: list[AppointmentOut]
    serving: AppointmentOut | None = None
