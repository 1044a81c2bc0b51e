import uuid
from datetime import time
from pydantic import BaseModel, Field, ConfigDict, field_validator

class BookingPolicy(BaseModel):
    """Read-only view of a branch's booking rules, with the defaults for branches without a policy row."""
    model_config = ConfigDict(from_attributes=True)

    max_advance_booking_days: int = Field(default=30, ge=0)
    min_advance_booking_hours: int = Field(default=0, ge=0)
    allow_same_day_booking: bool = True
    auto_confirm: bool = False

    allow_cancellation: bool = True
    cancellation_hours: int = Field(default=24, ge=0)
    allow_rescheduling: bool = True
    reschedule_hours: int = Field(default=4, ge=0)
    max_reschedules: int = Field(default=3, ge=0)

    emergency_mode: bool = False
    skip_queue: bool = True
    priority_service_ids: list[uuid.UUID] = []

    @field_validator("priority_service_ids", mode="before")
    @classmethod
    def _none_is_empty(cls, v):
        return v or []

    def is_priority(self, service_id: uuid.UUID) -> bool:
        return self.emergency_mode and self.skip_queue and service_id in self.priority_service_ids

class ServiceOut(BaseModel):
    id: uuid.UUID
    name: str
    duration_minutes: int
    branch_id: uuid.UUID
    form_id: uuid.UUID | None = None
    is_active: bool
    model_config = ConfigDict(from_attributes=True)

class ScheduleOut(BaseModel):
    id: uuid.UUID
    service_id: uuid.UUID
    day_of_week: int
    start_time: time
    end_time: time
    is_active: bool
    model_config = ConfigDict(from_attributes=True)

class ServicePointOut(BaseModel):
    id: uuid.UUID
    branch_id: uuid.UUID
    name: str
    is_active: bool
    model_config = ConfigDict(from_attributes=True)
