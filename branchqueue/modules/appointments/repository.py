import uuid
from datetime import datetime
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, exists
from branchqueue.modules.appointments.models import Appointment, AppointmentReschedule

INACTIVE = ("cancelled", "no-show")

class AppointmentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **data) -> Appointment:
        obj = Appointment(**data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get(self, appt_id: uuid.UUID) -> Appointment | None:
        return await self.session.get(Appointment, appt_id)

    async def get_for_update(self, appt_id: uuid.UUID) -> Appointment | None:
        res = await self.session.execute(
            select(Appointment)
            .where(Appointment.id == appt_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return res.scalar_one_or_none()

    async def get_by_code(self, code: str) -> Appointment | None:
        res = await self.session.execute(select(Appointment).where(Appointment.confirmation_code == code))
        return res.scalar_one_or_none()

    async def code_exists(self, code: str) -> bool:
        res = await self.session.execute(select(exists().where(Appointment.confirmation_code == code)))
        return bool(res.scalar())

    async def list_busy(self, sp_id: uuid.UUID, start: datetime, end: datetime, *, exclude_id: uuid.UUID | None = None) -> Sequence[Appointment]:
        """Live scheduled bookings on a service point overlapping [start, end)."""
        cond = [
            Appointment.service_point_id == sp_id,
            Appointment.kind == "appointment",
            Appointment.status.notin_(INACTIVE),
            Appointment.scheduled_at < end,
            Appointment.ends_at > start,
        ]
        if exclude_id is not None:
            cond.append(Appointment.id != exclude_id)
        res = await self.session.execute(select(Appointment).where(and_(*cond)).order_by(Appointment.scheduled_at.asc()))
        return res.scalars().all()

    async def list_waiting(self, sp_id: uuid.UUID) -> Sequence[Appointment]:
        q = (
            select(Appointment)
            .where(Appointment.service_point_id == sp_id, Appointment.status == "waiting")
            .order_by(Appointment.is_priority.desc(), Appointment.queued_at.asc(), Appointment.ticket_number.asc())
        )
        res = await self.session.execute(q)
        return res.scalars().all()

    async def get_serving(self, sp_id: uuid.UUID) -> Appointment | None:
        res = await self.session.execute(select(Appointment).where(
            Appointment.service_point_id == sp_id, Appointment.status == "serving"
        ).order_by(Appointment.served_at.asc()).limit(1))
        return res.scalar_one_or_none()

    # reschedule history
    async def add_reschedule(self, **data) -> AppointmentReschedule:
        obj = AppointmentReschedule(**data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def list_reschedules(self, root_id: uuid.UUID) -> Sequence[AppointmentReschedule]:
        res = await self.session.execute(
            select(AppointmentReschedule)
            .where(AppointmentReschedule.root_appointment_id == root_id)
            .order_by(AppointmentReschedule.created_at.asc())
        )
        return res.scalars().all()
