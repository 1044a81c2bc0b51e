"""Reservation arbiter: turns a requested slot into at most one booking.

Claims for one service point are serialized in-process by ``ServicePointLocks``
and across processes by ``SELECT ... FOR UPDATE`` on the service point row.
The partial unique index ``uq_appointment_active_slot`` catches anything that
slips past both; its violation is reported as ``SlotTaken`` like a lost race.
"""
import uuid
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from branchqueue.core.base import utcnow
from branchqueue.core.config import settings
from branchqueue.core.errors import SlotTaken, ValidationError
from branchqueue.core.locks import ServicePointLocks, service_point_locks
from branchqueue.core.security import Principal
from branchqueue.modules.appointments import lifecycle
from branchqueue.modules.appointments.codes import CodeSpaceExhausted, issue_code
from branchqueue.modules.appointments.models import Appointment
from branchqueue.modules.appointments.repository import AppointmentRepository
from branchqueue.modules.appointments.schemas import CustomerIn
from branchqueue.modules.audit.service import AuditService
from branchqueue.modules.availability.service import AvailabilityService
from branchqueue.modules.catalog.models import Service, ServicePoint
from branchqueue.modules.catalog.repository import CatalogRepository
from branchqueue.modules.catalog.service import CatalogService
from branchqueue.modules.events.outbox import OutboxService
from branchqueue.modules.forms.service import FormBindingService

logger = logging.getLogger(__name__)


class CodeCollision(Exception):
    pass


def as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def customer_fields(customer: CustomerIn) -> dict:
    return {
        "customer_name": customer.name.strip(),
        "customer_email": customer.email,
        "customer_phone": customer.phone,
        "form_data": customer.form_data,
    }


async def validate_request(s: AsyncSession, service_id: uuid.UUID, sp_id: uuid.UUID, customer: CustomerIn) -> tuple[Service, ServicePoint]:
    """Offering, customer and form checks shared by bookings and kiosk turns; nothing is written."""
    service, sp = await CatalogService(s).resolve_offering(service_id, sp_id)
    if not customer.name or not customer.name.strip():
        raise ValidationError(
            "Customer name is required",
            details={"fields": [{"field": "name", "label": "Name", "message": "is required"}]},
        )
    await FormBindingService(s).require_valid(service, customer.form_data)
    return service, sp


class ReservationArbiter:
    def __init__(self, s: AsyncSession, clock: Callable[[], datetime] = utcnow, locks: ServicePointLocks = service_point_locks):
        self.s = s
        self.clock = clock
        self.locks = locks
        self.catalog = CatalogRepository(s)
        self.appointments = AppointmentRepository(s)

    async def reserve(self, service_id: uuid.UUID, sp_id: uuid.UUID, scheduled_at: datetime, customer: CustomerIn, actor: Principal | None = None) -> Appointment:
        scheduled_at = as_utc(scheduled_at)
        for attempt in range(1, settings.CONFIRMATION_CODE_MAX_ATTEMPTS + 1):
            try:
                return await self._reserve_once(service_id, sp_id, scheduled_at, customer, actor)
            except CodeCollision:
                logger.warning(f"Confirmation code collided on insert (attempt {attempt}); retrying")
        raise CodeSpaceExhausted("Could not issue a unique confirmation code")

    async def _reserve_once(self, service_id, sp_id, scheduled_at, customer, actor) -> Appointment:
        try:
            service, sp = await validate_request(self.s, service_id, sp_id, customer)
            if not await AvailabilityService(self.s, self.clock).is_bookable_slot(service, scheduled_at):
                raise ValidationError(
                    "The requested time is not a bookable slot",
                    details={"service_id": str(service.id), "scheduled_at": scheduled_at.isoformat()},
                )
            policy = await self.catalog.get_policy(service.branch_id)
            status = lifecycle.CONFIRMED if policy.auto_confirm else lifecycle.SCHEDULED

            async with self.locks.hold(sp.id):
                appt = await self.claim(service, sp.id, scheduled_at, status=status, **customer_fields(customer))
                await AuditService(self.s).log(actor, "reserve", appt.kind, appt.id, {"status": status}, occurred_at=self.clock())
                await OutboxService(self.s).enqueue("APPOINTMENT_RESERVED", "appointment", appt.id, {
                    "service_id": str(appt.service_id),
                    "service_point_id": str(appt.service_point_id),
                    "scheduled_at": appt.scheduled_at.isoformat(),
                    "ends_at": appt.ends_at.isoformat(),
                    "confirmation_code": appt.confirmation_code,
                    "status": appt.status,
                }, occurred_at=self.clock())
                await self.s.commit()
        except IntegrityError as e:
            await self.s.rollback()
            raise self.integrity_failure(e, sp_id, scheduled_at) from e
        except Exception:
            await self.s.rollback()
            raise
        logger.info(f"Reserved {appt.confirmation_code} on service point {appt.service_point_id} at {appt.scheduled_at.isoformat()}")
        return appt

    async def claim(self, service: Service, sp_id: uuid.UUID, scheduled_at: datetime, *, status: str, **fields) -> Appointment:
        """Insert a booking for ``[scheduled_at, scheduled_at + duration)`` on ``sp_id``.

        The caller holds the service point lock and owns the transaction; an
        overlapping live booking raises ``SlotTaken``.
        """
        await self.catalog.lock_service_point(sp_id)
        ends_at = scheduled_at + timedelta(minutes=service.duration_minutes)
        clash = await self.appointments.list_busy(sp_id, scheduled_at, ends_at)
        if clash:
            logger.info(f"Slot {scheduled_at.isoformat()} on service point {sp_id} already taken by {clash[0].confirmation_code}")
            raise SlotTaken(
                "This slot has just been taken; please pick another one",
                details={"service_point_id": str(sp_id), "scheduled_at": scheduled_at.isoformat()},
            )
        code = await issue_code(self.appointments)
        return await self.appointments.create(
            kind="appointment",
            service_id=service.id,
            branch_id=service.branch_id,
            service_point_id=sp_id,
            scheduled_at=scheduled_at,
            ends_at=ends_at,
            duration_minutes=service.duration_minutes,
            confirmation_code=code,
            status=status,
            **fields,
        )

    @staticmethod
    def integrity_failure(e: IntegrityError, sp_id: uuid.UUID, scheduled_at: datetime) -> Exception:
        if "confirmation_code" in str(e.orig):
            return CodeCollision()
        logger.info(f"Unique slot index rejected a booking on service point {sp_id} at {scheduled_at.isoformat()}")
        return SlotTaken(
            "This slot has just been taken; please pick another one",
            details={"service_point_id": str(sp_id), "scheduled_at": scheduled_at.isoformat()},
        )
