import uuid
import logging
from datetime import datetime
from typing import Callable, Sequence
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from branchqueue.core.base import utcnow
from branchqueue.core.config import settings
from branchqueue.core.errors import InvalidTransition, NotFound, ValidationError
from branchqueue.core.locks import ServicePointLocks, service_point_locks
from branchqueue.core.security import Principal
from branchqueue.modules.appointments import lifecycle
from branchqueue.modules.appointments.codes import CodeSpaceExhausted
from branchqueue.modules.appointments.models import Appointment, AppointmentReschedule
from branchqueue.modules.appointments.repository import AppointmentRepository
from branchqueue.modules.appointments.reservation import ReservationArbiter, CodeCollision, as_utc
from branchqueue.modules.audit.service import AuditService
from branchqueue.modules.availability.service import AvailabilityService
from branchqueue.modules.catalog.repository import CatalogRepository
from branchqueue.modules.catalog.service import CatalogService
from branchqueue.modules.events.outbox import OutboxService
from branchqueue.modules.queue.service import QueueService

logger = logging.getLogger(__name__)

class AppointmentService:
    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utcnow, locks: ServicePointLocks = service_point_locks):
        self.session = session
        self.clock = clock
        self.locks = locks
        self.repo = AppointmentRepository(session)
        self.catalog = CatalogRepository(session)
        self.queue = QueueService(session, clock, locks)

    async def get(self, appt_id: uuid.UUID) -> Appointment:
        appt = await self.repo.get(appt_id)
        if appt is None:
            raise NotFound("Appointment not found", details={"appointment_id": str(appt_id)})
        return appt

    async def get_by_code(self, code: str) -> Appointment:
        appt = await self.repo.get_by_code(code.strip().upper())
        if appt is None:
            raise NotFound("No appointment or ticket with this confirmation code", details={"confirmation_code": code})
        return appt

    async def transition_status(self, appt_id: uuid.UUID, new_status: str, actor: Principal | None = None,
                                service_point_id: uuid.UUID | None = None, reason: str | None = None) -> Appointment:
        appt = await self.get(appt_id)
        lifecycle.ensure_transition(appt, new_status)

        source_sp_id = appt.service_point_id
        target_sp_id = service_point_id or source_sp_id
        if new_status == lifecycle.WAITING:
            if target_sp_id is None:
                raise ValidationError("A service point is required to check in", details={"appointment_id": str(appt_id)})
            if target_sp_id != source_sp_id:
                await CatalogService(self.session).resolve_offering(appt.service_id, target_sp_id)

        now = self.clock()
        try:
            async with self.locks.hold(source_sp_id, target_sp_id):
                for sp in sorted({p for p in (source_sp_id, target_sp_id) if p is not None}, key=str):
                    await self.catalog.lock_service_point(sp)
                appt = await self.repo.get_for_update(appt_id)
                previous = appt.status
                lifecycle.ensure_transition(appt, new_status)

                if new_status == lifecycle.CANCELLED:
                    policy = await self.catalog.get_policy(appt.branch_id)
                    lifecycle.check_cancellation(appt, policy, now, actor)
                elif new_status == lifecycle.SERVING:
                    serving = await self.repo.get_serving(appt.service_point_id)
                    if serving is not None and serving.id != appt.id:
                        raise InvalidTransition(
                            f"Service point is still serving {serving.confirmation_code}",
                            details={"service_point_id": str(appt.service_point_id), "serving": str(serving.id)},
                        )
                elif new_status == lifecycle.WAITING:
                    await self.queue.admit(appt, target_sp_id, now)

                lifecycle.apply_status(appt, new_status, now)
                if new_status == lifecycle.CANCELLED and reason:
                    appt.cancel_reason = reason
                if lifecycle.WAITING in (previous, new_status):
                    await self.queue.recompute(appt.service_point_id)
                await lifecycle.record_transition(self.session, appt, previous, actor, now)
                await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return appt

    async def cancel(self, appt_id: uuid.UUID, reason: str | None = None, actor: Principal | None = None) -> Appointment:
        return await self.transition_status(appt_id, lifecycle.CANCELLED, actor, reason=reason)

    async def reschedule(self, appt_id: uuid.UUID, new_scheduled_at: datetime, actor: Principal | None = None,
                         service_point_id: uuid.UUID | None = None, reason: str | None = None) -> Appointment:
        new_scheduled_at = as_utc(new_scheduled_at)
        for attempt in range(1, settings.CONFIRMATION_CODE_MAX_ATTEMPTS + 1):
            try:
                return await self._reschedule_once(appt_id, new_scheduled_at, actor, service_point_id, reason)
            except CodeCollision:
                logger.warning(f"Confirmation code collided on reschedule (attempt {attempt}); retrying")
        raise CodeSpaceExhausted("Could not issue a unique confirmation code")

    async def _reschedule_once(self, appt_id, new_scheduled_at, actor, service_point_id, reason) -> Appointment:
        now = self.clock()
        appt = await self.get(appt_id)
        policy = await self.catalog.get_policy(appt.branch_id)
        lifecycle.check_reschedule(appt, policy, now, actor, new_scheduled_at)

        catalog = CatalogService(self.session)
        source_sp_id = appt.service_point_id
        target_sp_id = service_point_id or source_sp_id
        if target_sp_id is None:
            raise ValidationError("A service point is required to reschedule", details={"appointment_id": str(appt_id)})
        if target_sp_id == source_sp_id:
            service = await catalog.active_service(appt.service_id)
        else:
            service, _ = await catalog.resolve_offering(appt.service_id, target_sp_id)
        if not await AvailabilityService(self.session, self.clock).is_bookable_slot(service, new_scheduled_at):
            raise ValidationError(
                "The requested time is not a bookable slot",
                details={"service_id": str(service.id), "scheduled_at": new_scheduled_at.isoformat()},
            )

        arbiter = ReservationArbiter(self.session, self.clock, self.locks)
        try:
            async with self.locks.hold(source_sp_id, target_sp_id):
                for sp in sorted({source_sp_id, target_sp_id}, key=str):
                    await self.catalog.lock_service_point(sp)
                old = await self.repo.get_for_update(appt_id)
                lifecycle.check_reschedule(old, policy, now, actor, new_scheduled_at)
                previous = old.status
                original_at = old.scheduled_at

                lifecycle.apply_status(old, lifecycle.CANCELLED, now)
                old.cancel_reason = "rescheduled"
                await self.session.flush()  # frees the old slot for the unique index

                root_id = old.root_appointment_id or old.id
                new = await arbiter.claim(
                    service, target_sp_id, new_scheduled_at,
                    status=previous,
                    customer_name=old.customer_name,
                    customer_email=old.customer_email,
                    customer_phone=old.customer_phone,
                    form_data=old.form_data,
                    root_appointment_id=root_id,
                    rescheduled_from_id=old.id,
                    reschedule_count=(old.reschedule_count or 0) + 1,
                )
                await self.repo.add_reschedule(
                    root_appointment_id=root_id,
                    appointment_id=new.id,
                    previous_appointment_id=old.id,
                    original_scheduled_at=original_at,
                    new_scheduled_at=new.scheduled_at,
                    actor=actor.label if actor else "system",
                    reason=reason,
                )
                await lifecycle.record_transition(self.session, old, previous, actor, now, rescheduled_to=str(new.id))
                await AuditService(self.session).log(actor, "reschedule", new.kind, new.id, {
                    "previous_appointment_id": str(old.id),
                    "original_scheduled_at": original_at.isoformat(),
                    "new_scheduled_at": new.scheduled_at.isoformat(),
                    "reason": reason,
                }, occurred_at=now)
                await OutboxService(self.session).enqueue("APPOINTMENT_RESCHEDULED", "appointment", new.id, {
                    "previous_appointment_id": str(old.id),
                    "service_point_id": str(new.service_point_id),
                    "original_scheduled_at": original_at.isoformat(),
                    "new_scheduled_at": new.scheduled_at.isoformat(),
                    "confirmation_code": new.confirmation_code,
                    "reschedule_count": new.reschedule_count,
                }, occurred_at=now)
                await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ReservationArbiter.integrity_failure(e, target_sp_id, new_scheduled_at) from e
        except Exception:
            await self.session.rollback()
            raise
        logger.info(f"Rescheduled {old.confirmation_code} -> {new.confirmation_code} at {new.scheduled_at.isoformat()}")
        return new

    async def reschedule_history(self, appt_id: uuid.UUID) -> Sequence[AppointmentReschedule]:
        appt = await self.get(appt_id)
        return await self.repo.list_reschedules(appt.root_appointment_id or appt.id)
