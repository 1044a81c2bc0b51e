import uuid
import logging
from datetime import datetime, timedelta
from typing import Callable
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from branchqueue.core.base import utcnow
from branchqueue.core.config import settings
from branchqueue.core.errors import InvalidTransition, NotFound, SlotTaken, ValidationError
from branchqueue.core.locks import ServicePointLocks, service_point_locks
from branchqueue.core.security import Principal
from branchqueue.modules.appointments import lifecycle
from branchqueue.modules.appointments.codes import CodeSpaceExhausted, issue_code
from branchqueue.modules.appointments.models import Appointment
from branchqueue.modules.appointments.repository import AppointmentRepository
from branchqueue.modules.appointments.reservation import customer_fields, validate_request
from branchqueue.modules.appointments.schemas import CustomerIn
from branchqueue.modules.audit.service import AuditService
from branchqueue.modules.catalog.repository import CatalogRepository
from branchqueue.modules.catalog.service import CatalogService
from branchqueue.modules.events.outbox import OutboxService
from branchqueue.modules.queue import tracker
from branchqueue.modules.queue.repository import QueueRepository

logger = logging.getLogger(__name__)

class QueueService:
    def __init__(self, s: AsyncSession, clock: Callable[[], datetime] = utcnow, locks: ServicePointLocks = service_point_locks):
        self.s = s
        self.clock = clock
        self.locks = locks
        self.repo = QueueRepository(s)
        self.catalog = CatalogRepository(s)
        self.appointments = AppointmentRepository(s)

    def _today(self, now: datetime):
        return now.astimezone(settings.tz).date()

    # ---- building blocks; the caller holds the service point lock and commits ----

    async def recompute(self, sp_id: uuid.UUID | None) -> list[Appointment]:
        if sp_id is None:
            return []
        waiting = tracker.recompute(await self.appointments.list_waiting(sp_id))
        await self.s.flush()
        return waiting

    async def admit(self, appt: Appointment, sp_id: uuid.UUID, now: datetime) -> None:
        """Put a checked-in booking (or transferred ticket) at the tail of ``sp_id``'s queue."""
        if appt.kind == "appointment" and sp_id != appt.service_point_id:
            clash = await self.appointments.list_busy(sp_id, appt.scheduled_at, appt.ends_at, exclude_id=appt.id)
            if clash:
                raise SlotTaken(
                    "The target service point has another booking at this time",
                    details={"service_point_id": str(sp_id), "scheduled_at": appt.scheduled_at.isoformat()},
                )
        policy = await self.catalog.get_policy(appt.branch_id)
        appt.service_point_id = sp_id
        appt.ticket_number = await self.repo.next_ticket_number(sp_id, self._today(now))
        appt.queued_at = now
        appt.is_priority = appt.is_priority or policy.is_priority(appt.service_id)

    # ---- operations ----

    async def issue_turn(self, service_id: uuid.UUID, sp_id: uuid.UUID, customer: CustomerIn, actor: Principal | None = None) -> Appointment:
        for attempt in range(1, settings.CONFIRMATION_CODE_MAX_ATTEMPTS + 1):
            try:
                return await self._issue_once(service_id, sp_id, customer, actor)
            except IntegrityError as e:
                if "confirmation_code" not in str(e.orig):
                    raise
                logger.warning(f"Turn code collided on insert (attempt {attempt}); retrying")
        raise CodeSpaceExhausted("Could not issue a unique turn code")

    async def _issue_once(self, service_id, sp_id, customer, actor) -> Appointment:
        try:
            service, sp = await validate_request(self.s, service_id, sp_id, customer)
            policy = await self.catalog.get_policy(service.branch_id)
            now = self.clock()
            async with self.locks.hold(sp.id):
                await self.catalog.lock_service_point(sp.id)
                number = await self.repo.next_ticket_number(sp.id, self._today(now))
                code = await issue_code(self.appointments, ticket_number=number)
                appt = await self.appointments.create(
                    kind="turn",
                    service_id=service.id,
                    branch_id=service.branch_id,
                    service_point_id=sp.id,
                    scheduled_at=now,
                    ends_at=now + timedelta(minutes=service.duration_minutes),
                    duration_minutes=service.duration_minutes,
                    confirmation_code=code,
                    status=lifecycle.WAITING,
                    queued_at=now,
                    ticket_number=number,
                    is_priority=policy.is_priority(service.id),
                    **customer_fields(customer),
                )
                await self.recompute(sp.id)
                await AuditService(self.s).log(actor, "issue_turn", "turn", appt.id, {"ticket_number": number}, occurred_at=now)
                await OutboxService(self.s).enqueue("TURN_ISSUED", "turn", appt.id, {
                    "service_id": str(service.id),
                    "service_point_id": str(sp.id),
                    "ticket_number": number,
                    "confirmation_code": code,
                    "queue_position": appt.queue_position,
                    "estimated_wait_minutes": appt.estimated_wait_minutes,
                    "is_priority": appt.is_priority,
                }, occurred_at=now)
                await self.s.commit()
        except Exception:
            await self.s.rollback()
            raise
        logger.info(f"Issued turn {appt.confirmation_code} at service point {appt.service_point_id}: position {appt.queue_position}, ~{appt.estimated_wait_minutes} min")
        return appt

    async def snapshot(self, sp_id: uuid.UUID) -> dict:
        sp = await self.catalog.get_service_point(sp_id)
        if sp is None:
            raise NotFound("Service point not found", details={"service_point_id": str(sp_id)})
        return {
            "service_point_id": sp.id,
            "waiting": list(await self.appointments.list_waiting(sp.id)),
            "serving": await self.appointments.get_serving(sp.id),
        }

    async def call_next(self, sp_id: uuid.UUID, actor: Principal | None = None) -> Appointment:
        await CatalogService(self.s).active_service_point(sp_id)
        now = self.clock()
        try:
            async with self.locks.hold(sp_id):
                await self.catalog.lock_service_point(sp_id)
                serving = await self.appointments.get_serving(sp_id)
                if serving is not None:
                    raise InvalidTransition(
                        f"Service point is still serving {serving.confirmation_code}",
                        details={"service_point_id": str(sp_id), "serving": str(serving.id)},
                    )
                waiting = await self.recompute(sp_id)
                if not waiting:
                    raise NotFound("No tickets waiting at this service point", details={"service_point_id": str(sp_id)})
                nxt = waiting[0]
                lifecycle.ensure_transition(nxt, lifecycle.SERVING)
                previous = nxt.status
                lifecycle.apply_status(nxt, lifecycle.SERVING, now)
                await self.recompute(sp_id)
                await lifecycle.record_transition(self.s, nxt, previous, actor, now, via="call_next")
                await self.s.commit()
        except Exception:
            await self.s.rollback()
            raise
        return nxt

    async def transfer(self, appt_id: uuid.UUID, target_sp_id: uuid.UUID, actor: Principal | None = None) -> Appointment:
        appt = await self.appointments.get(appt_id)
        if appt is None:
            raise NotFound("Appointment not found", details={"appointment_id": str(appt_id)})
        if appt.status != lifecycle.WAITING:
            raise InvalidTransition(
                f"Only waiting tickets can be transferred (status '{appt.status}')",
                details={"from": appt.status},
            )
        source_sp_id = appt.service_point_id
        if source_sp_id == target_sp_id:
            raise ValidationError("Ticket is already queued at this service point", details={"service_point_id": str(target_sp_id)})
        await CatalogService(self.s).resolve_offering(appt.service_id, target_sp_id)

        now = self.clock()
        try:
            async with self.locks.hold(source_sp_id, target_sp_id):
                for sp in sorted({source_sp_id, target_sp_id}, key=str):
                    await self.catalog.lock_service_point(sp)
                appt = await self.appointments.get_for_update(appt_id)
                if appt.status != lifecycle.WAITING or appt.service_point_id != source_sp_id:
                    raise InvalidTransition("Ticket left the queue before it could be transferred", details={"status": appt.status})
                await self.admit(appt, target_sp_id, now)
                await self.recompute(source_sp_id)
                await self.recompute(target_sp_id)
                detail = {"from": str(source_sp_id), "to": str(target_sp_id), "ticket_number": appt.ticket_number}
                await AuditService(self.s).log(actor, "transfer", appt.kind, appt.id, detail, occurred_at=now)
                await OutboxService(self.s).enqueue("TICKET_TRANSFERRED", appt.kind, appt.id, {
                    **detail,
                    "confirmation_code": appt.confirmation_code,
                    "queue_position": appt.queue_position,
                }, occurred_at=now)
                await self.s.commit()
        except Exception:
            await self.s.rollback()
            raise
        logger.info(f"Transferred {appt.confirmation_code} from {source_sp_id} to {target_sp_id}")
        return appt
