import uuid
import logging
from datetime import date, datetime, time, timedelta
from typing import Callable
from sqlalchemy.ext.asyncio import AsyncSession
from branchqueue.core.base import utcnow
from branchqueue.core.config import settings
from branchqueue.modules.appointments.repository import AppointmentRepository
from branchqueue.modules.availability.schedule_index import open_intervals, local_at
from branchqueue.modules.availability.slots import generate_slots, apply_booking_window
from branchqueue.modules.catalog.models import Service
from branchqueue.modules.catalog.repository import CatalogRepository
from branchqueue.modules.catalog.service import CatalogService

logger = logging.getLogger(__name__)

def _day_span(day: date, tz) -> tuple[datetime, datetime]:
    start = local_at(day, time.min, tz)
    return start, local_at(day + timedelta(days=1), time.min, tz)

class AvailabilityService:
    def __init__(self, s: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.s = s
        self.clock = clock
        self.tz = settings.tz
        self.catalog = CatalogRepository(s)
        self.appointments = AppointmentRepository(s)

    async def _candidate_starts(self, service: Service, day: date) -> list[datetime]:
        """Slot starts for ``day`` from schedule, closures and booking window, ignoring bookings."""
        schedules = await self.catalog.list_schedules(service.id)
        closure = await self.catalog.get_closure(service.branch_id, day)
        intervals = open_intervals(schedules, day, self.tz, closure)
        if not intervals:
            return []
        policy = await self.catalog.get_policy(service.branch_id)
        slots = generate_slots(intervals, service.duration_minutes)
        return apply_booking_window(slots, day, policy, self.clock(), self.tz)

    async def get_available_slots(self, service_id: uuid.UUID, day: date, service_point_id: uuid.UUID | None = None) -> list[dict]:
        catalog = CatalogService(self.s)
        service = await catalog.active_service(service_id)
        if service_point_id is not None:
            _, sp = await catalog.resolve_offering(service.id, service_point_id)
            points = [sp]
        else:
            points = await self.catalog.list_points_for_service(service.id)

        candidates = await self._candidate_starts(service, day)
        if not candidates or not points:
            return []

        delta = timedelta(minutes=service.duration_minutes)
        span_start, span_end = _day_span(day, self.tz)
        result: list[dict] = []
        for sp in points:
            booked = await self.appointments.list_busy(sp.id, span_start, span_end)
            busy = [(a.scheduled_at, a.ends_at) for a in booked]
            for start in candidates:
                end = start + delta
                if any(start < be and end > bs for bs, be in busy):
                    continue
                result.append({"service_point_id": sp.id, "start": start, "end": end})
        result.sort(key=lambda r: (r["start"], str(r["service_point_id"])))
        logger.debug(f"{len(result)} open slots for service {service.id} on {day.isoformat()}")
        return result

    async def is_bookable_slot(self, service: Service, scheduled_at: datetime) -> bool:
        """True when ``scheduled_at`` is a slot start the generator would offer, bookings aside."""
        local_day = scheduled_at.astimezone(self.tz).date()
        return scheduled_at in await self._candidate_starts(service, local_day)
