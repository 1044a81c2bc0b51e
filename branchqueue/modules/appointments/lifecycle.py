"""Appointment/ticket state machine and branch cancellation rules.

    scheduled -> confirmed -> waiting -> serving -> completed
    scheduled/confirmed/waiting -> cancelled
    waiting/serving -> no-show

Terminal states accept no further transition.
"""
import logging
from datetime import datetime, timedelta
from sqlalchemy.ext.asyncio import AsyncSession
from branchqueue.core.errors import InvalidTransition, PolicyViolation
from branchqueue.core.security import Principal
from branchqueue.modules.appointments.models import Appointment
from branchqueue.modules.audit.service import AuditService
from branchqueue.modules.catalog.schemas import BookingPolicy
from branchqueue.modules.events.outbox import OutboxService

logger = logging.getLogger(__name__)

SCHEDULED = "scheduled"
CONFIRMED = "confirmed"
WAITING = "waiting"
SERVING = "serving"
COMPLETED = "completed"
CANCELLED = "cancelled"
NO_SHOW = "no-show"

STATUSES = (SCHEDULED, CONFIRMED, WAITING, SERVING, COMPLETED, CANCELLED, NO_SHOW)
TERMINAL = frozenset({COMPLETED, CANCELLED, NO_SHOW})

VALID_NEXT = {
    SCHEDULED: {CONFIRMED, WAITING, CANCELLED},
    CONFIRMED: {WAITING, CANCELLED},
    WAITING: {SERVING, CANCELLED, NO_SHOW},
    SERVING: {COMPLETED, NO_SHOW},
    COMPLETED: set(),
    CANCELLED: set(),
    NO_SHOW: set(),
}

# stamp column set on entry into a status
STAMPS = {
    SERVING: "served_at",
    COMPLETED: "completed_at",
    CANCELLED: "cancelled_at",
    NO_SHOW: "no_show_at",
}


def ensure_transition(appt: Appointment, new_status: str) -> None:
    if new_status not in VALID_NEXT:
        raise InvalidTransition(f"Unknown status '{new_status}'", details={"status": new_status})
    if new_status not in VALID_NEXT.get(appt.status, set()):
        raise InvalidTransition(
            f"Cannot move appointment from '{appt.status}' to '{new_status}'",
            details={"from": appt.status, "to": new_status, "appointment_id": str(appt.id)},
        )


def apply_status(appt: Appointment, new_status: str, now: datetime) -> None:
    appt.status = new_status
    stamp = STAMPS.get(new_status)
    if stamp:
        setattr(appt, stamp, now)
    if new_status != WAITING:
        appt.queue_position = None
        appt.estimated_wait_minutes = None


def check_cancellation(appt: Appointment, policy: BookingPolicy, now: datetime, actor: Principal | None = None) -> None:
    """Raise PolicyViolation when the branch rules forbid cancelling ``appt`` now.

    Tickets already waiting in a queue can always be cancelled; admins bypass
    the cancellation window.
    """
    if appt.status == WAITING:
        return
    if actor is not None and actor.is_admin:
        return
    if not policy.allow_cancellation:
        raise PolicyViolation("This branch does not allow cancellations", details={"rule": "allow_cancellation"})
    deadline = appt.scheduled_at - timedelta(hours=policy.cancellation_hours)
    if not now < deadline:
        raise PolicyViolation(
            f"Appointments must be cancelled at least {policy.cancellation_hours} hours in advance",
            details={"rule": "cancellation_hours", "hours": policy.cancellation_hours, "deadline": deadline.isoformat()},
        )


def check_reschedule(appt: Appointment, policy: BookingPolicy, now: datetime, actor: Principal | None = None,
                     new_scheduled_at: datetime | None = None) -> None:
    """Both the current booking and the requested one must be ``reschedule_hours`` away for non-admins."""
    if appt.status not in (SCHEDULED, CONFIRMED):
        raise InvalidTransition(
            f"Only scheduled or confirmed appointments can be rescheduled (status '{appt.status}')",
            details={"from": appt.status},
        )
    if appt.reschedule_count >= policy.max_reschedules:
        raise PolicyViolation(
            f"The maximum of {policy.max_reschedules} reschedules has been reached",
            details={"rule": "max_reschedules", "max": policy.max_reschedules},
        )
    if actor is not None and actor.is_admin:
        return
    if not policy.allow_rescheduling:
        raise PolicyViolation("This branch does not allow rescheduling", details={"rule": "allow_rescheduling"})
    deadline = appt.scheduled_at - timedelta(hours=policy.reschedule_hours)
    if not now < deadline:
        raise PolicyViolation(
            f"Appointments must be rescheduled at least {policy.reschedule_hours} hours in advance",
            details={"rule": "reschedule_hours", "hours": policy.reschedule_hours, "deadline": deadline.isoformat()},
        )
    earliest = now + timedelta(hours=policy.reschedule_hours)
    if new_scheduled_at is not None and new_scheduled_at < earliest:
        raise PolicyViolation(
            f"The new time must be at least {policy.reschedule_hours} hours from now",
            details={"rule": "reschedule_hours", "hours": policy.reschedule_hours, "earliest": earliest.isoformat()},
        )


async def record_transition(s: AsyncSession, appt: Appointment, previous: str, actor: Principal | None, now: datetime, **detail) -> None:
    """Audit row and APPOINTMENT_STATUS_CHANGED event for a status change, in the caller's transaction."""
    await AuditService(s).log(actor, "status_change", appt.kind, appt.id, {"from": previous, "to": appt.status, **detail}, occurred_at=now)
    await OutboxService(s).enqueue("APPOINTMENT_STATUS_CHANGED", appt.kind, appt.id, {
        "from": previous,
        "to": appt.status,
        "service_point_id": str(appt.service_point_id) if appt.service_point_id else None,
        "confirmation_code": appt.confirmation_code,
        "actor": actor.label if actor else "system",
    }, occurred_at=now)
    logger.info(f"{appt.kind} {appt.confirmation_code}: {previous} -> {appt.status}")
