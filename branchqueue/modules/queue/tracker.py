"""Ranking of waiting tickets at one service point.

Priority tickets (emergency mode) form a block at the head of the queue;
inside each block tickets are served first come, first served by the time
they entered the queue, with the daily ticket number as tie-break. Waits are
estimated from the service duration of every ticket strictly ahead.
"""
from datetime import datetime, timezone
from typing import Iterable, Protocol, TypeVar

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class QueuedTicket(Protocol):
    is_priority: bool
    queued_at: datetime | None
    ticket_number: int | None
    duration_minutes: int
    queue_position: int | None
    estimated_wait_minutes: int | None


T = TypeVar("T", bound=QueuedTicket)


def rank_key(ticket: QueuedTicket) -> tuple:
    return (
        0 if ticket.is_priority else 1,
        ticket.queued_at or _EPOCH,
        ticket.ticket_number if ticket.ticket_number is not None else 0,
    )


def rank_waiting(tickets: Iterable[T]) -> list[T]:
    return sorted(tickets, key=rank_key)


def recompute(tickets: Iterable[T]) -> list[T]:
    """Assign dense positions 1..N and cumulative wait estimates in place."""
    ranked = rank_waiting(tickets)
    ahead = 0
    for position, ticket in enumerate(ranked, start=1):
        ticket.queue_position = position
        ticket.estimated_wait_minutes = ahead
        ahead += ticket.duration_minutes or 0
    return ranked
