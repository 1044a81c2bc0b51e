from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Iterable
from branchqueue.modules.availability.schedule_index import Interval
from branchqueue.modules.catalog.schemas import BookingPolicy


def generate_slots(
    intervals: Iterable[Interval],
    duration_minutes: int,
    busy: Iterable[tuple[datetime, datetime]] = (),
) -> list[datetime]:
    """Slot starts every ``duration_minutes`` inside each open interval.

    A trailing slot that would run past the interval end is discarded, and
    any slot overlapping a busy ``[start, end)`` range is skipped.
    """
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")
    delta = timedelta(minutes=duration_minutes)
    busy = list(busy)
    out: list[datetime] = []
    for iv in intervals:
        cur = iv.start
        while cur + delta <= iv.end:
            end = cur + delta
            if not any(cur < be and end > bs for bs, be in busy):
                out.append(cur)
            cur = end
    return out


def apply_booking_window(
    slots: Iterable[datetime],
    day: date,
    policy: BookingPolicy,
    now: datetime,
    tz: tzinfo = timezone.utc,
) -> list[datetime]:
    today = now.astimezone(tz).date()
    if day == today and not policy.allow_same_day_booking:
        return []
    if day > today + timedelta(days=policy.max_advance_booking_days):
        return []
    earliest = now + timedelta(hours=policy.min_advance_booking_hours)
    return [s for s in slots if s >= earliest]
