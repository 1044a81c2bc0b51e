from dataclasses import dataclass
from datetime import date, datetime, time, timezone, tzinfo
from typing import Iterable, Protocol


class WeeklyWindow(Protocol):
    day_of_week: int
    start_time: time
    end_time: time
    is_active: bool


class DayOverride(Protocol):
    closed: bool
    open_time: time | None
    close_time: time | None


@dataclass(frozen=True, order=True)
class Interval:
    start: datetime
    end: datetime

    def overlaps(self, other_start: datetime, other_end: datetime) -> bool:
        return self.start < other_end and other_start < self.end


def schedule_weekday(day: date) -> int:
    """Weekday in schedule numbering, 0=Sunday..6=Saturday."""
    return (day.weekday() + 1) % 7


def local_at(day: date, t: time, tz: tzinfo) -> datetime:
    return datetime.combine(day, t.replace(tzinfo=None), tzinfo=tz).astimezone(timezone.utc)


def merge_intervals(intervals: Iterable[Interval]) -> list[Interval]:
    merged: list[Interval] = []
    for iv in sorted(intervals):
        if merged and iv.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = Interval(last.start, max(last.end, iv.end))
        else:
            merged.append(iv)
    return merged


def open_intervals(
    schedules: Iterable[WeeklyWindow],
    day: date,
    tz: tzinfo = timezone.utc,
    closure: DayOverride | None = None,
) -> list[Interval]:
    """Disjoint, ordered UTC intervals during which a service is open on ``day``.

    Overlapping or touching schedule rows for the same weekday are merged. A
    closure marked ``closed`` empties the day; a closure with custom hours
    clips the day to ``[open_time, close_time)``.
    """
    if closure is not None and closure.closed:
        return []
    weekday = schedule_weekday(day)
    raw = [
        Interval(local_at(day, s.start_time, tz), local_at(day, s.end_time, tz))
        for s in schedules
        if s.is_active and s.day_of_week == weekday and s.start_time < s.end_time
    ]
    merged = merge_intervals(raw)
    if closure is not None and closure.open_time and closure.close_time:
        lo, hi = local_at(day, closure.open_time, tz), local_at(day, closure.close_time, tz)
        merged = [Interval(max(iv.start, lo), min(iv.end, hi)) for iv in merged if iv.overlaps(lo, hi)]
    return merged
