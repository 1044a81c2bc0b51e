"""Slot generation, booking window and per-service-point availability."""
from datetime import date, timedelta
import uuid

import pytest

from branchqueue.core.errors import NotFound, ValidationError
from branchqueue.modules.appointments.reservation import ReservationArbiter
from branchqueue.modules.appointments.schemas import CustomerIn
from branchqueue.modules.availability.schedule_index import Interval
from branchqueue.modules.availability.service import AvailabilityService
from branchqueue.modules.availability.slots import apply_booking_window, generate_slots
from branchqueue.modules.catalog.models import BranchClosure, BranchPolicy
from branchqueue.modules.catalog.schemas import BookingPolicy
from conftest import NOW, at

MONDAY = date(2025, 1, 6)


class TestGenerateSlots:
    def test_morning_window_gives_six_half_hour_slots(self):
        """Mon 09:00-12:00 with 30 minute service -> 09:00 ... 11:30."""
        slots = generate_slots([Interval(at(9), at(12))], 30)
        assert slots == [at(9), at(9, 30), at(10), at(10, 30), at(11), at(11, 30)]

    def test_trailing_partial_slot_is_discarded(self):
        slots = generate_slots([Interval(at(9), at(10, 15))], 30)
        assert slots == [at(9), at(9, 30)]

    def test_busy_ranges_remove_overlapping_slots(self):
        slots = generate_slots([Interval(at(9), at(11))], 30, busy=[(at(9, 15), at(9, 45))])
        assert slots == [at(10), at(10, 30)]

    def test_non_positive_duration_rejected(self):
        with pytest.raises(ValueError):
            generate_slots([Interval(at(9), at(10))], 0)


class TestBookingWindow:
    slots = [at(9), at(10), at(11)]

    def test_min_advance_hours_drops_early_slots(self):
        policy = BookingPolicy(min_advance_booking_hours=2)
        assert apply_booking_window(self.slots, MONDAY, policy, NOW) == [at(10), at(11)]

    def test_same_day_booking_disabled(self):
        policy = BookingPolicy(allow_same_day_booking=False)
        assert apply_booking_window(self.slots, MONDAY, policy, NOW) == []

    def test_beyond_max_advance_days(self):
        policy = BookingPolicy(max_advance_booking_days=3)
        later = [s + timedelta(days=4) for s in self.slots]
        assert apply_booking_window(later, MONDAY + timedelta(days=4), policy, NOW) == []
        assert apply_booking_window(later, MONDAY + timedelta(days=4), BookingPolicy(), NOW) == later

    def test_past_slots_dropped(self):
        now = NOW.replace(hour=10, minute=5)
        assert apply_booking_window(self.slots, MONDAY, BookingPolicy(), now) == [at(11)]


class TestAvailableSlots:
    async def test_slots_listed_per_service_point(self, session, branch, clock):
        slots = await AvailabilityService(session, clock).get_available_slots(branch.opening, MONDAY)
        assert len(slots) == 12
        assert {s["service_point_id"] for s in slots} == {branch.desk1, branch.desk2}
        assert [s["start"] for s in slots[:2]] == [at(9), at(9)]
        assert all(s["end"] - s["start"] == timedelta(minutes=30) for s in slots)

    async def test_booked_slot_disappears_only_on_its_point(self, session_factory, branch, clock, locks):
        async with session_factory() as s:
            await ReservationArbiter(s, clock, locks).reserve(
                branch.opening, branch.desk1, at(10), CustomerIn(name="Ana Ruiz"))
        async with session_factory() as s:
            slots = await AvailabilityService(s, clock).get_available_slots(branch.opening, MONDAY, branch.desk1)
        starts = [x["start"] for x in slots]
        assert at(10) not in starts
        assert len(starts) == 5

        async with session_factory() as s:
            other = await AvailabilityService(s, clock).get_available_slots(branch.opening, MONDAY, branch.desk2)
        assert at(10) in [x["start"] for x in other]

    async def test_unscheduled_day_is_empty(self, session, branch, clock):
        assert await AvailabilityService(session, clock).get_available_slots(branch.opening, date(2025, 1, 8)) == []

    async def test_unknown_service(self, session, branch, clock):
        with pytest.raises(NotFound):
            await AvailabilityService(session, clock).get_available_slots(uuid.uuid4(), MONDAY)

    async def test_point_not_offering_service(self, session, branch, clock):
        with pytest.raises(ValidationError):
            await AvailabilityService(session, clock).get_available_slots(branch.opening, MONDAY, branch.window)

    async def test_branch_closure_empties_the_day(self, session_factory, branch, clock):
        async with session_factory() as s:
            s.add(BranchClosure(branch_id=branch.id, closure_date=MONDAY, reason="Holiday"))
            await s.commit()
        async with session_factory() as s:
            assert await AvailabilityService(s, clock).get_available_slots(branch.opening, MONDAY) == []

    async def test_policy_window_applies(self, session_factory, branch, clock):
        async with session_factory() as s:
            policy = await s.get(BranchPolicy, branch.policy_id)
            policy.min_advance_booking_hours = 3
            await s.commit()
        async with session_factory() as s:
            slots = await AvailabilityService(s, clock).get_available_slots(branch.opening, MONDAY, branch.desk1)
        assert [x["start"] for x in slots] == [at(11), at(11, 30)]
