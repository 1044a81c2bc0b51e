"""Status transitions, cancellation window and rescheduling."""
import uuid
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from branchqueue.core.errors import InvalidTransition, PolicyViolation, SlotTaken
from branchqueue.core.security import Principal
from branchqueue.modules.appointments import lifecycle
from branchqueue.modules.appointments.reservation import ReservationArbiter
from branchqueue.modules.appointments.schemas import CustomerIn
from branchqueue.modules.appointments.service import AppointmentService
from branchqueue.modules.audit.service import AuditService
from branchqueue.modules.catalog.models import BranchPolicy
from branchqueue.modules.events.outbox import EventOutbox
from conftest import at

CUSTOMER = Principal(user_id=uuid.uuid4(), roles=["customer"])
ADMIN = Principal(user_id=uuid.uuid4(), roles=["admin"])
TUESDAY = 7


@pytest.fixture
def book(session_factory, clock, locks):
    async def _book(service_id, sp_id, when, name="Ana"):
        async with session_factory() as s:
            return await ReservationArbiter(s, clock, locks).reserve(service_id, sp_id, when, CustomerIn(name=name))
    return _book


@pytest.fixture
def appointments(session_factory, clock, locks):
    """Run one AppointmentService call in a fresh session."""
    async def _call(method, *args, **kwargs):
        async with session_factory() as s:
            return await getattr(AppointmentService(s, clock, locks), method)(*args, **kwargs)
    return _call


class TestTransitionTable:
    @pytest.mark.parametrize("status", sorted(lifecycle.TERMINAL))
    def test_terminal_states_accept_nothing(self, status):
        appt = SimpleNamespace(id=uuid.uuid4(), status=status)
        for target in lifecycle.STATUSES:
            with pytest.raises(InvalidTransition):
                lifecycle.ensure_transition(appt, target)
        assert appt.status == status

    def test_unknown_status(self):
        with pytest.raises(InvalidTransition):
            lifecycle.ensure_transition(SimpleNamespace(id=uuid.uuid4(), status="scheduled"), "archived")

    def test_no_skipping_the_queue(self):
        appt = SimpleNamespace(id=uuid.uuid4(), status="scheduled")
        with pytest.raises(InvalidTransition):
            lifecycle.ensure_transition(appt, "serving")
        with pytest.raises(InvalidTransition):
            lifecycle.ensure_transition(appt, "completed")


class TestTransitions:
    async def test_full_lifecycle_sets_stamps(self, branch, book, appointments, clock):
        appt = await book(branch.opening, branch.desk1, at(9))
        for status in ("confirmed", "waiting", "serving"):
            clock.advance(minutes=5)
            appt = await appointments("transition_status", appt.id, status, ADMIN)
            assert appt.status == status
        assert appt.served_at == clock.now
        clock.advance(minutes=20)
        appt = await appointments("transition_status", appt.id, "completed", ADMIN)
        assert appt.completed_at == clock.now

    async def test_terminal_record_is_left_unchanged(self, branch, book, appointments):
        appt = await book(branch.opening, branch.desk1, at(9))
        cancelled = await appointments("cancel", appt.id, "changed plans", ADMIN)
        assert cancelled.cancel_reason == "changed plans"
        for status in lifecycle.STATUSES:
            with pytest.raises(InvalidTransition):
                await appointments("transition_status", appt.id, status, ADMIN)
        again = await appointments("get", appt.id)
        assert again.status == "cancelled"
        assert again.cancelled_at == cancelled.cancelled_at

    async def test_transition_is_audited_and_published(self, branch, book, appointments, session_factory):
        appt = await book(branch.opening, branch.desk1, at(9))
        await appointments("transition_status", appt.id, "confirmed", CUSTOMER)
        async with session_factory() as s:
            audit = await AuditService(s).list_for(str(appt.id))
            events = (await s.execute(select(EventOutbox).where(EventOutbox.subject_id == str(appt.id)))).scalars().all()
        change = [a for a in audit if a.action == "status_change"]
        assert change[0].actor == CUSTOMER.label
        assert change[0].detail == {"from": "scheduled", "to": "confirmed"}
        assert "APPOINTMENT_STATUS_CHANGED" in [e.event_type for e in events]

    async def test_lookup_by_code(self, branch, book, appointments):
        appt = await book(branch.opening, branch.desk1, at(9))
        found = await appointments("get_by_code", appt.confirmation_code.lower())
        assert found.id == appt.id


class TestCancellationPolicy:
    async def test_inside_window_is_rejected(self, branch, book, appointments, clock):
        appt = await book(branch.opening, branch.desk1, at(10, day=TUESDAY))
        clock.now = at(9, day=TUESDAY)  # one hour before, window is 24 h
        with pytest.raises(PolicyViolation):
            await appointments("cancel", appt.id, None, CUSTOMER)
        assert (await appointments("get", appt.id)).status == "scheduled"

    async def test_outside_window_succeeds(self, branch, book, appointments, clock):
        appt = await book(branch.opening, branch.desk1, at(10, day=TUESDAY))
        clock.now = at(9)  # 25 hours before
        cancelled = await appointments("cancel", appt.id, None, CUSTOMER)
        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_at == clock.now

    async def test_admin_bypasses_window(self, branch, book, appointments, clock):
        appt = await book(branch.opening, branch.desk1, at(10, day=TUESDAY))
        clock.now = at(9, day=TUESDAY)
        assert (await appointments("cancel", appt.id, None, ADMIN)).status == "cancelled"

    async def test_cancellation_disabled(self, branch, book, appointments, session_factory):
        appt = await book(branch.opening, branch.desk1, at(10, day=TUESDAY))
        async with session_factory() as s:
            (await s.get(BranchPolicy, branch.policy_id)).allow_cancellation = False
            await s.commit()
        with pytest.raises(PolicyViolation):
            await appointments("cancel", appt.id, None, CUSTOMER)

    async def test_cancelled_slot_can_be_booked_again(self, branch, book, appointments):
        appt = await book(branch.opening, branch.desk1, at(10, day=TUESDAY))
        await appointments("cancel", appt.id, None, CUSTOMER)
        again = await book(branch.opening, branch.desk1, at(10, day=TUESDAY), name="Luis")
        assert again.status == "scheduled"


class TestReschedule:
    async def test_reschedule_links_lineage_and_history(self, branch, book, appointments):
        appt = await book(branch.opening, branch.desk1, at(10, day=TUESDAY))
        new = await appointments("reschedule", appt.id, at(11, day=TUESDAY), CUSTOMER, reason="traffic")

        assert new.id != appt.id
        assert new.scheduled_at == at(11, day=TUESDAY)
        assert new.status == "scheduled"
        assert new.customer_name == "Ana"
        assert new.root_appointment_id == appt.id
        assert new.rescheduled_from_id == appt.id
        assert new.reschedule_count == 1
        assert new.confirmation_code != appt.confirmation_code

        old = await appointments("get", appt.id)
        assert old.status == "cancelled"
        assert old.cancel_reason == "rescheduled"

        history = await appointments("reschedule_history", new.id)
        assert [(h.previous_appointment_id, h.appointment_id) for h in history] == [(appt.id, new.id)]
        assert history[0].original_scheduled_at == at(10, day=TUESDAY)
        assert history[0].reason == "traffic"
        assert history[0].actor == CUSTOMER.label

    async def test_reschedule_to_other_point(self, branch, book, appointments):
        appt = await book(branch.opening, branch.desk1, at(10, day=TUESDAY))
        new = await appointments("reschedule", appt.id, at(10, day=TUESDAY), CUSTOMER, service_point_id=branch.desk2)
        assert new.service_point_id == branch.desk2

    async def test_taken_slot_leaves_original_booking(self, branch, book, appointments):
        appt = await book(branch.opening, branch.desk1, at(10, day=TUESDAY))
        await book(branch.opening, branch.desk1, at(11, day=TUESDAY), name="Luis")
        with pytest.raises(SlotTaken):
            await appointments("reschedule", appt.id, at(11, day=TUESDAY), CUSTOMER)
        kept = await appointments("get", appt.id)
        assert kept.status == "scheduled"
        assert kept.scheduled_at == at(10, day=TUESDAY)

    async def test_max_reschedules_applies_to_everyone(self, branch, book, appointments):
        appt = await book(branch.opening, branch.desk1, at(9, day=TUESDAY))
        current = appt
        for hour, minute in ((9, 30), (10, 0), (10, 30)):
            current = await appointments("reschedule", current.id, at(hour, minute, day=TUESDAY), CUSTOMER)
        assert current.reschedule_count == 3
        with pytest.raises(PolicyViolation):
            await appointments("reschedule", current.id, at(11, day=TUESDAY), ADMIN)
        history = await appointments("reschedule_history", appt.id)
        assert len(history) == 3

    async def test_reschedule_window(self, branch, book, appointments, clock):
        appt = await book(branch.opening, branch.desk1, at(10, day=TUESDAY))
        clock.now = at(7, day=TUESDAY)  # three hours before, window is 4 h
        with pytest.raises(PolicyViolation):
            await appointments("reschedule", appt.id, at(11, day=TUESDAY), CUSTOMER)
        new = await appointments("reschedule", appt.id, at(11, day=TUESDAY), ADMIN)
        assert new.reschedule_count == 1

    async def test_new_time_must_respect_reschedule_window(self, branch, book, appointments):
        """Moving a Tuesday booking to 09:00 today is only 1 h away; customers need 4 h."""
        appt = await book(branch.opening, branch.desk1, at(11, day=TUESDAY))
        with pytest.raises(PolicyViolation) as exc:
            await appointments("reschedule", appt.id, at(9), CUSTOMER)
        assert exc.value.details["rule"] == "reschedule_hours"
        kept = await appointments("get", appt.id)
        assert kept.status == "scheduled"
        assert kept.scheduled_at == at(11, day=TUESDAY)

        new = await appointments("reschedule", appt.id, at(9), ADMIN)
        assert new.scheduled_at == at(9)

    async def test_only_scheduled_or_confirmed(self, branch, book, appointments):
        appt = await book(branch.opening, branch.desk1, at(10, day=TUESDAY))
        await appointments("transition_status", appt.id, "waiting", ADMIN)
        with pytest.raises(InvalidTransition):
            await appointments("reschedule", appt.id, at(11, day=TUESDAY), ADMIN)
