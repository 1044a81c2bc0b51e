# Importing this module registers every table on Base.metadata.
from branchqueue.modules.catalog.models import (  # noqa: F401
    Branch, BranchPolicy, BranchClosure, Service, Schedule, ServicePoint, ServicePointService,
)
from branchqueue.modules.forms.models import Form, FormField  # noqa: F401
from branchqueue.modules.appointments.models import Appointment, AppointmentReschedule  # noqa: F401
from branchqueue.modules.queue.models import TicketSequence  # noqa: F401
from branchqueue.modules.audit.models import AuditEvent  # noqa: F401
from branchqueue.modules.events.outbox import EventOutbox  # noqa: F401
