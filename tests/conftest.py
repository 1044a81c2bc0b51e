"""Shared test fixtures."""
import os

# settings are read at import time
os.environ["ENV"] = "test"
os.environ["DATABASE_DSN"] = "sqlite+aiosqlite://"
os.environ["TIMEZONE"] = "UTC"
os.environ["OUTBOX_RELAY_ENABLED"] = "false"
os.environ["EVENT_BUS_PROVIDER"] = "noop"

from datetime import datetime, time, timedelta, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from branchqueue.core.base import Base
from branchqueue.core.locks import ServicePointLocks
import branchqueue.models  # noqa: F401
from branchqueue.modules.catalog.models import (
    Branch, BranchPolicy, Service, Schedule, ServicePoint, ServicePointService
)
from branchqueue.modules.forms.models import Form, FormField

# Monday
NOW = datetime(2025, 1, 6, 8, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta):
        self.now = self.now + timedelta(**delta)


@pytest.fixture
async def engine(tmp_path):
    """File database so concurrent sessions see each other's commits."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'branchqueue.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def locks():
    return ServicePointLocks()


@pytest.fixture
async def branch(session_factory):
    """One branch: a 30 min bookable service on two desks, a 10 min cash service on one window."""
    async with session_factory() as s:
        b = Branch(name="Central")
        s.add(b)
        await s.flush()
        policy = BranchPolicy(branch_id=b.id)
        s.add(policy)

        opening = Service(name="Account opening", duration_minutes=30, branch_id=b.id)
        cash = Service(name="Cash desk", duration_minutes=10, branch_id=b.id)
        urgent = Service(name="Card blocking", duration_minutes=10, branch_id=b.id)
        s.add_all([opening, cash, urgent])
        await s.flush()

        # Monday and Tuesday mornings (0 = Sunday)
        for dow in (1, 2):
            s.add(Schedule(service_id=opening.id, day_of_week=dow, start_time=time(9, 0), end_time=time(12, 0)))

        desk1 = ServicePoint(branch_id=b.id, name="Desk 1")
        desk2 = ServicePoint(branch_id=b.id, name="Desk 2")
        window = ServicePoint(branch_id=b.id, name="Window A")
        s.add_all([desk1, desk2, window])
        await s.flush()
        s.add_all([
            ServicePointService(service_point_id=desk1.id, service_id=opening.id),
            ServicePointService(service_point_id=desk2.id, service_id=opening.id),
            ServicePointService(service_point_id=window.id, service_id=cash.id),
            ServicePointService(service_point_id=window.id, service_id=urgent.id),
            ServicePointService(service_point_id=desk2.id, service_id=cash.id),
        ])
        await s.commit()
        return SimpleNamespace(
            id=b.id, policy_id=policy.id,
            opening=opening.id, cash=cash.id, urgent=urgent.id,
            desk1=desk1.id, desk2=desk2.id, window=window.id,
        )


@pytest.fixture
async def intake_form(session_factory, branch):
    """Bind a form with one required text field and one optional e-mail to the opening service."""
    async with session_factory() as s:
        form = Form(name="Account opening intake")
        s.add(form)
        await s.flush()
        s.add_all([
            FormField(form_id=form.id, name="document_number", label="Document number", type="text", required=True, order=0),
            FormField(form_id=form.id, name="contact_email", label="E-mail", type="email", required=False, order=1),
        ])
        service = await s.get(Service, branch.opening)
        service.form_id = form.id
        await s.commit()
        return form.id


def at(hour: int, minute: int = 0, day: int = 6) -> datetime:
    """UTC datetime on January ``day``, 2025 (6 = Monday, 7 = Tuesday)."""
    return datetime(2025, 1, day, hour, minute, tzinfo=timezone.utc)
