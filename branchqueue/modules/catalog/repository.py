import uuid
from datetime import date
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from branchqueue.modules.catalog.models import (
    BranchPolicy, BranchClosure, Service, Schedule, ServicePoint, ServicePointService
)
from branchqueue.modules.catalog.schemas import BookingPolicy

class CatalogRepository:
    def __init__(self, s: AsyncSession): self.s = s

    # services
    async def get_service(self, service_id: uuid.UUID) -> Service | None:
        return await self.s.get(Service, service_id)

    async def list_schedules(self, service_id: uuid.UUID) -> Sequence[Schedule]:
        res = await self.s.execute(select(Schedule).where(
            Schedule.service_id == service_id,
            Schedule.is_active.is_(True),
        ))
        return res.scalars().all()

    # service points
    async def get_service_point(self, sp_id: uuid.UUID) -> ServicePoint | None:
        return await self.s.get(ServicePoint, sp_id)

    async def lock_service_point(self, sp_id: uuid.UUID) -> ServicePoint | None:
        # SELECT ... FOR UPDATE; serializes writers across processes (no-op on SQLite)
        res = await self.s.execute(
            select(ServicePoint).where(ServicePoint.id == sp_id).with_for_update()
        )
        return res.scalar_one_or_none()

    async def offers(self, sp_id: uuid.UUID, service_id: uuid.UUID) -> bool:
        res = await self.s.execute(select(ServicePointService.id).where(and_(
            ServicePointService.service_point_id == sp_id,
            ServicePointService.service_id == service_id,
            ServicePointService.is_active.is_(True),
        )))
        return res.first() is not None

    async def list_points_for_service(self, service_id: uuid.UUID) -> Sequence[ServicePoint]:
        q = (
            select(ServicePoint)
            .join(ServicePointService, ServicePointService.service_point_id == ServicePoint.id)
            .where(
                ServicePointService.service_id == service_id,
                ServicePointService.is_active.is_(True),
                ServicePoint.is_active.is_(True),
            )
            .order_by(ServicePoint.name.asc())
        )
        res = await self.s.execute(q)
        return res.scalars().all()

    # branch rules
    async def get_policy(self, branch_id: uuid.UUID) -> BookingPolicy:
        res = await self.s.execute(select(BranchPolicy).where(BranchPolicy.branch_id == branch_id))
        row = res.scalar_one_or_none()
        if row is None:
            return BookingPolicy()
        return BookingPolicy.model_validate(row)

    async def get_closure(self, branch_id: uuid.UUID, day: date) -> BranchClosure | None:
        res = await self.s.execute(select(BranchClosure).where(
            BranchClosure.branch_id == branch_id,
            BranchClosure.closure_date == day,
        ))
        return res.scalar_one_or_none()
