import uuid
from sqlalchemy.ext.asyncio import AsyncSession
from branchqueue.core.errors import NotFound, ValidationError
from branchqueue.modules.catalog.models import Service, ServicePoint
from branchqueue.modules.catalog.repository import CatalogRepository

class CatalogService:
    def __init__(self, s: AsyncSession):
        self.s = s
        self.repo = CatalogRepository(s)

    async def active_service(self, service_id: uuid.UUID) -> Service:
        service = await self.repo.get_service(service_id)
        if not service or not service.is_active:
            raise NotFound("Service not found or inactive", details={"service_id": str(service_id)})
        return service

    async def active_service_point(self, sp_id: uuid.UUID) -> ServicePoint:
        sp = await self.repo.get_service_point(sp_id)
        if not sp or not sp.is_active:
            raise NotFound("Service point not found or inactive", details={"service_point_id": str(sp_id)})
        return sp

    async def resolve_offering(self, service_id: uuid.UUID, sp_id: uuid.UUID) -> tuple[Service, ServicePoint]:
        service = await self.active_service(service_id)
        sp = await self.active_service_point(sp_id)
        if sp.branch_id != service.branch_id or not await self.repo.offers(sp.id, service.id):
            raise ValidationError(
                "The selected service point does not offer this service",
                details={"service_id": str(service_id), "service_point_id": str(sp_id)},
            )
        return service, sp
