import uuid
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from branchqueue.core.db import get_session
from branchqueue.core.security import require_scopes
from branchqueue.modules.catalog.repository import CatalogRepository
from branchqueue.modules.catalog.schemas import ServiceOut, ServicePointOut, ScheduleOut, BookingPolicy

router = APIRouter()

def repo(s: AsyncSession = Depends(get_session)) -> CatalogRepository:
    return CatalogRepository(s)

@router.get("/services/{service_id}", response_model=ServiceOut, dependencies=[Depends(require_scopes("catalog:read"))])
async def get_service(service_id: uuid.UUID, r: CatalogRepository = Depends(repo)):
    obj = await r.get_service(service_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Service not found")
    return obj

@router.get("/services/{service_id}/schedules", response_model=list[ScheduleOut], dependencies=[Depends(require_scopes("catalog:read"))])
async def list_schedules(service_id: uuid.UUID, r: CatalogRepository = Depends(repo)):
    return await r.list_schedules(service_id)

@router.get("/services/{service_id}/service-points", response_model=list[ServicePointOut], dependencies=[Depends(require_scopes("catalog:read"))])
async def list_service_points(service_id: uuid.UUID, r: CatalogRepository = Depends(repo)):
    return await r.list_points_for_service(service_id)

@router.get("/branches/{branch_id}/policy", response_model=BookingPolicy, dependencies=[Depends(require_scopes("catalog:read"))])
async def get_policy(branch_id: uuid.UUID, r: CatalogRepository = Depends(repo)):
    return await r.get_policy(branch_id)
