import uuid
from datetime import date
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from branchqueue.core.db import get_session
from branchqueue.core.security import require_scopes
from branchqueue.modules.availability.service import AvailabilityService
from branchqueue.modules.availability.schemas import SlotOut

router = APIRouter()

def svc(s: AsyncSession = Depends(get_session)) -> AvailabilityService:
    return AvailabilityService(s)

# Slot search
@router.get("/services/{service_id}/slots", response_model=list[SlotOut], dependencies=[Depends(require_scopes("availability:read"))])
async def get_available_slots(
    service_id: uuid.UUID,
    day: date = Query(alias="date"),
    service_point_id: uuid.UUID | None = None,
    service: AvailabilityService = Depends(svc),
):
    return await service.get_available_slots(service_id, day, service_point_id)
