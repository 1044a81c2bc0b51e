import uuid
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from branchqueue.core.db import get_session
from branchqueue.core.security import get_principal, Principal, require_scopes
from branchqueue.modules.appointments.schemas import TurnRequest, TransferRequest, AppointmentOut, QueueSnapshotOut
from branchqueue.modules.queue.service import QueueService

router = APIRouter()

def svc(s: AsyncSession = Depends(get_session)) -> QueueService:
    return QueueService(s)

@router.post("/turns", response_model=AppointmentOut, status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_scopes("queue:write"))])
async def issue_turn(payload: TurnRequest, principal: Principal = Depends(get_principal), service: QueueService = Depends(svc)):
    return await service.issue_turn(payload.service_id, payload.service_point_id, payload.customer, principal)

@router.post("/turns/{appointment_id}/transfer", response_model=AppointmentOut, dependencies=[Depends(require_scopes("queue:write"))])
async def transfer_ticket(appointment_id: uuid.UUID, payload: TransferRequest, principal: Principal = Depends(get_principal), service: QueueService = Depends(svc)):
    return await service.transfer(appointment_id, payload.service_point_id, principal)

@router.get("/service-points/{service_point_id}/queue", response_model=QueueSnapshotOut, dependencies=[Depends(require_scopes("queue:read"))])
async def queue_snapshot(service_point_id: uuid.UUID, service: QueueService = Depends(svc)):
    return await service.snapshot(service_point_id)

@router.post("/service-points/{service_point_id}/call-next", response_model=AppointmentOut, dependencies=[Depends(require_scopes("queue:write"))])
async def call_next(service_point_id: uuid.UUID, principal: Principal = Depends(get_principal), service: QueueService = Depends(svc)):
    return await service.call_next(service_point_id, principal)
