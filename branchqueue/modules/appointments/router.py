import uuid
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from branchqueue.core.db import get_session
from branchqueue.core.security import get_principal, Principal, require_scopes
from branchqueue.modules.appointments.schemas import (
    ReserveRequest, StatusChange, CancelRequest, RescheduleRequest, AppointmentOut, RescheduleOut
)
from branchqueue.modules.appointments.reservation import ReservationArbiter
from branchqueue.modules.appointments.service import AppointmentService

router = APIRouter()
logger = logging.getLogger(__name__)

def svc(session: AsyncSession = Depends(get_session)) -> AppointmentService:
    return AppointmentService(session)

def arbiter(session: AsyncSession = Depends(get_session)) -> ReservationArbiter:
    return ReservationArbiter(session)

# ---- Appointments ----

@router.post("/appointments", response_model=AppointmentOut, status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_scopes("appointments:write"))])
async def reserve_appointment(payload: ReserveRequest, principal: Principal = Depends(get_principal), arb: ReservationArbiter = Depends(arbiter)):
    return await arb.reserve(payload.service_id, payload.service_point_id, payload.scheduled_at, payload.customer, principal)

@router.get("/appointments/by-code/{code}", response_model=AppointmentOut, dependencies=[Depends(require_scopes("appointments:read"))])
async def get_by_code(code: str, service: AppointmentService = Depends(svc)):
    return await service.get_by_code(code)

@router.get("/appointments/{appointment_id}", response_model=AppointmentOut, dependencies=[Depends(require_scopes("appointments:read"))])
async def get_appointment(appointment_id: uuid.UUID, service: AppointmentService = Depends(svc)):
    return await service.get(appointment_id)

@router.post("/appointments/{appointment_id}/status", response_model=AppointmentOut, dependencies=[Depends(require_scopes("appointments:write"))])
async def change_status(appointment_id: uuid.UUID, payload: StatusChange, principal: Principal = Depends(get_principal), service: AppointmentService = Depends(svc)):
    return await service.transition_status(appointment_id, payload.status, principal, service_point_id=payload.service_point_id)

@router.post("/appointments/{appointment_id}/cancel", response_model=AppointmentOut, dependencies=[Depends(require_scopes("appointments:write"))])
async def cancel_appointment(appointment_id: uuid.UUID, payload: CancelRequest | None = None, principal: Principal = Depends(get_principal), service: AppointmentService = Depends(svc)):
    return await service.cancel(appointment_id, payload.reason if payload else None, principal)

@router.post("/appointments/{appointment_id}/reschedule", response_model=AppointmentOut, status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_scopes("appointments:write"))])
async def reschedule_appointment(appointment_id: uuid.UUID, payload: RescheduleRequest, principal: Principal = Depends(get_principal), service: AppointmentService = Depends(svc)):
    return await service.reschedule(appointment_id, payload.scheduled_at, principal, service_point_id=payload.service_point_id, reason=payload.reason)

@router.get("/appointments/{appointment_id}/reschedule-history", response_model=list[RescheduleOut], dependencies=[Depends(require_scopes("appointments:read"))])
async def reschedule_history(appointment_id: uuid.UUID, service: AppointmentService = Depends(svc)):
    return await service.reschedule_history(appointment_id)
