import uuid
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from branchqueue.core.db import get_session
from branchqueue.core.security import require_scopes
from branchqueue.modules.audit.service import AuditService

router = APIRouter()

@router.get("/appointments/{appointment_id}/audit", dependencies=[Depends(require_scopes("audit:read"))])
async def list_audit(
    appointment_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    limit: int = Query(50, ge=1, le=200),
):
    rows = await AuditService(session).list_for(str(appointment_id), limit=limit)
    # Return raw dicts for simplicity
    return [
        {
            "id": row.id,
            "actor": row.actor,
            "action": row.action,
            "resource_type": row.resource_type,
            "resource_id": row.resource_id,
            "detail": row.detail,
            "occurred_at": row.occurred_at,
        }
        for row in rows
    ]
