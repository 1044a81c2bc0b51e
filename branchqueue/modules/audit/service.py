import logging
from datetime import datetime
from typing import Sequence
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from branchqueue.core.base import utcnow
from branchqueue.core.security import Principal
from branchqueue.modules.audit.models import AuditEvent

logger = logging.getLogger(__name__)

class AuditService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(self,
                  actor: Principal | None,
                  action: str,
                  resource_type: str,
                  resource_id: str,
                  detail: dict | None = None,
                  occurred_at: datetime | None = None) -> AuditEvent:
        # written in the caller's transaction; the caller commits
        ev = AuditEvent(
            actor=actor.label if actor else "system",
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id),
            detail=detail,
            occurred_at=occurred_at or utcnow(),
        )
        self.session.add(ev)
        await self.session.flush()
        logger.debug(f"audit {ev.actor} {action} {resource_type}/{resource_id}")
        return ev

    async def list_for(self, resource_id: str, limit: int = 50) -> Sequence[AuditEvent]:
        q = (
            select(AuditEvent)
            .where(AuditEvent.resource_id == str(resource_id))
            .order_by(AuditEvent.occurred_at.asc(), AuditEvent.created_at.asc())
            .limit(limit)
        )
        res = await self.session.execute(q)
        return res.scalars().all()
