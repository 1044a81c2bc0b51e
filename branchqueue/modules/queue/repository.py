import uuid
from datetime import date
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from branchqueue.modules.queue.models import TicketSequence

class QueueRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def next_ticket_number(self, sp_id: uuid.UUID, day: date) -> int:
        # caller holds the service point lock, so the first-of-day insert cannot race
        res = await self.session.execute(
            select(TicketSequence)
            .where(TicketSequence.service_point_id == sp_id, TicketSequence.sequence_date == day)
            .with_for_update()
        )
        seq = res.scalar_one_or_none()
        if seq is None:
            seq = TicketSequence(service_point_id=sp_id, sequence_date=day, last_value=0)
            self.session.add(seq)
        seq.last_value = (seq.last_value or 0) + 1
        await self.session.flush()
        return seq.last_value
