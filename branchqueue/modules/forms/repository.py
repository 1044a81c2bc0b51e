import uuid
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from branchqueue.modules.forms.models import Form, FormField

class FormRepository:
    def __init__(self, s: AsyncSession): self.s = s

    async def get_form(self, form_id: uuid.UUID) -> Form | None:
        return await self.s.get(Form, form_id)

    async def list_fields(self, form_id: uuid.UUID) -> Sequence[FormField]:
        res = await self.s.execute(
            select(FormField).where(FormField.form_id == form_id).order_by(FormField.order.asc(), FormField.name.asc())
        )
        return res.scalars().all()
