import uuid
from datetime import datetime
from pydantic import BaseModel

class SlotOut(BaseModel):
    service_point_id: uuid.UUID
    start: datetime
    end: datetime
