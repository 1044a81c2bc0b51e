from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, JSON, text
from branchqueue.core.base import Base, TimestampedMixin, UTCDateTime

class AuditEvent(Base, TimestampedMixin):
    __tablename__ = "audit_event"
    # who
    actor: Mapped[str] = mapped_column(String(80))  # "<role>:<user uuid>"
    # what happened
    action: Mapped[str] = mapped_column(String(48))  # status_change | reschedule | transfer | call_next
    resource_type: Mapped[str] = mapped_column(String(48))  # appointment | turn
    resource_id: Mapped[str] = mapped_column(String(64), index=True)
    detail: Mapped[dict | None] = mapped_column(JSON, nullable=True)  # e.g. {"from": "waiting", "to": "serving"}
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), server_default=text("CURRENT_TIMESTAMP"))
