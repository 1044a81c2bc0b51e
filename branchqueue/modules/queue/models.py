import uuid
from datetime import date
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, Date, ForeignKey, UniqueConstraint
from branchqueue.core.base import Base, TimestampedMixin

# Daily ticket counter per service point; incremented under the service point lock.
class TicketSequence(Base, TimestampedMixin):
    __tablename__ = "ticket_sequence"
    __table_args__ = (UniqueConstraint("service_point_id", "sequence_date"),)
    service_point_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("service_point.id"))
    sequence_date: Mapped[date] = mapped_column(Date)
    last_value: Mapped[int] = mapped_column(Integer, default=0)
