import uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, Integer, Boolean, ForeignKey, JSON
from branchqueue.core.base import Base, TimestampedMixin

# Intake form bound to a service; answers travel with the booking as form_data.
class Form(Base, TimestampedMixin):
    name: Mapped[str] = mapped_column(String(160))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

class FormField(Base, TimestampedMixin):
    __tablename__ = "form_field"
    form_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("form.id"), index=True)
    name: Mapped[str] = mapped_column(String(64))    # key in form_data
    label: Mapped[str] = mapped_column(String(160))
    type: Mapped[str] = mapped_column(String(16))    # text, textarea, email, number, date, select, checkbox
    required: Mapped[bool] = mapped_column(Boolean, default=False)
    options: Mapped[list | None] = mapped_column(JSON, nullable=True)  # select choices
    order: Mapped[int] = mapped_column(Integer, default=0)
    helper_text: Mapped[str | None] = mapped_column(Text, nullable=True)
