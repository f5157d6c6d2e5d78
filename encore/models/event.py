"""Event ORM model (collaborator view: identity and confirmation status only)."""

from enum import Enum

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from encore.models import Base, BaseModel


class EventStatus(str, Enum):
    """Lifecycle status of a booked event."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    CHANGE_REQUESTED = "change-requested"


class Event(Base, BaseModel):
    """Booked event. Budgets may only be raised against confirmed events."""

    __tablename__ = "events"

    name: Mapped[str] = mapped_column(String(255), nullable=False, comment="Event name")
    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=EventStatus.CONFIRMED.value,
        index=True,
        comment="confirmed/pending/cancelled/change-requested",
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, name={self.name}, status={self.status})>"


__all__ = ["Event", "EventStatus"]
