"""Budget ORM model for event budget requests."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from encore.models import Base, BaseModel, utcnow


class BudgetStatus(str, Enum):
    """Review status of a budget request."""

    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


class Budget(Base, BaseModel):
    """Budget allocated to a confirmed event."""

    __tablename__ = "budgets"

    allocated_budget: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    remaining_budget: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    current_spend: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=BudgetStatus.PENDING.value,
        index=True,
        comment="pending/approved/declined",
    )
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id"), nullable=False, index=True, comment="Confirmed event"
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True, comment="Requesting user"
    )
    attachment_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    attachment_provider: Mapped[str | None] = mapped_column(String(30), nullable=True)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    user: Mapped["User"] = relationship("User", foreign_keys=[user_id])  # noqa: F821
    event: Mapped["Event"] = relationship("Event", foreign_keys=[event_id])  # noqa: F821

    def __repr__(self) -> str:
        return (
            f"<Budget(id={self.id}, event_id={self.event_id}, "
            f"allocated={self.allocated_budget}, status={self.status})>"
        )


__all__ = ["Budget", "BudgetStatus"]
