"""Notification ORM model (per-user inbox entries)."""

from enum import Enum

from sqlalchemy import Boolean, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from encore.models import Base, BaseModel


class NotificationType(str, Enum):
    """Visual severity of a notification."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Notification(Base, BaseModel):
    """Inbox entry created as a best-effort side effect of a workflow."""

    __tablename__ = "notifications"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=NotificationType.INFO.value
    )
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    invoice_id: Mapped[int | None] = mapped_column(ForeignKey("invoices.id"), nullable=True)
    payment_id: Mapped[int | None] = mapped_column(ForeignKey("payments.id"), nullable=True)
    refund_id: Mapped[int | None] = mapped_column(ForeignKey("refunds.id"), nullable=True)

    __table_args__ = (Index("idx_notification_user_read", "user_id", "is_read"),)

    def __repr__(self) -> str:
        return (
            f"<Notification(id={self.id}, user_id={self.user_id}, type={self.type}, "
            f"is_read={self.is_read})>"
        )


__all__ = ["Notification", "NotificationType"]
