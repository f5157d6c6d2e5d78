"""Refund ORM model."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from encore.models import Base, BaseModel, utcnow


class RefundStatus(str, Enum):
    """Review status of a refund request."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Refund(Base, BaseModel):
    """Refund requested against an invoice, optionally linked to a payment."""

    __tablename__ = "refunds"

    refund_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    invoice_number: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RefundStatus.PENDING.value,
        index=True,
        comment="pending/approved/rejected",
    )
    payment_id: Mapped[int | None] = mapped_column(
        ForeignKey("payments.id"), nullable=True, index=True, comment="Refunded payment"
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True, comment="Requesting user"
    )
    attachment_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    attachment_provider: Mapped[str | None] = mapped_column(String(30), nullable=True)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    user: Mapped["User"] = relationship("User", foreign_keys=[user_id])  # noqa: F821
    payment: Mapped["Payment | None"] = relationship(  # noqa: F821
        "Payment", foreign_keys=[payment_id]
    )

    def __repr__(self) -> str:
        return (
            f"<Refund(id={self.id}, invoice={self.invoice_number}, "
            f"amount={self.refund_amount}, status={self.status})>"
        )


__all__ = ["Refund", "RefundStatus"]
