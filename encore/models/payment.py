"""Payment ORM model."""

from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from encore.models import Base, BaseModel


class PaymentStatus(str, Enum):
    """Meaningful payment states (the column itself accepts free text)."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentFor(str, Enum):
    """What a payment is for; drives the derived expense category."""

    MERCHANDISE = "merchandise"
    PACKAGE = "package"
    TICKET = "ticket"
    OTHER = "other"


class Payment(Base, BaseModel):
    """Model representing a payment submitted with a bank slip.

    Created by the payment orchestrator together with its Invoice and ledger
    Transaction; mutated afterwards only by the record status cascade.
    """

    __tablename__ = "payments"

    invoice_id: Mapped[int | None] = mapped_column(
        ForeignKey("invoices.id"), nullable=True, index=True, comment="Owning invoice"
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True, comment="User who paid"
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=PaymentStatus.PENDING.value,
        index=True,
        comment="pending/approved/rejected/completed/failed (free text)",
    )
    payment_for: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=PaymentFor.OTHER.value,
        comment="merchandise/package/ticket/other",
    )
    details: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, comment="Auxiliary fields kept for display (product, ticket, ...)"
    )
    attachment_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    attachment_provider: Mapped[str | None] = mapped_column(String(30), nullable=True)
    refund_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    refund_id: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="Latest refund requested for this payment"
    )

    user: Mapped["User"] = relationship("User", foreign_keys=[user_id])  # noqa: F821
    invoice: Mapped["Invoice | None"] = relationship(  # noqa: F821
        "Invoice", foreign_keys=[invoice_id]
    )

    __table_args__ = (Index("idx_payment_user_status", "user_id", "status"),)

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, user_id={self.user_id}, amount={self.amount}, "
            f"status={self.status}, payment_for={self.payment_for})>"
        )


__all__ = ["Payment", "PaymentStatus", "PaymentFor"]
