"""Invoice ORM model."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from encore.models import Base, BaseModel


class InvoiceStatus(str, Enum):
    """Invoice payment status; the only field mutable after creation."""

    PAID = "paid"
    UNPAID = "unpaid"


class Invoice(Base, BaseModel):
    """Model representing an invoice issued for a single payment action."""

    __tablename__ = "invoices"

    invoice_number: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="Generated as INV-<epoch milliseconds>",
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Invoice amount",
    )
    category: Mapped[str | None] = mapped_column(
        String(50), nullable=True, comment="What the invoice is for (merchandise, ticket, ...)"
    )
    payment_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=InvoiceStatus.UNPAID.value,
        comment="paid/unpaid",
    )
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), nullable=True, index=True, comment="Invoice owner"
    )

    user: Mapped["User | None"] = relationship("User", foreign_keys=[user_id])  # noqa: F821

    __table_args__ = (Index("idx_invoice_number", "invoice_number", unique=True),)

    def __repr__(self) -> str:
        return (
            f"<Invoice(id={self.id}, number={self.invoice_number}, amount={self.amount}, "
            f"status={self.payment_status})>"
        )


__all__ = ["Invoice", "InvoiceStatus"]
