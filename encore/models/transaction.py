"""Transaction ORM model: the append-only financial ledger."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from encore.models import Base, BaseModel, utcnow


class TransactionType(str, Enum):
    """Kinds of ledger rows."""

    PAYMENT = "payment"
    REFUND = "refund"
    BUDGET = "budget"
    EXPENSE = "expense"
    INVOICE = "invoice"
    SALARY = "salary"


class Transaction(Base, BaseModel):
    """Model representing one ledger row.

    Every Payment, Refund, Budget and Salary creation writes exactly one row
    here in the same unit of work. Rows are never updated by the workflows.
    """

    __tablename__ = "transactions"

    transaction_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        comment="payment/refund/budget/expense/invoice/salary",
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    details: Mapped[str | None] = mapped_column(Text, nullable=True, comment="Free-form note")
    date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )
    invoice_id: Mapped[int | None] = mapped_column(
        ForeignKey("invoices.id"), nullable=True, index=True
    )
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), nullable=True, index=True
    )

    user: Mapped["User | None"] = relationship("User", foreign_keys=[user_id])  # noqa: F821
    invoice: Mapped["Invoice | None"] = relationship(  # noqa: F821
        "Invoice", foreign_keys=[invoice_id]
    )

    __table_args__ = (
        Index("idx_transaction_user_date", "user_id", "date"),
        Index("idx_transaction_type_date", "transaction_type", "date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction(id={self.id}, type={self.transaction_type}, "
            f"amount={self.total_amount}, user_id={self.user_id}, date={self.date})>"
        )


__all__ = ["Transaction", "TransactionType"]
