"""Expense ORM model, derived from approved payments."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from encore.models import Base, BaseModel, utcnow


class Expense(Base, BaseModel):
    """Expense entry shown in the member's spending history.

    Exists only while the referenced payment is approved.
    """

    __tablename__ = "expenses"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    icon: Mapped[str | None] = mapped_column(String(16), nullable=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    payment_id: Mapped[int | None] = mapped_column(
        ForeignKey("payments.id"), nullable=True, unique=True, comment="Originating payment"
    )
    refund_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    user: Mapped["User"] = relationship("User", foreign_keys=[user_id])  # noqa: F821

    def __repr__(self) -> str:
        return (
            f"<Expense(id={self.id}, category={self.category}, amount={self.amount}, "
            f"payment_id={self.payment_id})>"
        )


__all__ = ["Expense"]
