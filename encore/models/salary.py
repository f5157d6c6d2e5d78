"""Salary ORM model."""

from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from encore.models import Base, BaseModel


class Salary(Base, BaseModel):
    """Salary payout to a staff member."""

    __tablename__ = "salaries"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    salary_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )

    def __repr__(self) -> str:
        return f"<Salary(id={self.id}, user_id={self.user_id}, amount={self.salary_amount})>"


__all__ = ["Salary"]
