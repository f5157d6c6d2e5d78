"""SQLAlchemy base model with common fields and model exports."""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Base class for all models
Base = declarative_base()


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class BaseModel:
    """Base model with common timestamp fields."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


# Import models to register them with Base (after Base is defined)
# This must be after Base declaration to avoid circular imports
from encore.models.user import User, UserRole  # noqa: E402
from encore.models.event import Event, EventStatus  # noqa: E402
from encore.models.invoice import Invoice, InvoiceStatus  # noqa: E402
from encore.models.payment import Payment, PaymentFor, PaymentStatus  # noqa: E402
from encore.models.budget import Budget, BudgetStatus  # noqa: E402
from encore.models.refund import Refund, RefundStatus  # noqa: E402
from encore.models.transaction import Transaction, TransactionType  # noqa: E402
from encore.models.expense import Expense  # noqa: E402
from encore.models.notification import Notification, NotificationType  # noqa: E402
from encore.models.salary import Salary  # noqa: E402

__all__ = [
    "Base",
    "BaseModel",
    "utcnow",
    "ensure_utc",
    "User",
    "UserRole",
    "Event",
    "EventStatus",
    "Invoice",
    "InvoiceStatus",
    "Payment",
    "PaymentFor",
    "PaymentStatus",
    "Budget",
    "BudgetStatus",
    "Refund",
    "RefundStatus",
    "Transaction",
    "TransactionType",
    "Expense",
    "Notification",
    "NotificationType",
    "Salary",
]
