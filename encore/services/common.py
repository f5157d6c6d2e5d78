"""Input parsing and ledger helpers shared by the finance workflows."""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy.orm import Session

from encore.errors import ValidationError
from encore.models import Transaction, TransactionType

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def parse_amount(value: Any, field: str, allow_zero: bool = False) -> Decimal:
    """Parse a monetary amount from form/JSON input.

    Raises:
        ValidationError: If the value is missing, not numeric or not positive
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"{field} must be a number", error=str(e)) from e
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError(f"{field} must be greater than 0")
    return amount.quantize(CENT)


def require_text(value: Any, field: str) -> str:
    """Return a stripped non-empty string or raise ValidationError."""
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return str(value).strip()


def require_choice(value: Any, field: str, choices: list[str]) -> str:
    """Return value if it is one of the allowed choices."""
    text = require_text(value, field)
    if text not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return text


def record_ledger_entry(
    db: Session,
    transaction_type: TransactionType,
    total_amount: Decimal,
    details: str | None = None,
    user_id: int | None = None,
    invoice_id: int | None = None,
) -> Transaction:
    """Append a ledger row to the current unit of work (caller commits)."""
    transaction = Transaction(
        transaction_type=transaction_type.value,
        total_amount=total_amount,
        details=details,
        user_id=user_id,
        invoice_id=invoice_id,
    )
    db.add(transaction)
    db.flush()
    logger.debug(
        "Ledger entry %s: type=%s amount=%s user_id=%s",
        transaction.id,
        transaction_type.value,
        total_amount,
        user_id,
    )
    return transaction


__all__ = ["parse_amount", "require_text", "require_choice", "record_ledger_entry"]
