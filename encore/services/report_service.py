"""Ledger summary report and per-user financial data purge."""

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from encore.database import atomic
from encore.errors import NotFoundError
from encore.models import (
    Budget,
    Expense,
    Invoice,
    Notification,
    Payment,
    Refund,
    Salary,
    Transaction,
    TransactionType,
    User,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def financial_report(db: Session) -> dict[str, Any]:
    """
    Summarize the ledger.

    Returns:
        Dict with per-type totals and counts, revenue (payments), refunds,
        net (revenue - refunds) and the total transaction count
    """
    rows = db.execute(
        select(
            Transaction.transaction_type,
            func.count(Transaction.id),
            func.coalesce(func.sum(Transaction.total_amount), 0),
        ).group_by(Transaction.transaction_type)
    ).all()

    totals = {t.value: ZERO for t in TransactionType}
    counts = {t.value: 0 for t in TransactionType}
    for transaction_type, count, total in rows:
        totals[transaction_type] = Decimal(str(total)).quantize(ZERO)
        counts[transaction_type] = count

    revenue = totals[TransactionType.PAYMENT.value]
    refunds = totals[TransactionType.REFUND.value]
    report = {
        "totals": totals,
        "counts": counts,
        "total_revenue": revenue,
        "total_refunds": refunds,
        "net_revenue": revenue - refunds,
        "transaction_count": sum(counts.values()),
    }
    logger.debug("Financial report: %s", report)
    return report


def delete_user_financial_data(db: Session, user_id: int) -> dict[str, int]:
    """
    Remove every financial record owned by a user in one unit of work.

    The user row itself is kept.

    Returns:
        Number of deleted rows per record kind

    Raises:
        NotFoundError: User does not exist
    """
    if db.get(User, user_id) is None:
        raise NotFoundError(f"User {user_id} not found")

    payment_ids = select(Payment.id).where(Payment.user_id == user_id)
    invoice_ids = select(Invoice.id).where(Invoice.user_id == user_id)
    refund_ids = select(Refund.id).where(Refund.user_id == user_id)

    counts: dict[str, int] = {}
    with atomic(db):
        # Rows owned by other users may still point at this user's records
        db.execute(
            update(Notification)
            .where(Notification.user_id != user_id)
            .where(
                or_(
                    Notification.payment_id.in_(payment_ids),
                    Notification.invoice_id.in_(invoice_ids),
                    Notification.refund_id.in_(refund_ids),
                )
            )
            .values(payment_id=None, invoice_id=None, refund_id=None)
        )
        db.execute(
            update(Refund)
            .where(Refund.user_id != user_id, Refund.payment_id.in_(payment_ids))
            .values(payment_id=None)
        )
        db.execute(
            update(Payment)
            .where(Payment.user_id != user_id, Payment.invoice_id.in_(invoice_ids))
            .values(invoice_id=None)
        )
        refunded_payment_ids = select(Payment.id).where(
            Payment.user_id != user_id, Payment.refund_id.in_(refund_ids)
        )
        db.execute(
            update(Expense)
            .where(Expense.payment_id.in_(refunded_payment_ids))
            .values(refund_status=None)
        )
        db.execute(
            update(Payment)
            .where(Payment.user_id != user_id, Payment.refund_id.in_(refund_ids))
            .values(refund_id=None, refund_status=None)
        )
        db.execute(
            update(Transaction)
            .where(Transaction.user_id != user_id, Transaction.invoice_id.in_(invoice_ids))
            .values(invoice_id=None)
        )

        counts["notifications"] = db.execute(
            delete(Notification).where(Notification.user_id == user_id)
        ).rowcount
        counts["expenses"] = db.execute(
            delete(Expense).where(
                or_(Expense.user_id == user_id, Expense.payment_id.in_(payment_ids))
            )
        ).rowcount
        counts["refunds"] = db.execute(delete(Refund).where(Refund.user_id == user_id)).rowcount
        counts["payments"] = db.execute(
            delete(Payment).where(Payment.user_id == user_id)
        ).rowcount
        counts["transactions"] = db.execute(
            delete(Transaction).where(Transaction.user_id == user_id)
        ).rowcount
        counts["invoices"] = db.execute(
            delete(Invoice).where(Invoice.user_id == user_id)
        ).rowcount
        counts["budgets"] = db.execute(delete(Budget).where(Budget.user_id == user_id)).rowcount
        counts["salaries"] = db.execute(delete(Salary).where(Salary.user_id == user_id)).rowcount

    db.expire_all()
    logger.info("Purged financial data for user %s: %s", user_id, counts)
    return counts


__all__ = ["financial_report", "delete_user_financial_data"]
