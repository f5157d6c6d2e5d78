"""Refund workflow: invoice-only refunds and refunds against a payment."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from encore.database import atomic
from encore.errors import ForbiddenError, InternalError, NotFoundError, ValidationError
from encore.models import (
    Expense,
    Invoice,
    NotificationType,
    Payment,
    Refund,
    RefundStatus,
    Transaction,
    TransactionType,
    User,
)
from encore.services.common import parse_amount, record_ledger_entry, require_text
from encore.services.locale_service import format_amount
from encore.services.notification_service import (
    NotificationDispatcher,
    get_notification_dispatcher,
)
from encore.services.storage import AttachmentFile, AttachmentStorage, get_attachment_storage

logger = logging.getLogger(__name__)

RECEIPT_FOLDER = "refund-receipts"


@dataclass
class RefundResult:
    """Refund and its companion ledger row."""

    refund: Refund
    transaction: Transaction


def request_refund(
    db: Session,
    acting_user: User,
    refund_amount: Any,
    invoice_number: str | None,
    reason: str | None = None,
    attachment: AttachmentFile | None = None,
    storage: Optional[AttachmentStorage] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> RefundResult:
    """Request a refund against an invoice number (no payment linkage)."""
    amount = parse_amount(refund_amount, "refundAmount")
    number = require_text(invoice_number, "invoiceNumber")
    return _create_refund(
        db, acting_user, amount, number, reason, None, attachment, storage, dispatcher
    )


def add_refund(
    db: Session,
    acting_user: User,
    payment_id: int,
    refund_amount: Any,
    reason: str | None = None,
    invoice_number: str | None = None,
    attachment: AttachmentFile | None = None,
    storage: Optional[AttachmentStorage] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> RefundResult:
    """
    Request a refund for a specific payment.

    Raises:
        NotFoundError: Payment does not exist
        ForbiddenError: A member refunding someone else's payment
        ValidationError: refund_amount is not in (0, payment.amount]
    """
    amount = parse_amount(refund_amount, "refundAmount")

    payment = db.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError(f"Payment {payment_id} not found")
    if not acting_user.is_finance_staff and payment.user_id != acting_user.id:
        logger.warning(
            "User %s denied refund on payment %s owned by %s",
            acting_user.id,
            payment_id,
            payment.user_id,
        )
        raise ForbiddenError("Not allowed to refund this payment")
    if amount > payment.amount:
        logger.warning(
            "Refund of %s exceeds payment %s amount %s", amount, payment_id, payment.amount
        )
        raise ValidationError(
            f"Refund amount {amount} exceeds payment amount {payment.amount}"
        )

    if not invoice_number and payment.invoice_id is not None:
        invoice = db.get(Invoice, payment.invoice_id)
        invoice_number = invoice.invoice_number if invoice else None
    number = require_text(invoice_number, "invoiceNumber")

    return _create_refund(
        db, acting_user, amount, number, reason, payment, attachment, storage, dispatcher
    )


def _create_refund(
    db: Session,
    acting_user: User,
    amount: Decimal,
    invoice_number: str,
    reason: str | None,
    payment: Payment | None,
    attachment: AttachmentFile | None,
    storage: Optional[AttachmentStorage],
    dispatcher: Optional[NotificationDispatcher],
) -> RefundResult:
    storage = storage or get_attachment_storage()
    stored = storage.store(attachment, RECEIPT_FOLDER) if attachment else None

    try:
        with atomic(db):
            refund = Refund(
                refund_amount=amount,
                reason=reason,
                invoice_number=invoice_number,
                status=RefundStatus.PENDING.value,
                payment_id=payment.id if payment else None,
                user_id=acting_user.id,
                attachment_url=stored.url if stored else None,
                attachment_provider=stored.provider if stored else None,
            )
            db.add(refund)
            db.flush()

            transaction = record_ledger_entry(
                db,
                TransactionType.REFUND,
                amount,
                details=f"Refund request for invoice {invoice_number} (refund {refund.id})",
                user_id=acting_user.id,
            )

            if payment is not None:
                payment.refund_status = refund.status
                payment.refund_id = refund.id
                expense = db.execute(
                    select(Expense).where(Expense.payment_id == payment.id)
                ).scalar_one_or_none()
                if expense is not None:
                    expense.refund_status = refund.status
    except Exception as e:
        logger.error("Refund for invoice %s rolled back: %s", invoice_number, e, exc_info=True)
        raise InternalError("Error requesting refund", error=str(e)) from e

    logger.info(
        "Refund %s requested: invoice=%s amount=%s payment_id=%s",
        refund.id,
        invoice_number,
        amount,
        refund.payment_id,
    )

    dispatcher = dispatcher or get_notification_dispatcher()
    dispatcher.notify_finance_team(
        f"Refund of {format_amount(amount)} requested by {acting_user.full_name} "
        f"for invoice {invoice_number}.",
        type=NotificationType.WARNING,
        refund_id=refund.id,
        payment_id=refund.payment_id,
    )
    dispatcher.notify(
        acting_user.id,
        f"Your refund request of {format_amount(amount)} for invoice {invoice_number} "
        "is pending review.",
        refund_id=refund.id,
        payment_id=refund.payment_id,
    )
    return RefundResult(refund=refund, transaction=transaction)


__all__ = ["RefundResult", "request_refund", "add_refund"]
