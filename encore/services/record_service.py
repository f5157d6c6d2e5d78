"""
Record status cascade and generic record access by type.

Each financial record type has its own handler holding that record's
transition rules. Side effects of a transition (derived expenses, owner
notifications) happen in the same unit of work as the status change;
notifications are only queued once that unit has committed.
"""

import logging
import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Mapping, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from encore.database import atomic
from encore.errors import NotFoundError, ValidationError
from encore.models import (
    Budget,
    BudgetStatus,
    Expense,
    Invoice,
    InvoiceStatus,
    Notification,
    NotificationType,
    Payment,
    PaymentFor,
    PaymentStatus,
    Refund,
    RefundStatus,
    Transaction,
    User,
    utcnow,
)
from encore.services.common import parse_amount, require_choice, require_text
from encore.services.locale_service import format_amount
from encore.services.notification_service import (
    NotificationDispatcher,
    NotificationRequest,
    get_notification_dispatcher,
)
from encore.services.storage import AttachmentStorage, get_attachment_storage

logger = logging.getLogger(__name__)

# Expense category and icon per payment purpose
EXPENSE_CATEGORIES: dict[str, tuple[str, str]] = {
    PaymentFor.MERCHANDISE.value: ("Merchandise Payment", "🛍️"),
    PaymentFor.PACKAGE.value: ("Package Payment", "📦"),
    PaymentFor.TICKET.value: ("Ticket Payment", "🎟️"),
    PaymentFor.OTHER.value: ("Other Payment", "💳"),
}


class RecordType(str, Enum):
    """Financial record types reachable through the generic endpoints."""

    PAYMENT = "payment"
    BUDGET = "budget"
    INVOICE = "invoice"
    REFUND = "refund"

    @classmethod
    def parse(cls, value: str) -> "RecordType":
        """Parse a record type, accepting plural forms and one-letter aliases."""
        key = (value or "").strip().lower()
        key = _ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError as e:
            raise ValidationError(f"Invalid record type: {value}") from e


_ALIASES = {
    "p": "payment",
    "payments": "payment",
    "b": "budget",
    "budgets": "budget",
    "i": "invoice",
    "invoices": "invoice",
    "r": "refund",
    "refunds": "refund",
}


def _snake(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def normalize_update(data: Mapping[str, Any]) -> dict[str, Any]:
    """Accept camelCase keys from clients (paymentStatus -> payment_status)."""
    return {_snake(key): value for key, value in data.items()}


class RecordHandler(ABC):
    """Per-type state machine and storage access."""

    model: type
    label: str

    def get(self, db: Session, record_id: int):
        record = db.get(self.model, record_id)
        if record is None:
            raise NotFoundError(f"{self.label} {record_id} not found")
        return record

    def list_records(self, db: Session, user_id: int | None = None) -> list:
        stmt = select(self.model).order_by(self.model.created_at.desc(), self.model.id.desc())
        if user_id is not None:
            stmt = stmt.where(self.model.user_id == user_id)
        return list(db.execute(stmt).scalars())

    @abstractmethod
    def apply_update(
        self, db: Session, record, data: dict[str, Any], outbox: list[NotificationRequest]
    ) -> None:
        """Validate and apply an update; queue notifications into ``outbox``."""

    def before_delete(self, db: Session, record) -> None:
        """Detach or remove dependent rows before the record is deleted."""


class PaymentHandler(RecordHandler):
    model = Payment
    label = "Payment"

    def apply_update(self, db, payment: Payment, data, outbox) -> None:
        previous = payment.status
        new_status = require_text(data["status"], "status") if "status" in data else previous

        if "payment_method" in data:
            payment.payment_method = require_text(data["payment_method"], "paymentMethod")
        if "amount" in data:
            payment.amount = parse_amount(data["amount"], "amount")
        if "refund_status" in data:
            payment.refund_status = data["refund_status"]

        payment.status = new_status
        if new_status == previous:
            return

        logger.info("Payment %s status %s -> %s", payment.id, previous, new_status)
        if new_status == PaymentStatus.APPROVED.value:
            self._ensure_expense(db, payment)
            outbox.append(
                NotificationRequest(
                    user_id=payment.user_id,
                    message=f"Your payment of {format_amount(payment.amount)} has been approved.",
                    type=NotificationType.SUCCESS,
                    invoice_id=payment.invoice_id,
                    payment_id=payment.id,
                )
            )
        elif previous == PaymentStatus.APPROVED.value:
            self._remove_expense(db, payment)

        if new_status == PaymentStatus.REJECTED.value:
            outbox.append(
                NotificationRequest(
                    user_id=payment.user_id,
                    message=f"Your payment of {format_amount(payment.amount)} has been rejected.",
                    type=NotificationType.ERROR,
                    invoice_id=payment.invoice_id,
                    payment_id=payment.id,
                )
            )

    @staticmethod
    def _find_expense(db: Session, payment_id: int) -> Expense | None:
        return db.execute(
            select(Expense).where(Expense.payment_id == payment_id)
        ).scalar_one_or_none()

    def _ensure_expense(self, db: Session, payment: Payment) -> None:
        if self._find_expense(db, payment.id) is not None:
            logger.debug("Expense for payment %s already exists", payment.id)
            return
        category, icon = EXPENSE_CATEGORIES.get(
            payment.payment_for, EXPENSE_CATEGORIES[PaymentFor.OTHER.value]
        )
        db.add(
            Expense(
                user_id=payment.user_id,
                category=category,
                icon=icon,
                amount=payment.amount,
                payment_id=payment.id,
                refund_status=payment.refund_status,
            )
        )
        db.flush()
        logger.info("Expense '%s' created for payment %s", category, payment.id)

    def _remove_expense(self, db: Session, payment: Payment) -> None:
        expense = self._find_expense(db, payment.id)
        if expense is not None:
            db.delete(expense)
            db.flush()
            logger.info("Expense for payment %s removed", payment.id)

    def before_delete(self, db, payment: Payment) -> None:
        self._remove_expense(db, payment)
        db.execute(
            update(Notification)
            .where(Notification.payment_id == payment.id)
            .values(payment_id=None)
        )
        db.execute(update(Refund).where(Refund.payment_id == payment.id).values(payment_id=None))


class RefundHandler(RecordHandler):
    model = Refund
    label = "Refund"

    def apply_update(self, db, refund: Refund, data, outbox) -> None:
        previous = refund.status
        new_status = previous
        if "status" in data:
            new_status = require_choice(
                data["status"], "status", [s.value for s in RefundStatus]
            )
        if "reason" in data:
            refund.reason = data["reason"]

        refund.status = new_status
        if new_status == previous:
            return

        refund.processed_at = utcnow()

        logger.info("Refund %s status %s -> %s", refund.id, previous, new_status)
        self._mirror_to_payment(db, refund)

        if new_status == RefundStatus.APPROVED.value:
            outbox.append(
                NotificationRequest(
                    user_id=refund.user_id,
                    message=f"Your refund of {format_amount(refund.refund_amount)} for invoice "
                    f"{refund.invoice_number} has been approved.",
                    type=NotificationType.SUCCESS,
                    refund_id=refund.id,
                    payment_id=refund.payment_id,
                )
            )
        elif new_status == RefundStatus.REJECTED.value:
            outbox.append(
                NotificationRequest(
                    user_id=refund.user_id,
                    message=f"Your refund of {format_amount(refund.refund_amount)} for invoice "
                    f"{refund.invoice_number} has been rejected.",
                    type=NotificationType.ERROR,
                    refund_id=refund.id,
                    payment_id=refund.payment_id,
                )
            )

    @staticmethod
    def _mirror_to_payment(db: Session, refund: Refund) -> None:
        if refund.payment_id is None:
            return
        payment = db.get(Payment, refund.payment_id)
        if payment is None or payment.refund_id not in (None, refund.id):
            return
        payment.refund_status = refund.status
        expense = PaymentHandler._find_expense(db, payment.id)
        if expense is not None:
            expense.refund_status = refund.status

    def before_delete(self, db, refund: Refund) -> None:
        db.execute(
            update(Payment)
            .where(Payment.refund_id == refund.id)
            .values(refund_id=None, refund_status=None)
        )
        db.execute(
            update(Notification).where(Notification.refund_id == refund.id).values(refund_id=None)
        )


class BudgetHandler(RecordHandler):
    model = Budget
    label = "Budget"

    def apply_update(self, db, budget: Budget, data, outbox) -> None:
        if "allocated_budget" in data:
            budget.allocated_budget = parse_amount(data["allocated_budget"], "allocatedBudget")
        if "remaining_budget" in data:
            budget.remaining_budget = parse_amount(
                data["remaining_budget"], "remainingBudget", allow_zero=True
            )
        if "current_spend" in data:
            budget.current_spend = parse_amount(
                data["current_spend"], "currentSpend", allow_zero=True
            )
        if "status" in data:
            budget.status = require_choice(
                data["status"], "status", [s.value for s in BudgetStatus]
            )
        if "reason" in data:
            budget.reason = data["reason"]
        budget.last_updated = utcnow()
        logger.info("Budget %s updated (status=%s)", budget.id, budget.status)


class InvoiceHandler(RecordHandler):
    model = Invoice
    label = "Invoice"

    def apply_update(self, db, invoice: Invoice, data, outbox) -> None:
        # payment_status is the only mutable field; other keys are ignored
        if "payment_status" not in data:
            return
        invoice.payment_status = require_choice(
            data["payment_status"], "paymentStatus", [s.value for s in InvoiceStatus]
        )
        logger.info("Invoice %s marked %s", invoice.invoice_number, invoice.payment_status)

    def before_delete(self, db, invoice: Invoice) -> None:
        for model in (Payment, Transaction, Notification):
            db.execute(
                update(model).where(model.invoice_id == invoice.id).values(invoice_id=None)
            )


HANDLERS: dict[RecordType, RecordHandler] = {
    RecordType.PAYMENT: PaymentHandler(),
    RecordType.BUDGET: BudgetHandler(),
    RecordType.INVOICE: InvoiceHandler(),
    RecordType.REFUND: RefundHandler(),
}

_missing = set(RecordType) - set(HANDLERS)
if _missing:
    raise RuntimeError(f"No record handler for: {sorted(t.value for t in _missing)}")


def get_handler(record_type: str | RecordType) -> RecordHandler:
    if not isinstance(record_type, RecordType):
        record_type = RecordType.parse(record_type)
    return HANDLERS[record_type]


def update_financial_record(
    db: Session,
    record_type: str | RecordType,
    record_id: int,
    update_data: Mapping[str, Any],
    dispatcher: Optional[NotificationDispatcher] = None,
):
    """
    Update a financial record and run its status cascade.

    Args:
        db: Database session
        record_type: payment/budget/invoice/refund (aliases p/b/i/r accepted)
        record_id: Record primary key
        update_data: Fields to change (snake_case or camelCase)

    Returns:
        The updated record

    Raises:
        ValidationError: Unknown record type or invalid field value
        NotFoundError: Record does not exist
    """
    handler = get_handler(record_type)
    record = handler.get(db, record_id)
    data = normalize_update(update_data)

    outbox: list[NotificationRequest] = []
    with atomic(db):
        handler.apply_update(db, record, data, outbox)

    dispatcher = dispatcher or get_notification_dispatcher()
    for request in outbox:
        dispatcher.enqueue(request)
    db.refresh(record)
    return record


def get_financial_record(db: Session, record_type: str | RecordType, record_id: int):
    """Fetch one record by type and id (NotFoundError if missing)."""
    return get_handler(record_type).get(db, record_id)


def list_financial_records(
    db: Session, record_type: str | RecordType, viewer: User | None = None
) -> list:
    """List records newest first; non-finance users only see their own."""
    user_id = None if viewer is None or viewer.is_finance_staff else viewer.id
    return get_handler(record_type).list_records(db, user_id)


def list_expenses(db: Session, viewer: User) -> list[Expense]:
    """Expense history, newest first; members see only their own entries."""
    stmt = select(Expense).order_by(Expense.date.desc(), Expense.id.desc())
    if not viewer.is_finance_staff:
        stmt = stmt.where(Expense.user_id == viewer.id)
    return list(db.execute(stmt).scalars())


def delete_financial_record(
    db: Session,
    record_type: str | RecordType,
    record_id: int,
    storage: Optional[AttachmentStorage] = None,
) -> None:
    """Delete a record and its derived rows; remove its stored attachment if any."""
    handler = get_handler(record_type)
    record = handler.get(db, record_id)
    attachment_url = getattr(record, "attachment_url", None)
    attachment_provider = getattr(record, "attachment_provider", None)

    with atomic(db):
        handler.before_delete(db, record)
        db.delete(record)

    logger.info("%s %s deleted", handler.label, record_id)
    if attachment_url:
        storage = storage or get_attachment_storage()
        storage.delete(attachment_url, attachment_provider)


__all__ = [
    "RecordType",
    "RecordHandler",
    "HANDLERS",
    "EXPENSE_CATEGORIES",
    "normalize_update",
    "update_financial_record",
    "get_financial_record",
    "list_financial_records",
    "list_expenses",
    "delete_financial_record",
]
