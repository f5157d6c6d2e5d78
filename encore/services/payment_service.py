"""Payment orchestrator: Invoice + Payment + ledger Transaction as one unit.

Merchandise/package payments and ticket payments run through the same
orchestrator; they differ only in the auxiliary fields kept on the payment.
"""

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from encore.database import atomic
from encore.errors import InternalError, ValidationError
from encore.models import (
    Invoice,
    InvoiceStatus,
    Payment,
    PaymentFor,
    PaymentStatus,
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

BANK_SLIP_FOLDER = "bank-slips"


@dataclass(frozen=True)
class PaymentFieldSet:
    """Auxiliary fields an orchestrator accepts and stores for display."""

    name: str
    fields: tuple[str, ...]
    payment_for: Optional[PaymentFor] = None

    def extract(self, auxiliary_fields: Mapping[str, Any] | None) -> dict[str, Any]:
        """Keep only this field set's keys, dropping empty values."""
        if not auxiliary_fields:
            return {}
        return {
            key: auxiliary_fields[key]
            for key in self.fields
            if auxiliary_fields.get(key) not in (None, "")
        }


MERCHANDISE_FIELDS = PaymentFieldSet(
    name="merchandise",
    fields=("productId", "productName", "quantity", "orderId"),
)
TICKET_FIELDS = PaymentFieldSet(
    name="ticket",
    fields=("ticketId", "ticketName", "fullName", "email", "contact"),
    payment_for=PaymentFor.TICKET,
)


@dataclass
class PaymentResult:
    """Records created by one payment action."""

    invoice: Invoice
    payment: Payment
    transaction: Transaction


def generate_invoice_number(db: Session) -> str:
    """Generate a unique ``INV-<epoch ms>`` number, suffixing on collision."""
    base = f"INV-{int(time.time() * 1000)}"
    candidate = base
    suffix = 1
    while db.execute(
        select(Invoice.id).where(Invoice.invoice_number == candidate)
    ).first() is not None:
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate


class PaymentOrchestrator:
    """Creates Invoice, Payment and Transaction together or not at all."""

    def __init__(
        self,
        db: Session,
        field_set: PaymentFieldSet = MERCHANDISE_FIELDS,
        storage: Optional[AttachmentStorage] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        self.db = db
        self.field_set = field_set
        self.storage = storage or get_attachment_storage()
        self.dispatcher = dispatcher or get_notification_dispatcher()

    def _resolve_payment_for(self, payment_for: str | None) -> PaymentFor:
        if self.field_set.payment_for is not None:
            return self.field_set.payment_for
        value = require_text(payment_for, "paymentFor")
        try:
            return PaymentFor(value)
        except ValueError as e:
            choices = ", ".join(p.value for p in PaymentFor)
            raise ValidationError(f"paymentFor must be one of: {choices}") from e

    def make_payment(
        self,
        amount: Any,
        payment_method: str | None,
        acting_user: User,
        payment_for: str | None = None,
        attachment: AttachmentFile | None = None,
        auxiliary_fields: Mapping[str, Any] | None = None,
    ) -> PaymentResult:
        """
        Record a payment submitted by a user.

        Args:
            amount: Payment amount (> 0)
            payment_method: Payment method label (e.g. "bank-transfer")
            acting_user: User making the payment
            payment_for: merchandise/package/ticket/other (fixed for ticket payments)
            attachment: Optional bank slip, stored before any database write
            auxiliary_fields: Display fields filtered by the orchestrator's field set

        Returns:
            PaymentResult with the created invoice, payment and ledger transaction

        Raises:
            ValidationError: Invalid input (nothing stored)
            DependencyError: Bank slip storage failed (nothing written)
            InternalError: A write failed; all three records were rolled back
        """
        value = parse_amount(amount, "amount")
        method = require_text(payment_method, "paymentMethod")
        category = self._resolve_payment_for(payment_for)
        details = self.field_set.extract(auxiliary_fields)

        stored = self.storage.store(attachment, BANK_SLIP_FOLDER) if attachment else None

        try:
            with atomic(self.db):
                invoice = Invoice(
                    invoice_number=generate_invoice_number(self.db),
                    amount=value,
                    category=category.value,
                    payment_status=InvoiceStatus.UNPAID.value,
                    user_id=acting_user.id,
                )
                self.db.add(invoice)
                self.db.flush()

                payment = Payment(
                    invoice_id=invoice.id,
                    user_id=acting_user.id,
                    amount=value,
                    payment_method=method,
                    status=PaymentStatus.PENDING.value,
                    payment_for=category.value,
                    details=details or None,
                    attachment_url=stored.url if stored else None,
                    attachment_provider=stored.provider if stored else None,
                )
                self.db.add(payment)
                self.db.flush()

                transaction = record_ledger_entry(
                    self.db,
                    TransactionType.PAYMENT,
                    value,
                    details=f"{category.value.capitalize()} payment via {method} "
                    f"({invoice.invoice_number})",
                    user_id=acting_user.id,
                    invoice_id=invoice.id,
                )
        except Exception as e:
            logger.error(
                "Payment by user %s rolled back: %s", acting_user.id, e, exc_info=True
            )
            if stored:
                logger.warning("Bank slip %s (%s) left orphaned", stored.url, stored.provider)
            raise InternalError("Error processing payment", error=str(e)) from e

        logger.info(
            "Payment %s created: invoice=%s amount=%s for=%s user_id=%s",
            payment.id,
            invoice.invoice_number,
            value,
            category.value,
            acting_user.id,
        )
        self._notify(acting_user, invoice, payment, value)
        return PaymentResult(invoice=invoice, payment=payment, transaction=transaction)

    def _notify(self, user: User, invoice: Invoice, payment: Payment, amount: Decimal) -> None:
        self.dispatcher.notify_finance_team(
            f"New {payment.payment_for} payment of {format_amount(amount)} from "
            f"{user.full_name} (invoice {invoice.invoice_number}) awaits review.",
            invoice_id=invoice.id,
            payment_id=payment.id,
        )
        self.dispatcher.notify(
            user.id,
            f"Your payment of {format_amount(amount)} was received and is pending review "
            f"(invoice {invoice.invoice_number}).",
            invoice_id=invoice.id,
            payment_id=payment.id,
        )


def make_payment(db: Session, acting_user: User, **kwargs: Any) -> PaymentResult:
    """Merchandise/package/other payment (see PaymentOrchestrator.make_payment)."""
    storage = kwargs.pop("storage", None)
    dispatcher = kwargs.pop("dispatcher", None)
    orchestrator = PaymentOrchestrator(db, MERCHANDISE_FIELDS, storage, dispatcher)
    return orchestrator.make_payment(acting_user=acting_user, **kwargs)


def ticket_payment(db: Session, acting_user: User, **kwargs: Any) -> PaymentResult:
    """Ticket payment: same orchestrator bound to the ticket field set."""
    storage = kwargs.pop("storage", None)
    dispatcher = kwargs.pop("dispatcher", None)
    kwargs.pop("payment_for", None)
    orchestrator = PaymentOrchestrator(db, TICKET_FIELDS, storage, dispatcher)
    return orchestrator.make_payment(acting_user=acting_user, **kwargs)


__all__ = [
    "PaymentFieldSet",
    "MERCHANDISE_FIELDS",
    "TICKET_FIELDS",
    "PaymentResult",
    "PaymentOrchestrator",
    "generate_invoice_number",
    "make_payment",
    "ticket_payment",
]
