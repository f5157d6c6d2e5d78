"""Integration tests for the payment orchestrator."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from encore.errors import DependencyError, InternalError, ValidationError
from encore.models import Invoice, Notification, Payment, Transaction
from encore.services import payment_service
from encore.services.payment_service import generate_invoice_number, make_payment, ticket_payment
from encore.services.storage import AttachmentStorage, MemoryStorageProvider


def count(db_session, model) -> int:
    return db_session.execute(select(func.count(model.id))).scalar_one()


class TestMakePayment:
    """Invoice, Payment and ledger Transaction written together."""

    @pytest.mark.integration
    def test_creates_invoice_payment_and_transaction(
        self, db_session, storage, dispatcher, member, slip
    ):
        result = make_payment(
            db_session,
            member,
            amount="250",
            payment_method="bank-transfer",
            payment_for="merchandise",
            attachment=slip,
            auxiliary_fields={"productId": "P-1", "productName": "Tour Hoodie", "extra": "x"},
            storage=storage,
            dispatcher=dispatcher,
        )

        invoice, payment, transaction = result.invoice, result.payment, result.transaction
        assert invoice.invoice_number.startswith("INV-")
        assert invoice.amount == Decimal("250.00")
        assert invoice.category == "merchandise"
        assert invoice.payment_status == "unpaid"

        assert payment.invoice_id == invoice.id
        assert payment.user_id == member.id
        assert payment.status == "pending"
        assert payment.payment_for == "merchandise"
        assert payment.details == {"productId": "P-1", "productName": "Tour Hoodie"}
        assert payment.attachment_provider == "memory"
        assert payment.attachment_url.startswith("memory://memory/bank-slips/")
        assert payment.user.full_name == "Maya Member"

        assert transaction.transaction_type == "payment"
        assert transaction.total_amount == Decimal("250.00")
        assert transaction.invoice_id == invoice.id
        assert transaction.user_id == member.id

    @pytest.mark.integration
    def test_notifies_finance_team_and_payer(
        self, db_session, storage, dispatcher, member, finance_manager
    ):
        make_payment(
            db_session,
            member,
            amount=80,
            payment_method="card",
            payment_for="package",
            storage=storage,
            dispatcher=dispatcher,
        )

        assert dispatcher.pending == 2
        assert dispatcher.deliver_pending() == 2
        recipients = sorted(db_session.execute(select(Notification.user_id)).scalars())
        assert recipients == sorted([member.id, finance_manager.id])

    @pytest.mark.integration
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"amount": "0", "payment_method": "card", "payment_for": "merchandise"},
            {"amount": "-10", "payment_method": "card", "payment_for": "merchandise"},
            {"amount": "10", "payment_method": "", "payment_for": "merchandise"},
            {"amount": "10", "payment_method": "card", "payment_for": "donation"},
            {"amount": "10", "payment_method": "card", "payment_for": None},
        ],
    )
    def test_invalid_input_writes_nothing(
        self, db_session, storage, memory_provider, dispatcher, member, slip, kwargs
    ):
        with pytest.raises(ValidationError):
            make_payment(
                db_session, member, attachment=slip, storage=storage, dispatcher=dispatcher, **kwargs
            )

        assert count(db_session, Invoice) == 0
        assert count(db_session, Payment) == 0
        assert memory_provider.upload_calls == 0
        assert dispatcher.pending == 0

    @pytest.mark.integration
    def test_storage_failure_writes_nothing(self, db_session, dispatcher, member, slip):
        failing = AttachmentStorage(
            [MemoryStorageProvider("primary", fail=True), MemoryStorageProvider("cdn", fail=True)],
            retry_delay=0,
        )

        with pytest.raises(DependencyError):
            make_payment(
                db_session,
                member,
                amount="10",
                payment_method="card",
                payment_for="merchandise",
                attachment=slip,
                storage=failing,
                dispatcher=dispatcher,
            )

        assert count(db_session, Invoice) == 0
        assert count(db_session, Transaction) == 0

    @pytest.mark.integration
    def test_failed_ledger_write_rolls_back_everything(
        self, db_session, storage, dispatcher, member, monkeypatch
    ):
        def broken_ledger(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(payment_service, "record_ledger_entry", broken_ledger)

        with pytest.raises(InternalError) as exc_info:
            make_payment(
                db_session,
                member,
                amount="10",
                payment_method="card",
                payment_for="merchandise",
                storage=storage,
                dispatcher=dispatcher,
            )

        assert exc_info.value.message == "Error processing payment"
        assert exc_info.value.error == "disk full"
        assert count(db_session, Invoice) == 0
        assert count(db_session, Payment) == 0
        assert count(db_session, Transaction) == 0
        assert dispatcher.pending == 0


class TestTicketPayment:
    @pytest.mark.integration
    def test_ticket_fields_and_category(self, db_session, storage, dispatcher, member):
        result = ticket_payment(
            db_session,
            member,
            amount="45.5",
            payment_method="cash",
            payment_for="merchandise",
            auxiliary_fields={
                "ticketId": "T-9",
                "ticketName": "Opening Night",
                "fullName": "Maya Member",
                "productId": "ignored",
            },
            storage=storage,
            dispatcher=dispatcher,
        )

        assert result.payment.payment_for == "ticket"
        assert result.invoice.category == "ticket"
        assert result.payment.details == {
            "ticketId": "T-9",
            "ticketName": "Opening Night",
            "fullName": "Maya Member",
        }
        assert result.transaction.total_amount == Decimal("45.50")


class TestInvoiceNumber:
    @pytest.mark.integration
    def test_suffix_added_on_collision(self, db_session, monkeypatch):
        monkeypatch.setattr(payment_service.time, "time", lambda: 1700000000.5)
        db_session.add(Invoice(invoice_number="INV-1700000000500", amount=Decimal("1")))
        db_session.add(Invoice(invoice_number="INV-1700000000500-1", amount=Decimal("1")))
        db_session.commit()

        assert generate_invoice_number(db_session) == "INV-1700000000500-2"

    @pytest.mark.integration
    def test_consecutive_payments_get_distinct_numbers(
        self, db_session, storage, dispatcher, member, monkeypatch
    ):
        monkeypatch.setattr(payment_service.time, "time", lambda: 1700000000.0)
        numbers = {
            make_payment(
                db_session,
                member,
                amount="5",
                payment_method="card",
                payment_for="other",
                storage=storage,
                dispatcher=dispatcher,
            ).invoice.invoice_number
            for _ in range(3)
        }

        assert numbers == {"INV-1700000000000", "INV-1700000000000-1", "INV-1700000000000-2"}
