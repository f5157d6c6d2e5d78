"""Contract tests for the finance HTTP API."""

import pytest
from sqlalchemy import select

from encore.config import settings
from encore.models import Expense, Notification, Transaction
from encore.services.storage import (
    AttachmentStorage,
    MemoryStorageProvider,
    init_attachment_storage,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def auth(user) -> dict[str, str]:
    return {"X-User-Id": str(user.id)}


def post_payment(client, user, **fields):
    data = {"amount": "120", "paymentMethod": "bank-transfer", "paymentFor": "merchandise"}
    data.update(fields)
    return client.post(
        "/finance/payment",
        data=data,
        files={"bankSlip": ("slip.png", PNG_BYTES, "image/png")},
        headers=auth(user),
    )


class TestHealthAndAuth:
    @pytest.mark.contract
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    @pytest.mark.contract
    def test_missing_user_header(self, client):
        response = client.get("/finance/payment")

        assert response.status_code == 401
        assert response.json()["code"] == "unauthorized"
        assert response.json()["success"] is False

    @pytest.mark.contract
    @pytest.mark.parametrize("header", ["abc", "9999"])
    def test_invalid_or_unknown_user(self, client, header):
        response = client.get("/finance/payment", headers={"X-User-Id": header})

        assert response.status_code == 401


class TestPaymentEndpoints:
    @pytest.mark.contract
    def test_create_payment(self, client, db_session, member, finance_manager):
        response = post_payment(client, member, productName="Tour Hoodie")

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["invoice"]["invoiceNumber"].startswith("INV-")
        assert body["invoice"]["amount"] == 120.0
        assert body["payment"]["paymentMethod"] == "bank-transfer"
        assert body["payment"]["status"] == "pending"
        assert body["payment"]["details"] == {"productName": "Tour Hoodie"}
        assert body["payment"]["attachmentUrl"].startswith("memory://memory/bank-slips/")
        assert body["payment"]["user"]["fullName"] == "Maya Member"
        assert body["transaction"]["transactionType"] == "payment"
        assert body["transaction"]["totalAmount"] == 120.0

        # Notifications are delivered after the response
        recipients = sorted(db_session.execute(select(Notification.user_id)).scalars())
        assert recipients == sorted([member.id, finance_manager.id])

    @pytest.mark.contract
    def test_ticket_payment(self, client, member):
        response = client.post(
            "/finance/ticket-payment",
            data={
                "amount": "45",
                "paymentMethod": "cash",
                "ticketId": "T-1",
                "ticketName": "Opening Night",
            },
            headers=auth(member),
        )

        assert response.status_code == 201
        payment = response.json()["payment"]
        assert payment["paymentFor"] == "ticket"
        assert payment["details"] == {"ticketId": "T-1", "ticketName": "Opening Night"}

    @pytest.mark.contract
    @pytest.mark.parametrize(
        "fields",
        [{"amount": "0"}, {"amount": "abc"}, {"paymentMethod": ""}, {"paymentFor": "gift"}],
    )
    def test_invalid_payment_fields(self, client, db_session, member, fields):
        response = post_payment(client, member, **fields)

        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"
        assert db_session.execute(select(Transaction)).first() is None

    @pytest.mark.contract
    def test_disallowed_attachment_type(self, client, member):
        response = client.post(
            "/finance/payment",
            data={"amount": "10", "paymentMethod": "card", "paymentFor": "other"},
            files={"bankSlip": ("notes.txt", b"hello", "text/plain")},
            headers=auth(member),
        )

        assert response.status_code == 400
        assert "formats are allowed" in response.json()["message"]

    @pytest.mark.contract
    def test_oversized_attachment_rejected(
        self, client, db_session, member, memory_provider, monkeypatch
    ):
        monkeypatch.setattr(settings, "max_upload_bytes", 32)

        response = post_payment(client, member)

        assert response.status_code == 400
        assert response.json()["message"] == "File too large (limit 32 bytes)"
        assert memory_provider.upload_calls == 0
        assert db_session.execute(select(Transaction)).first() is None

    @pytest.mark.contract
    def test_storage_outage(self, client, db_session, member):
        init_attachment_storage(
            AttachmentStorage([MemoryStorageProvider(fail=True)], max_attempts=1, retry_delay=0)
        )

        response = post_payment(client, member)

        assert response.status_code == 502
        body = response.json()
        assert body["code"] == "dependency_error"
        assert body["message"] == "File upload failed"
        assert db_session.execute(select(Transaction)).first() is None


class TestBudgetAndRefundEndpoints:
    @pytest.mark.contract
    def test_budget_requires_event_id(self, client, member):
        response = client.post(
            "/finance/budget",
            data={"allocatedBudget": "100", "remainingBudget": "100"},
            headers=auth(member),
        )

        assert response.status_code == 400
        assert "eventId" in response.json()["message"]

    @pytest.mark.contract
    def test_budget_for_unconfirmed_event(self, client, member, pending_event):
        response = client.post(
            "/finance/budget",
            data={
                "allocatedBudget": "100",
                "remainingBudget": "100",
                "eventId": str(pending_event.id),
            },
            headers=auth(member),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_state"

    @pytest.mark.contract
    def test_create_budget(self, client, member, confirmed_event):
        response = client.post(
            "/finance/budget",
            data={
                "allocatedBudget": "2500",
                "remainingBudget": "2000",
                "eventId": str(confirmed_event.id),
                "reason": "Sound system",
            },
            headers=auth(member),
        )

        assert response.status_code == 201
        budget = response.json()["budget"]
        assert budget["allocatedBudget"] == 2500.0
        assert budget["remainingBudget"] == 2000.0
        assert budget["status"] == "pending"

    @pytest.mark.contract
    def test_refund_for_payment(self, client, member):
        payment_id = post_payment(client, member).json()["payment"]["id"]

        too_much = client.post(
            "/finance/refund/payment",
            data={"paymentId": str(payment_id), "refundAmount": "500"},
            headers=auth(member),
        )
        accepted = client.post(
            "/finance/refund/payment",
            data={"paymentId": str(payment_id), "refundAmount": "20", "reason": "Wrong size"},
            headers=auth(member),
        )

        assert too_much.status_code == 400
        assert accepted.status_code == 201
        refund = accepted.json()["refund"]
        assert refund["paymentId"] == payment_id
        assert refund["refundAmount"] == 20.0
        assert refund["invoiceNumber"].startswith("INV-")

    @pytest.mark.contract
    def test_refund_for_someone_elses_payment_forbidden(self, client, member, other_member):
        payment_id = post_payment(client, member).json()["payment"]["id"]

        response = client.post(
            "/finance/refund/payment",
            data={"paymentId": str(payment_id), "refundAmount": "20"},
            headers=auth(other_member),
        )

        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"

    @pytest.mark.contract
    def test_invoice_refund(self, client, member):
        response = client.post(
            "/finance/refund",
            data={"refundAmount": "15", "invoiceNumber": "INV-42"},
            files={"receiptFile": ("receipt.png", PNG_BYTES, "image/png")},
            headers=auth(member),
        )

        assert response.status_code == 201
        refund = response.json()["refund"]
        assert refund["invoiceNumber"] == "INV-42"
        assert refund["attachmentUrl"].startswith("memory://memory/refund-receipts/")


class TestRecordEndpoints:
    @pytest.mark.contract
    def test_member_cannot_update_records(self, client, member):
        payment_id = post_payment(client, member).json()["payment"]["id"]

        response = client.patch(
            f"/finance/payment/{payment_id}", json={"status": "approved"}, headers=auth(member)
        )

        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"

    @pytest.mark.contract
    def test_finance_approves_payment(self, client, db_session, member, finance_manager):
        payment_id = post_payment(client, member).json()["payment"]["id"]

        response = client.patch(
            f"/finance/p/{payment_id}", json={"status": "approved"}, headers=auth(finance_manager)
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Payment updated successfully"
        assert body["data"]["status"] == "approved"
        assert db_session.execute(select(Expense)).scalar_one().payment_id == payment_id

        fetched = client.get(f"/finance/payments/{payment_id}", headers=auth(member))
        assert fetched.status_code == 200
        assert fetched.json()["data"]["status"] == "approved"

    @pytest.mark.contract
    def test_record_visibility(self, client, member, other_member):
        payment_id = post_payment(client, member).json()["payment"]["id"]
        post_payment(client, other_member)

        listing = client.get("/finance/payment", headers=auth(member))
        foreign = client.get(f"/finance/payment/{payment_id}", headers=auth(other_member))

        assert listing.status_code == 200
        assert listing.json()["recordType"] == "payment"
        assert [p["id"] for p in listing.json()["data"]] == [payment_id]
        assert foreign.status_code == 403

    @pytest.mark.contract
    def test_unknown_type_and_missing_record(self, client, finance_manager):
        unknown = client.get("/finance/widgets/1", headers=auth(finance_manager))
        missing = client.get("/finance/payment/999", headers=auth(finance_manager))

        assert unknown.status_code == 400
        assert unknown.json()["message"] == "Invalid record type: widgets"
        assert missing.status_code == 404
        assert missing.json()["code"] == "not_found"

    @pytest.mark.contract
    def test_delete_payment(self, client, memory_provider, member, finance_manager):
        payment_id = post_payment(client, member).json()["payment"]["id"]

        response = client.delete(f"/finance/payment/{payment_id}", headers=auth(finance_manager))

        assert response.status_code == 200
        assert response.json()["message"] == "Payment deleted successfully"
        assert memory_provider.files == {}
        assert client.get(
            f"/finance/payment/{payment_id}", headers=auth(finance_manager)
        ).status_code == 404


class TestExpenseEndpoints:
    @staticmethod
    def approve(client, payment_id, staff):
        response = client.patch(
            f"/finance/payment/{payment_id}", json={"status": "approved"}, headers=auth(staff)
        )
        assert response.status_code == 200

    @pytest.mark.contract
    def test_member_sees_own_expenses(self, client, member, other_member, finance_manager):
        own = post_payment(client, member).json()["payment"]["id"]
        foreign = post_payment(client, other_member).json()["payment"]["id"]
        self.approve(client, own, finance_manager)
        self.approve(client, foreign, finance_manager)

        response = client.get("/finance/expenses", headers=auth(member))

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        [expense] = body["expenses"]
        assert expense["paymentId"] == own
        assert expense["userId"] == member.id
        assert expense["category"] == "Merchandise Payment"
        assert expense["amount"] == 120.0
        assert expense["refundStatus"] is None

    @pytest.mark.contract
    def test_staff_see_all_expenses(self, client, member, other_member, finance_manager):
        first = post_payment(client, member).json()["payment"]["id"]
        second = post_payment(client, other_member).json()["payment"]["id"]
        self.approve(client, first, finance_manager)
        self.approve(client, second, finance_manager)

        response = client.get("/finance/expenses", headers=auth(finance_manager))

        assert response.status_code == 200
        assert sorted(e["paymentId"] for e in response.json()["expenses"]) == [first, second]

    @pytest.mark.contract
    def test_pending_payment_has_no_expense(self, client, member):
        post_payment(client, member)

        response = client.get("/finance/expenses", headers=auth(member))

        assert response.status_code == 200
        assert response.json()["expenses"] == []


class TestStaffEndpoints:
    @pytest.mark.contract
    def test_anomalies_on_empty_ledger(self, client, finance_manager):
        response = client.get("/finance/anomalies", headers=auth(finance_manager))

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "anomalies": [],
            "stats": {"totalTransactions": 0, "anomalyCount": 0, "anomalyPercentage": 0.0},
        }

    @pytest.mark.contract
    def test_anomalies_require_staff(self, client, member):
        assert client.get("/finance/anomalies", headers=auth(member)).status_code == 403

    @pytest.mark.contract
    def test_report(self, client, member, finance_manager):
        post_payment(client, member, amount="100")
        post_payment(client, member, amount="50")
        client.post(
            "/finance/refund",
            data={"refundAmount": "30", "invoiceNumber": "INV-1"},
            headers=auth(member),
        )

        response = client.get("/finance/report", headers=auth(finance_manager))

        assert response.status_code == 200
        body = response.json()
        assert body["totalRevenue"] == 150.0
        assert body["totalRefunds"] == 30.0
        assert body["netRevenue"] == 120.0
        assert body["transactionCount"] == 3
        assert body["counts"]["payment"] == 2

    @pytest.mark.contract
    def test_salary(self, client, member, finance_manager):
        response = client.post(
            "/finance/salary",
            json={"userId": member.id, "salaryAmount": 1800},
            headers=auth(finance_manager),
        )
        invalid = client.post(
            "/finance/salary",
            json={"userId": member.id, "salaryAmount": 0},
            headers=auth(finance_manager),
        )
        forbidden = client.post(
            "/finance/salary",
            json={"userId": member.id, "salaryAmount": 10},
            headers=auth(member),
        )

        assert response.status_code == 201
        assert response.json()["salary"]["salaryAmount"] == 1800.0
        assert response.json()["transaction"]["transactionType"] == "salary"
        assert invalid.status_code == 400
        assert forbidden.status_code == 403

    @pytest.mark.contract
    def test_purge_user_data(self, client, member, other_member, finance_manager):
        post_payment(client, member)
        post_payment(client, other_member)

        response = client.delete(f"/finance/users/{member.id}/data", headers=auth(finance_manager))

        assert response.status_code == 200
        assert response.json()["deleted"]["payments"] == 1
        remaining = client.get("/finance/payment", headers=auth(finance_manager)).json()["data"]
        assert [p["userId"] for p in remaining] == [other_member.id]

    @pytest.mark.contract
    def test_purge_unknown_user(self, client, finance_manager):
        response = client.delete("/finance/users/777/data", headers=auth(finance_manager))

        assert response.status_code == 404


class TestNotificationEndpoints:
    @pytest.mark.contract
    def test_list_and_mark_read(self, client, member, other_member):
        post_payment(client, member)

        inbox = client.get("/finance/notifications", headers=auth(member)).json()
        [notification] = inbox["notifications"]
        assert notification["isRead"] is False

        foreign = client.patch(
            f"/finance/notifications/{notification['id']}/read", headers=auth(other_member)
        )
        marked = client.patch(
            f"/finance/notifications/{notification['id']}/read", headers=auth(member)
        )

        assert foreign.status_code == 404
        assert marked.status_code == 200
        assert marked.json()["isRead"] is True
