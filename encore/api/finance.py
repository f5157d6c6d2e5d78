"""Finance API endpoints.

Workflow endpoints accept multipart forms (with an optional attachment);
generic record endpoints address any financial record by type and id.
Services raise AppError subclasses which the app renders as JSON.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from encore.api.deps import (
    get_current_user,
    get_storage,
    notification_delivery,
    read_attachment,
    require_finance_staff,
)
from encore.api.schemas import (
    BudgetCreatedResponse,
    ExpenseListResponse,
    FinancialReportResponse,
    NotificationListResponse,
    NotificationResponse,
    PaymentCreatedResponse,
    PurgeResponse,
    RefundCreatedResponse,
    SalaryCreatedResponse,
    SalaryRequest,
    dump_record,
)
from encore.database import get_db
from encore.errors import ForbiddenError
from encore.models import User
from encore.services import (
    anomaly_service,
    budget_service,
    notification_service,
    payment_service,
    record_service,
    refund_service,
    report_service,
    salary_service,
)
from encore.services.notification_service import NotificationDispatcher
from encore.services.record_service import RecordType
from encore.services.storage import AttachmentStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/finance", tags=["finance"])


@router.post("/payment", response_model=PaymentCreatedResponse, status_code=201)
def create_payment(
    amount: str | None = Form(None),
    payment_method: str | None = Form(None, alias="paymentMethod"),
    payment_for: str | None = Form(None, alias="paymentFor"),
    product_id: str | None = Form(None, alias="productId"),
    product_name: str | None = Form(None, alias="productName"),
    quantity: str | None = Form(None),
    order_id: str | None = Form(None, alias="orderId"),
    bank_slip: UploadFile | None = File(None, alias="bankSlip"),  # noqa: B008
    user: User = Depends(get_current_user),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
    storage: AttachmentStorage = Depends(get_storage),  # noqa: B008
    dispatcher: NotificationDispatcher = Depends(notification_delivery),  # noqa: B008
) -> Any:
    """Record a merchandise/package/other payment with an optional bank slip."""
    result = payment_service.make_payment(
        db,
        user,
        amount=amount,
        payment_method=payment_method,
        payment_for=payment_for,
        attachment=read_attachment(bank_slip),
        auxiliary_fields={
            "productId": product_id,
            "productName": product_name,
            "quantity": quantity,
            "orderId": order_id,
        },
        storage=storage,
        dispatcher=dispatcher,
    )
    return PaymentCreatedResponse(
        message="Payment recorded successfully",
        invoice=result.invoice,
        payment=result.payment,
        transaction=result.transaction,
    )


@router.post("/ticket-payment", response_model=PaymentCreatedResponse, status_code=201)
def create_ticket_payment(
    amount: str | None = Form(None),
    payment_method: str | None = Form(None, alias="paymentMethod"),
    ticket_id: str | None = Form(None, alias="ticketId"),
    ticket_name: str | None = Form(None, alias="ticketName"),
    full_name: str | None = Form(None, alias="fullName"),
    email: str | None = Form(None),
    contact: str | None = Form(None),
    bank_slip: UploadFile | None = File(None, alias="bankSlip"),  # noqa: B008
    user: User = Depends(get_current_user),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
    storage: AttachmentStorage = Depends(get_storage),  # noqa: B008
    dispatcher: NotificationDispatcher = Depends(notification_delivery),  # noqa: B008
) -> Any:
    """Record a ticket payment with an optional bank slip."""
    result = payment_service.ticket_payment(
        db,
        user,
        amount=amount,
        payment_method=payment_method,
        attachment=read_attachment(bank_slip),
        auxiliary_fields={
            "ticketId": ticket_id,
            "ticketName": ticket_name,
            "fullName": full_name,
            "email": email,
            "contact": contact,
        },
        storage=storage,
        dispatcher=dispatcher,
    )
    return PaymentCreatedResponse(
        message="Ticket payment recorded successfully",
        invoice=result.invoice,
        payment=result.payment,
        transaction=result.transaction,
    )


@router.post("/budget", response_model=BudgetCreatedResponse, status_code=201)
def create_budget(
    allocated_budget: str | None = Form(None, alias="allocatedBudget"),
    remaining_budget: str | None = Form(None, alias="remainingBudget"),
    event_id: int = Form(..., alias="eventId"),
    status: str | None = Form(None),
    reason: str | None = Form(None),
    info_file: UploadFile | None = File(None, alias="infoFile"),  # noqa: B008
    user: User = Depends(get_current_user),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
    storage: AttachmentStorage = Depends(get_storage),  # noqa: B008
    dispatcher: NotificationDispatcher = Depends(notification_delivery),  # noqa: B008
) -> Any:
    """Request a budget for a confirmed event."""
    result = budget_service.create_budget(
        db,
        user,
        allocated_budget=allocated_budget,
        remaining_budget=remaining_budget,
        event_id=event_id,
        status=status,
        reason=reason,
        attachment=read_attachment(info_file),
        storage=storage,
        dispatcher=dispatcher,
    )
    return BudgetCreatedResponse(
        message="Budget created successfully",
        budget=result.budget,
        transaction=result.transaction,
    )


@router.post("/refund", response_model=RefundCreatedResponse, status_code=201)
def create_refund(
    refund_amount: str | None = Form(None, alias="refundAmount"),
    invoice_number: str | None = Form(None, alias="invoiceNumber"),
    reason: str | None = Form(None),
    receipt_file: UploadFile | None = File(None, alias="receiptFile"),  # noqa: B008
    user: User = Depends(get_current_user),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
    storage: AttachmentStorage = Depends(get_storage),  # noqa: B008
    dispatcher: NotificationDispatcher = Depends(notification_delivery),  # noqa: B008
) -> Any:
    """Request a refund against an invoice number."""
    result = refund_service.request_refund(
        db,
        user,
        refund_amount=refund_amount,
        invoice_number=invoice_number,
        reason=reason,
        attachment=read_attachment(receipt_file),
        storage=storage,
        dispatcher=dispatcher,
    )
    return RefundCreatedResponse(
        message="Refund requested successfully",
        refund=result.refund,
        transaction=result.transaction,
    )


@router.post("/refund/payment", response_model=RefundCreatedResponse, status_code=201)
def create_payment_refund(
    payment_id: int = Form(..., alias="paymentId"),
    refund_amount: str | None = Form(None, alias="refundAmount"),
    invoice_number: str | None = Form(None, alias="invoiceNumber"),
    reason: str | None = Form(None),
    receipt_file: UploadFile | None = File(None, alias="receiptFile"),  # noqa: B008
    user: User = Depends(get_current_user),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
    storage: AttachmentStorage = Depends(get_storage),  # noqa: B008
    dispatcher: NotificationDispatcher = Depends(notification_delivery),  # noqa: B008
) -> Any:
    """Request a refund for a specific payment."""
    result = refund_service.add_refund(
        db,
        user,
        payment_id=payment_id,
        refund_amount=refund_amount,
        reason=reason,
        invoice_number=invoice_number,
        attachment=read_attachment(receipt_file),
        storage=storage,
        dispatcher=dispatcher,
    )
    return RefundCreatedResponse(
        message="Refund requested successfully",
        refund=result.refund,
        transaction=result.transaction,
    )


@router.post("/salary", response_model=SalaryCreatedResponse, status_code=201)
def create_salary(
    body: SalaryRequest,
    staff: User = Depends(require_finance_staff),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
) -> Any:
    """Record a salary payout (finance staff only)."""
    result = salary_service.record_salary(db, body.user_id, body.salary_amount)
    return SalaryCreatedResponse(
        message="Salary recorded successfully",
        salary=result.salary,
        transaction=result.transaction,
    )


@router.get("/anomalies")
def get_anomalies(
    staff: User = Depends(require_finance_staff),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
) -> dict[str, Any]:
    """Flag suspicious ledger transactions (finance staff only)."""
    report = anomaly_service.detect_anomalies(db)
    return {"success": True, **report.to_dict()}


@router.get("/report", response_model=FinancialReportResponse)
def get_report(
    staff: User = Depends(require_finance_staff),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
) -> Any:
    """Ledger totals per transaction type and net revenue (finance staff only)."""
    return FinancialReportResponse(**report_service.financial_report(db))


@router.get("/expenses", response_model=ExpenseListResponse)
def get_expenses(
    user: User = Depends(get_current_user),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
) -> Any:
    """Expense history derived from approved payments (members see only their own)."""
    return ExpenseListResponse(expenses=record_service.list_expenses(db, user))


@router.get("/notifications", response_model=NotificationListResponse)
def get_notifications(
    user: User = Depends(get_current_user),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
) -> Any:
    """The acting user's newest notifications."""
    return NotificationListResponse(
        notifications=notification_service.list_notifications(db, user.id)
    )


@router.patch("/notifications/{notification_id}/read", response_model=NotificationResponse)
def read_notification(
    notification_id: int,
    user: User = Depends(get_current_user),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
) -> Any:
    """Mark one of the acting user's notifications as read."""
    notification = notification_service.mark_as_read(db, user.id, notification_id)
    return NotificationResponse.model_validate(notification)


@router.delete("/users/{user_id}/data", response_model=PurgeResponse)
def purge_user_data(
    user_id: int,
    staff: User = Depends(require_finance_staff),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
) -> Any:
    """Delete every financial record owned by a user (finance staff only)."""
    deleted = report_service.delete_user_financial_data(db, user_id)
    return PurgeResponse(message="User financial data deleted", deleted=deleted)


# Generic record routes come last so the fixed paths above take precedence


@router.get("/{record_type}")
def list_records(
    record_type: str,
    user: User = Depends(get_current_user),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
) -> dict[str, Any]:
    """List records of a type, newest first (members see only their own)."""
    parsed = RecordType.parse(record_type)
    records = record_service.list_financial_records(db, parsed, viewer=user)
    return {
        "success": True,
        "recordType": parsed.value,
        "data": [dump_record(parsed.value, record) for record in records],
    }


@router.get("/{record_type}/{record_id}")
def get_record(
    record_type: str,
    record_id: int,
    user: User = Depends(get_current_user),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
) -> dict[str, Any]:
    """Fetch one record; members may only read their own."""
    parsed = RecordType.parse(record_type)
    record = record_service.get_financial_record(db, parsed, record_id)
    if not user.is_finance_staff and record.user_id != user.id:
        raise ForbiddenError("Not allowed to view this record")
    return {"success": True, "data": dump_record(parsed.value, record)}


@router.patch("/{record_type}/{record_id}")
def update_record(
    record_type: str,
    record_id: int,
    update_data: dict[str, Any] = Body(...),  # noqa: B008
    staff: User = Depends(require_finance_staff),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
    dispatcher: NotificationDispatcher = Depends(notification_delivery),  # noqa: B008
) -> dict[str, Any]:
    """Update a record's status or fields and run its cascade."""
    parsed = RecordType.parse(record_type)
    record = record_service.update_financial_record(
        db, parsed, record_id, update_data, dispatcher=dispatcher
    )
    logger.info("User %s updated %s %s", staff.id, parsed.value, record_id)
    return {
        "success": True,
        "message": f"{parsed.value.capitalize()} updated successfully",
        "data": dump_record(parsed.value, record),
    }


@router.delete("/{record_type}/{record_id}")
def delete_record(
    record_type: str,
    record_id: int,
    staff: User = Depends(require_finance_staff),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
    storage: AttachmentStorage = Depends(get_storage),  # noqa: B008
) -> dict[str, Any]:
    """Delete a record, its derived expense and its stored attachment."""
    parsed = RecordType.parse(record_type)
    record_service.delete_financial_record(db, parsed, record_id, storage=storage)
    logger.info("User %s deleted %s %s", staff.id, parsed.value, record_id)
    return {"success": True, "message": f"{parsed.value.capitalize()} deleted successfully"}
