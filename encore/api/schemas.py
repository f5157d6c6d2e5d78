"""Request and response schemas for the finance API.

Responses use camelCase keys; amounts are serialized as JSON numbers.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class CamelModel(BaseModel):
    """Base schema: ORM-readable, camelCase on the wire."""

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class UserSummary(CamelModel):
    id: int
    full_name: str
    email: str
    role: str


class InvoiceResponse(CamelModel):
    id: int
    invoice_number: str
    amount: Money
    category: str | None = None
    payment_status: str
    user_id: int | None = None
    created_at: datetime


class PaymentResponse(CamelModel):
    id: int
    invoice_id: int | None = None
    user_id: int
    amount: Money
    payment_method: str
    status: str
    payment_for: str
    details: dict[str, Any] | None = None
    attachment_url: str | None = None
    attachment_provider: str | None = None
    refund_status: str | None = None
    refund_id: int | None = None
    created_at: datetime
    updated_at: datetime
    user: UserSummary | None = None


class BudgetResponse(CamelModel):
    id: int
    allocated_budget: Money
    remaining_budget: Money
    current_spend: Money
    status: str
    reason: str | None = None
    event_id: int
    user_id: int
    attachment_url: str | None = None
    attachment_provider: str | None = None
    last_updated: datetime | None = None
    created_at: datetime


class RefundResponse(CamelModel):
    id: int
    refund_amount: Money
    reason: str | None = None
    invoice_number: str
    status: str
    payment_id: int | None = None
    user_id: int
    attachment_url: str | None = None
    attachment_provider: str | None = None
    processed_at: datetime | None = None
    created_at: datetime


class TransactionResponse(CamelModel):
    id: int
    transaction_type: str
    total_amount: Money
    details: str | None = None
    date: datetime
    invoice_id: int | None = None
    user_id: int | None = None


class ExpenseResponse(CamelModel):
    id: int
    user_id: int
    icon: str | None = None
    category: str
    amount: Money
    date: datetime
    payment_id: int | None = None
    refund_status: str | None = None
    created_at: datetime


class NotificationResponse(CamelModel):
    id: int
    user_id: int
    message: str
    type: str
    is_read: bool
    invoice_id: int | None = None
    payment_id: int | None = None
    refund_id: int | None = None
    created_at: datetime


class SalaryResponse(CamelModel):
    id: int
    user_id: int
    full_name: str
    email: str
    salary_amount: Money
    created_at: datetime


class SuccessResponse(CamelModel):
    success: bool = True
    message: str


class PaymentCreatedResponse(SuccessResponse):
    invoice: InvoiceResponse
    payment: PaymentResponse
    transaction: TransactionResponse


class BudgetCreatedResponse(SuccessResponse):
    budget: BudgetResponse
    transaction: TransactionResponse


class RefundCreatedResponse(SuccessResponse):
    refund: RefundResponse
    transaction: TransactionResponse


class SalaryCreatedResponse(SuccessResponse):
    salary: SalaryResponse
    transaction: TransactionResponse


class NotificationListResponse(CamelModel):
    success: bool = True
    notifications: list[NotificationResponse]


class ExpenseListResponse(CamelModel):
    success: bool = True
    expenses: list[ExpenseResponse]


class FinancialReportResponse(CamelModel):
    success: bool = True
    totals: dict[str, Money]
    counts: dict[str, int]
    total_revenue: Money
    total_refunds: Money
    net_revenue: Money
    transaction_count: int


class PurgeResponse(SuccessResponse):
    deleted: dict[str, int]


class SalaryRequest(CamelModel):
    """JSON body for POST /finance/salary."""

    user_id: int
    salary_amount: Decimal = Field(gt=0)


RECORD_SCHEMAS: dict[str, type[CamelModel]] = {
    "payment": PaymentResponse,
    "budget": BudgetResponse,
    "invoice": InvoiceResponse,
    "refund": RefundResponse,
}


def dump_record(record_type: str, record: Any) -> dict[str, Any]:
    """Serialize an ORM record with the schema for its record type."""
    schema = RECORD_SCHEMAS[record_type]
    return schema.model_validate(record).model_dump(mode="json", by_alias=True)
