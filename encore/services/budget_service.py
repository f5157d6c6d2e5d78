"""Budget workflow: budget requests against confirmed events."""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.orm import Session

from encore.database import atomic
from encore.errors import InternalError, InvalidStateError, NotFoundError
from encore.models import (
    Budget,
    BudgetStatus,
    Event,
    EventStatus,
    Transaction,
    TransactionType,
    User,
)
from encore.services.common import parse_amount, record_ledger_entry, require_choice
from encore.services.locale_service import format_amount
from encore.services.notification_service import (
    NotificationDispatcher,
    get_notification_dispatcher,
)
from encore.services.storage import AttachmentFile, AttachmentStorage, get_attachment_storage

logger = logging.getLogger(__name__)

BUDGET_FOLDER = "budget-documents"
BUDGET_STATUSES = [s.value for s in BudgetStatus]


@dataclass
class BudgetResult:
    """Budget and its companion ledger row."""

    budget: Budget
    transaction: Transaction


def create_budget(
    db: Session,
    acting_user: User,
    allocated_budget: Any,
    remaining_budget: Any,
    event_id: int,
    status: str | None = None,
    reason: str | None = None,
    attachment: AttachmentFile | None = None,
    storage: Optional[AttachmentStorage] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> BudgetResult:
    """
    Create a budget request for a confirmed event.

    Args:
        db: Database session
        acting_user: User requesting the budget
        allocated_budget: Allocated amount (> 0)
        remaining_budget: Remaining amount (>= 0)
        event_id: Event the budget belongs to
        status: Initial status (default: pending)
        reason: Optional justification
        attachment: Optional supporting document

    Returns:
        BudgetResult with the budget and its ledger transaction

    Raises:
        ValidationError: Invalid amounts or status
        NotFoundError: Event does not exist
        InvalidStateError: Event is not confirmed
        DependencyError: Document storage failed on every provider
    """
    allocated = parse_amount(allocated_budget, "allocatedBudget")
    remaining = parse_amount(remaining_budget, "remainingBudget", allow_zero=True)
    status = require_choice(status or BudgetStatus.PENDING.value, "status", BUDGET_STATUSES)

    event = db.get(Event, event_id)
    if event is None:
        logger.warning("Budget requested for unknown event %s", event_id)
        raise NotFoundError(f"Event {event_id} not found")
    if event.status != EventStatus.CONFIRMED.value:
        logger.warning("Budget requested for event %s in status %s", event_id, event.status)
        raise InvalidStateError(
            f"Budgets can only be created for confirmed events (event {event_id} is {event.status})"
        )

    storage = storage or get_attachment_storage()
    stored = storage.store(attachment, BUDGET_FOLDER) if attachment else None

    try:
        with atomic(db):
            budget = Budget(
                allocated_budget=allocated,
                remaining_budget=remaining,
                status=status,
                reason=reason,
                event_id=event.id,
                user_id=acting_user.id,
                attachment_url=stored.url if stored else None,
                attachment_provider=stored.provider if stored else None,
            )
            db.add(budget)
            db.flush()

            transaction = record_ledger_entry(
                db,
                TransactionType.BUDGET,
                allocated,
                details=f"Budget for event '{event.name}' (budget {budget.id})",
                user_id=acting_user.id,
            )
    except Exception as e:
        logger.error("Budget for event %s rolled back: %s", event_id, e, exc_info=True)
        raise InternalError("Error creating budget", error=str(e)) from e

    logger.info(
        "Budget %s created for event %s: allocated=%s status=%s",
        budget.id,
        event_id,
        allocated,
        status,
    )

    dispatcher = dispatcher or get_notification_dispatcher()
    dispatcher.notify_finance_team(
        f"Budget request of {format_amount(allocated)} for event '{event.name}' "
        f"submitted by {acting_user.full_name}."
    )
    return BudgetResult(budget=budget, transaction=transaction)


__all__ = ["BudgetResult", "create_budget", "BUDGET_STATUSES"]
