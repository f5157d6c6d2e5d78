"""Salary payouts with their ledger row."""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from encore.database import atomic
from encore.errors import NotFoundError
from encore.models import Salary, Transaction, TransactionType, User
from encore.services.common import parse_amount, record_ledger_entry

logger = logging.getLogger(__name__)


@dataclass
class SalaryResult:
    salary: Salary
    transaction: Transaction


def record_salary(db: Session, user_id: int, salary_amount: Any) -> SalaryResult:
    """Record a salary payout and its ledger row in one unit of work.

    Raises:
        ValidationError: Amount missing or not positive
        NotFoundError: User does not exist
    """
    amount = parse_amount(salary_amount, "salaryAmount")
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")

    with atomic(db):
        salary = Salary(
            user_id=user.id,
            full_name=user.full_name,
            email=user.email,
            salary_amount=amount,
        )
        db.add(salary)
        db.flush()
        transaction = record_ledger_entry(
            db,
            TransactionType.SALARY,
            amount,
            details=f"Salary for {user.full_name} (salary {salary.id})",
            user_id=user.id,
        )

    logger.info("Salary %s recorded for user %s: %s", salary.id, user.id, amount)
    return SalaryResult(salary=salary, transaction=transaction)


__all__ = ["SalaryResult", "record_salary"]
