"""
Anomaly detection over the transaction ledger.

Four independent heuristics flag suspicious transactions:

- amount: population z-score of the amount across the whole ledger
- frequency: users with many transactions and a recent burst
- time: transactions outside local business hours
- user: amounts far above the owner's own average

A transaction's severity is the highest severity among the heuristics that
matched it. Detection is synchronous and fully in-memory.
"""

import logging
import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from encore.config import settings
from encore.models import Transaction, TransactionType, ensure_utc, utcnow
from encore.services.locale_service import get_business_timezone, to_local

logger = logging.getLogger(__name__)

# Types excluded from the amount z-score only
AMOUNT_EXCLUDED_TYPES = frozenset({TransactionType.BUDGET.value, TransactionType.SALARY.value})


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.LOW: 1, Severity.MEDIUM: 2, Severity.HIGH: 3}


class AnomalyType(str, Enum):
    AMOUNT = "amount"
    FREQUENCY = "frequency"
    TIME = "time"
    USER = "user"


@dataclass(frozen=True)
class AnomalyThresholds:
    """Tunable limits for the four heuristics."""

    z_threshold: float = 2.5
    z_high_threshold: float = 3.5
    frequency_min_total: int = 10
    frequency_window_hours: int = 24
    frequency_window_count: int = 5
    business_hour_start: int = 9
    business_hour_end: int = 17
    user_multiplier: float = 3.0

    @classmethod
    def from_settings(cls) -> "AnomalyThresholds":
        return cls(
            z_threshold=settings.anomaly_z_threshold,
            z_high_threshold=settings.anomaly_z_high_threshold,
            frequency_min_total=settings.anomaly_frequency_min_total,
            frequency_window_hours=settings.anomaly_frequency_window_hours,
            frequency_window_count=settings.anomaly_frequency_window_count,
            business_hour_start=settings.anomaly_business_hour_start,
            business_hour_end=settings.anomaly_business_hour_end,
            user_multiplier=settings.anomaly_user_multiplier,
        )


@dataclass
class AnomalyRecord:
    """A flagged transaction with the heuristics that matched it."""

    transaction: Transaction
    anomaly_types: list[AnomalyType] = field(default_factory=list)
    severity: Severity = Severity.LOW

    def flag(self, anomaly_type: AnomalyType, severity: Severity) -> None:
        if anomaly_type not in self.anomaly_types:
            self.anomaly_types.append(anomaly_type)
        if severity.rank > self.severity.rank:
            self.severity = severity

    @property
    def date(self) -> datetime:
        return ensure_utc(self.transaction.date)

    def to_dict(self) -> dict[str, Any]:
        tx = self.transaction
        user = tx.user
        return {
            "id": tx.id,
            "transactionType": tx.transaction_type,
            "totalAmount": float(tx.total_amount),
            "details": tx.details,
            "date": self.date.isoformat(),
            "invoiceId": tx.invoice_id,
            "userId": tx.user_id,
            "user": (
                {"id": user.id, "fullName": user.full_name, "email": user.email}
                if user is not None
                else None
            ),
            "anomalyTypes": [t.value for t in self.anomaly_types],
            "severity": self.severity.value,
        }


@dataclass
class AnomalyReport:
    anomalies: list[AnomalyRecord]
    total_transactions: int

    @property
    def anomaly_count(self) -> int:
        return len(self.anomalies)

    @property
    def anomaly_percentage(self) -> float:
        if self.total_transactions == 0:
            return 0.0
        return round(self.anomaly_count / self.total_transactions * 100, 2)

    def to_dict(self) -> dict[str, Any]:
        return {
            "anomalies": [a.to_dict() for a in self.anomalies],
            "stats": {
                "totalTransactions": self.total_transactions,
                "anomalyCount": self.anomaly_count,
                "anomalyPercentage": self.anomaly_percentage,
            },
        }


def _amount(tx: Transaction) -> float:
    value = tx.total_amount
    return float(value) if isinstance(value, Decimal) else float(value or 0)


def find_anomalies(
    transactions: Iterable[Transaction],
    thresholds: Optional[AnomalyThresholds] = None,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> AnomalyReport:
    """
    Run every heuristic over a list of ledger rows.

    Args:
        transactions: Ledger rows to analyse
        thresholds: Heuristic limits (default: AnomalyThresholds())
        now: Reference time for the frequency window (default: current UTC time)
        tz: Timezone for business hours (default: configured business timezone)

    Returns:
        AnomalyReport sorted by severity (high first) then date (newest first)
    """
    thresholds = thresholds or AnomalyThresholds()
    now = ensure_utc(now) if now is not None else utcnow()
    tz = tz or get_business_timezone()
    transactions = list(transactions)

    if not transactions:
        return AnomalyReport(anomalies=[], total_transactions=0)

    flagged: dict[int, AnomalyRecord] = {}

    def flag(tx: Transaction, anomaly_type: AnomalyType, severity: Severity) -> None:
        record = flagged.get(id(tx))
        if record is None:
            record = flagged[id(tx)] = AnomalyRecord(transaction=tx)
        record.flag(anomaly_type, severity)

    # Amount: population statistics over every amount in the ledger
    amounts = [_amount(tx) for tx in transactions]
    mean = statistics.fmean(amounts)
    stdev = statistics.pstdev(amounts, mu=mean)
    if stdev > 0:
        for tx in transactions:
            if tx.transaction_type in AMOUNT_EXCLUDED_TYPES:
                continue
            z = abs(_amount(tx) - mean) / stdev
            if z > thresholds.z_threshold:
                severity = Severity.HIGH if z > thresholds.z_high_threshold else Severity.MEDIUM
                flag(tx, AnomalyType.AMOUNT, severity)

    by_user: dict[int, list[Transaction]] = defaultdict(list)
    for tx in transactions:
        if tx.user_id is not None:
            by_user[tx.user_id].append(tx)

    # Frequency: a busy user with a burst inside the recent window
    window_start = now - timedelta(hours=thresholds.frequency_window_hours)
    for user_txs in by_user.values():
        if len(user_txs) <= thresholds.frequency_min_total:
            continue
        recent = [tx for tx in user_txs if ensure_utc(tx.date) >= window_start]
        if len(recent) > thresholds.frequency_window_count:
            for tx in user_txs:
                flag(tx, AnomalyType.FREQUENCY, Severity.HIGH)

    # Time: outside [start, end] local hours
    for tx in transactions:
        hour = to_local(ensure_utc(tx.date), tz).hour
        if hour < thresholds.business_hour_start or hour > thresholds.business_hour_end:
            flag(tx, AnomalyType.TIME, Severity.LOW)

    # User: far above the owner's own average
    for user_txs in by_user.values():
        user_mean = statistics.fmean(_amount(tx) for tx in user_txs)
        for tx in user_txs:
            if _amount(tx) > thresholds.user_multiplier * user_mean:
                flag(tx, AnomalyType.USER, Severity.HIGH)

    anomalies = sorted(
        flagged.values(),
        key=lambda record: (record.severity.rank, record.date),
        reverse=True,
    )
    return AnomalyReport(anomalies=anomalies, total_transactions=len(transactions))


class AnomalyDetector:
    """Loads the ledger with owners and runs the heuristics."""

    def __init__(
        self,
        db: Session,
        thresholds: Optional[AnomalyThresholds] = None,
        tz: Optional[tzinfo] = None,
    ):
        self.db = db
        self.thresholds = thresholds or AnomalyThresholds.from_settings()
        self.tz = tz

    def detect_anomalies(self, now: Optional[datetime] = None) -> AnomalyReport:
        transactions = list(
            self.db.execute(
                select(Transaction).options(selectinload(Transaction.user))
            ).scalars()
        )
        report = find_anomalies(transactions, self.thresholds, now=now, tz=self.tz)
        logger.info(
            "Anomaly scan: %d of %d transactions flagged (%.2f%%)",
            report.anomaly_count,
            report.total_transactions,
            report.anomaly_percentage,
        )
        return report


def detect_anomalies(db: Session) -> AnomalyReport:
    """Scan the full ledger with thresholds from settings."""
    return AnomalyDetector(db).detect_anomalies()


__all__ = [
    "Severity",
    "AnomalyType",
    "AnomalyThresholds",
    "AnomalyRecord",
    "AnomalyReport",
    "AnomalyDetector",
    "find_anomalies",
    "detect_anomalies",
]
