"""Unit tests for the anomaly heuristics."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from encore.models import Transaction, TransactionType
from encore.services.anomaly_service import (
    AnomalyThresholds,
    AnomalyType,
    Severity,
    find_anomalies,
)

NOW = datetime(2026, 3, 12, 15, 0, tzinfo=timezone.utc)
NOON = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def make_tx(amount, user_id=1, tx_type=TransactionType.PAYMENT, date=NOON) -> Transaction:
    return Transaction(
        transaction_type=tx_type.value,
        total_amount=Decimal(str(amount)),
        user_id=user_id,
        date=date,
    )


def scan(transactions, **kwargs):
    return find_anomalies(transactions, AnomalyThresholds(), now=NOW, tz=timezone.utc, **kwargs)


@pytest.mark.unit
def test_single_large_amount_is_flagged_high():
    transactions = [make_tx(100, date=NOON + timedelta(minutes=i)) for i in range(9)]
    outlier = make_tx(10000, date=NOON + timedelta(hours=1))
    transactions.append(outlier)

    report = scan(transactions)

    assert report.anomaly_count == 1
    flagged = report.anomalies[0]
    assert flagged.transaction is outlier
    assert AnomalyType.AMOUNT in flagged.anomaly_types
    assert flagged.severity == Severity.HIGH
    assert report.total_transactions == 10
    assert report.anomaly_percentage == 10.0


@pytest.mark.unit
def test_amount_heuristic_alone_gives_medium_below_high_threshold():
    # One user per transaction so the per-user mean equals the amount
    transactions = [make_tx(100, user_id=i) for i in range(9)]
    transactions.append(make_tx(10000, user_id=99))

    report = scan(transactions)

    assert report.anomaly_count == 1
    assert report.anomalies[0].anomaly_types == [AnomalyType.AMOUNT]
    assert report.anomalies[0].severity == Severity.MEDIUM


@pytest.mark.unit
def test_empty_ledger_returns_empty_report():
    report = scan([])

    assert report.anomalies == []
    assert report.to_dict() == {
        "anomalies": [],
        "stats": {"totalTransactions": 0, "anomalyCount": 0, "anomalyPercentage": 0.0},
    }


@pytest.mark.unit
def test_identical_amounts_flag_nothing():
    report = scan([make_tx(250, user_id=i % 3) for i in range(8)])

    assert report.anomaly_count == 0


@pytest.mark.unit
def test_budget_and_salary_are_skipped_by_amount_heuristic():
    transactions = [make_tx(100, user_id=i) for i in range(9)]
    transactions.append(make_tx(10000, user_id=50, tx_type=TransactionType.BUDGET))
    transactions.append(make_tx(10000, user_id=51, tx_type=TransactionType.SALARY))

    report = scan(transactions)

    assert report.anomaly_count == 0


@pytest.mark.unit
def test_outside_business_hours_is_low_severity():
    early = make_tx(100, user_id=1, date=NOON.replace(hour=3))
    late = make_tx(100, user_id=2, date=NOON.replace(hour=18))
    end_of_day = make_tx(100, user_id=3, date=NOON.replace(hour=17, minute=30))

    report = scan([early, late, end_of_day, make_tx(100, user_id=4)])

    flagged = {id(a.transaction): a for a in report.anomalies}
    assert set(flagged) == {id(early), id(late)}
    assert all(a.anomaly_types == [AnomalyType.TIME] for a in report.anomalies)
    assert all(a.severity == Severity.LOW for a in report.anomalies)


@pytest.mark.unit
def test_business_hours_use_given_timezone():
    # 20:00 UTC is 12:00 in a UTC-8 zone
    tx = make_tx(100, date=NOON.replace(hour=20))
    pacific = timezone(timedelta(hours=-8))

    report = find_anomalies([tx], AnomalyThresholds(), now=NOW, tz=pacific)

    assert report.anomaly_count == 0


@pytest.mark.unit
def test_burst_of_transactions_flags_user_frequency():
    busy = [make_tx(100, user_id=1, date=NOW - timedelta(minutes=10 * i)) for i in range(11)]
    steady = [make_tx(100, user_id=2, date=NOW - timedelta(days=2 + i)) for i in range(11)]
    for tx in steady:
        tx.date = tx.date.replace(hour=12)

    report = scan(busy + steady)

    assert report.anomaly_count == 11
    assert all(a.transaction.user_id == 1 for a in report.anomalies)
    assert all(a.anomaly_types == [AnomalyType.FREQUENCY] for a in report.anomalies)
    assert all(a.severity == Severity.HIGH for a in report.anomalies)


@pytest.mark.unit
def test_ten_transactions_are_below_frequency_minimum():
    recent = [make_tx(100, user_id=1, date=NOW - timedelta(minutes=i)) for i in range(10)]

    report = scan(recent)

    assert report.anomaly_count == 0


@pytest.mark.unit
def test_user_deviation_flags_amount_far_above_own_mean():
    # Other users keep the global distribution wide so the z-score stays low
    noise = [make_tx(amount, user_id=9) for amount in (50, 5000, 80, 4000, 60)]
    mine = [make_tx(10, user_id=1) for _ in range(5)] + [make_tx(500, user_id=1)]

    report = scan(noise + mine)

    flagged = [a for a in report.anomalies if a.transaction.user_id == 1]
    assert len(flagged) == 1
    assert flagged[0].transaction.total_amount == Decimal("500")
    assert flagged[0].anomaly_types == [AnomalyType.USER]
    assert flagged[0].severity == Severity.HIGH


@pytest.mark.unit
def test_sorted_by_severity_then_newest_first():
    older_low = make_tx(100, user_id=1, date=NOON.replace(hour=2))
    newer_low = make_tx(100, user_id=2, date=NOON.replace(hour=22))
    transactions = [older_low, newer_low] + [make_tx(100, user_id=3) for _ in range(8)]
    high = make_tx(10000, user_id=3, date=NOON - timedelta(days=1))
    transactions.append(high)

    report = scan(transactions)

    ordered = [a.transaction for a in report.anomalies]
    assert ordered[0] is high
    assert ordered[1:] == [newer_low, older_low]


@pytest.mark.unit
def test_percentage_rounded_to_two_decimals():
    transactions = [
        make_tx(100, user_id=1),
        make_tx(100, user_id=2),
        make_tx(100, user_id=3, date=NOON.replace(hour=4)),
    ]

    report = scan(transactions)

    assert report.anomaly_percentage == 33.33


@pytest.mark.unit
def test_custom_thresholds_change_business_hours():
    tx = make_tx(100, date=NOON.replace(hour=8))
    thresholds = AnomalyThresholds(business_hour_start=7)

    report = find_anomalies([tx], thresholds, now=NOW, tz=timezone.utc)

    assert report.anomaly_count == 0


@pytest.mark.unit
def test_anomaly_record_serializes_camel_case():
    transactions = [make_tx(100, user_id=1) for _ in range(9)]
    transactions.append(make_tx(10000, user_id=1))

    record = scan(transactions).anomalies[0].to_dict()

    assert record["transactionType"] == "payment"
    assert record["totalAmount"] == 10000.0
    assert record["severity"] == "high"
    assert set(record["anomalyTypes"]) == {"amount", "user"}
    assert record["user"] is None
