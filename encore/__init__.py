"""Encore finance service: payments, budgets, refunds and ledger anomaly detection."""

__version__ = "0.1.0"
