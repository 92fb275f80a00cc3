"""
Expense Anomaly Engine
======================

Flags anomalous expense transactions per spending category:
- Primary: Isolation Forest trained on each category's transactions
- Fallback: trailing-window z-score (deterministic, no lookahead)
- Every flagged expense carries a score and a human-readable reason

Entry points:
    detect_anomalies_for_category(store, user_id, category_id)
    detect_anomalies_for_user(store, user_id)
    check_transaction_for_anomaly(store, user_id, transaction)
"""

from expense_anomaly.inference.aggregator import detect_anomalies_for_user
from expense_anomaly.inference.orchestrator import detect_anomalies_for_category
from expense_anomaly.inference.single_check import check_transaction_for_anomaly
from expense_anomaly.ingestion.schema import AnomalyRecord, CategoryDetectionResult, Transaction
from expense_anomaly.ingestion.store import (
    DuckDBTransactionStore,
    InMemoryTransactionStore,
    TransactionStore,
)

__version__ = "1.0.0"

__all__ = [
    "detect_anomalies_for_category",
    "detect_anomalies_for_user",
    "check_transaction_for_anomaly",
    "Transaction",
    "AnomalyRecord",
    "CategoryDetectionResult",
    "TransactionStore",
    "InMemoryTransactionStore",
    "DuckDBTransactionStore",
]
