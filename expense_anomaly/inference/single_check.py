"""
Write-time check of a single transaction.

Lightweight: compares the new transaction's amount with the mean/std of the
category's other expenses. Never trains the outlier model.
"""

import logging
from typing import Optional

from expense_anomaly.config import Settings, settings as default_settings
from expense_anomaly.features.feature_definitions import coerce_amount
from expense_anomaly.inference.orchestrator import resolve_category_name
from expense_anomaly.ingestion.schema import AnomalyRecord, Transaction
from expense_anomaly.ingestion.store import TransactionStore
from expense_anomaly.models.window_detector import describe_window_anomaly, score_against_context

logger = logging.getLogger(__name__)


def check_transaction_for_anomaly(
    store: TransactionStore,
    user_id: str,
    transaction: Transaction,
    config: Optional[Settings] = None
) -> Optional[AnomalyRecord]:
    """
    Decide whether one transaction is anomalous for its category.

    Returns:
        None when the transaction is not a categorized expense or fewer than
        MIN_TRANSACTIONS other transactions exist (no determination), else
        the transaction annotated with isAnomaly and, when anomalous,
        anomalyScore and reason.

    Raises:
        Whatever the store raises
    """
    config = config or default_settings

    if not transaction.is_expense:
        logger.debug(f"No determination for {transaction.id}: type {transaction.type!r} is not an expense")
        return None

    if not transaction.category:
        logger.debug(f"No determination for {transaction.id}: transaction has no category")
        return None

    history = [
        txn for txn in store.list_expense_transactions(user_id, transaction.category)
        if txn.id != transaction.id
    ]

    if len(history) < config.MIN_TRANSACTIONS:
        logger.debug(
            f"No determination for {transaction.id}: "
            f"{len(history)}/{config.MIN_TRANSACTIONS} prior transactions"
        )
        return None

    amount = coerce_amount(transaction.amount)
    context = [coerce_amount(txn.amount) for txn in history]
    result = score_against_context(amount, context, config.WINDOW_STD_MULTIPLIER)

    if result is None:
        return AnomalyRecord.from_transaction(transaction, isAnomaly=False)

    score, mean = result
    category_name = transaction.category_name or resolve_category_name(history, transaction.category)
    logger.info(f"Transaction {transaction.id} flagged as anomalous (score={score:.2f})")

    return AnomalyRecord.from_transaction(
        transaction,
        isAnomaly=True,
        anomalyScore=score,
        reason=describe_window_anomaly(amount, mean, score, category_name, windowed=False),
    )
