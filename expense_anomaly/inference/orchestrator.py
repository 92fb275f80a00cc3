"""
Per-category detection with model-first, statistics-fallback policy.

Pipeline for one (user, category):
1. Fetch the category's expense transactions (oldest first)
2. Fewer than MIN_TRANSACTIONS -> empty result with a message
3. Outlier model (Isolation Forest) -> anomalies with model reasons
4. Model failure of any kind -> window detector, result labelled with its method

Store errors are not caught here: an infrastructure failure is the caller's
problem, an algorithmic failure never is.
"""

import logging
from typing import Optional, Sequence, Tuple

from expense_anomaly.config import Settings, settings as default_settings
from expense_anomaly.ingestion.schema import CategoryDetectionResult, Transaction
from expense_anomaly.ingestion.store import TransactionStore
from expense_anomaly.models.detector import CategoryAnomalyDetector
from expense_anomaly.models.isolation_detector import IsolationForestDetector
from expense_anomaly.models.window_detector import StatisticalWindowDetector

logger = logging.getLogger(__name__)


INSUFFICIENT_DATA_MESSAGE = "Not enough transaction data for anomaly detection"


def resolve_category_name(transactions: Sequence[Transaction], category_id: str) -> str:
    """
    Display name for a category: the first categoryName found on its
    transactions, else the id with its first character upper-cased.
    """
    for txn in transactions:
        if txn.category_name:
            return txn.category_name
    return category_id[:1].upper() + category_id[1:]


def build_detectors(
    config: Optional[Settings] = None
) -> Tuple[CategoryAnomalyDetector, CategoryAnomalyDetector]:
    """(primary, fallback) detectors configured from settings."""
    config = config or default_settings
    primary = IsolationForestDetector(
        n_estimators=config.ISOLATION_N_ESTIMATORS,
        contamination=config.ISOLATION_CONTAMINATION,
        score_threshold=config.ISOLATION_SCORE_THRESHOLD,
        min_samples=config.ISOLATION_MIN_SAMPLES,
        random_state=config.ISOLATION_RANDOM_STATE,
        n_jobs=config.ISOLATION_N_JOBS,
    )
    fallback = StatisticalWindowDetector(
        window_size=config.WINDOW_SIZE,
        min_context=config.MIN_TRANSACTIONS,
        std_multiplier=config.WINDOW_STD_MULTIPLIER,
    )
    return primary, fallback


def detect_anomalies_for_category(
    store: TransactionStore,
    user_id: str,
    category_id: str,
    primary: Optional[CategoryAnomalyDetector] = None,
    fallback: Optional[CategoryAnomalyDetector] = None,
    config: Optional[Settings] = None
) -> CategoryDetectionResult:
    """
    Run anomaly detection for one category of one user.

    Args:
        store: Transaction source
        user_id: Owner of the transactions
        category_id: Category to analyse
        primary: Detector tried first (default: Isolation Forest)
        fallback: Detector used when primary fails (default: window detector)
        config: Settings (default: global settings)

    Returns:
        CategoryDetectionResult. `method` is set only when the fallback ran,
        `message` only when there was not enough data.

    Raises:
        Whatever the store raises
    """
    config = config or default_settings
    if primary is None or fallback is None:
        default_primary, default_fallback = build_detectors(config)
        primary = primary or default_primary
        fallback = fallback or default_fallback

    transactions = store.list_expense_transactions(user_id, category_id)
    logger.debug(f"Found {len(transactions)} transactions for category {category_id}, user {user_id}")

    if len(transactions) < config.MIN_TRANSACTIONS:
        logger.info(
            f"Not enough transactions for category {category_id} "
            f"({len(transactions)}/{config.MIN_TRANSACTIONS})"
        )
        return CategoryDetectionResult(
            categoryId=category_id,
            anomalies=[],
            message=INSUFFICIENT_DATA_MESSAGE
        )

    category_name = resolve_category_name(transactions, category_id)
    method = None

    try:
        anomalies = primary.detect(transactions, category_name)
    except Exception as e:  # noqa: BLE001 - any model failure means fallback
        logger.warning(
            f"{primary.method} failed for category {category_id} "
            f"({type(e).__name__}: {e}). Falling back to {fallback.method.lower()}"
        )
        anomalies = fallback.detect(transactions, category_name)
        method = fallback.method

    anomalies = [
        a if a.category_name else a.model_copy(update={'category_name': category_name})
        for a in anomalies
    ]

    logger.info(
        f"Found {len(anomalies)} anomalies in category {category_id} "
        f"via {method or primary.method}"
    )
    return CategoryDetectionResult(
        categoryId=category_id,
        anomalies=anomalies,
        method=method
    )
