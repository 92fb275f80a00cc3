"""
Per-user anomaly feed.

Runs category detection for every expense category of a user concurrently,
waits for ALL of them, then merges the anomalies into one feed:

    date descending (most recent first), then |anomaly_score| descending

Scores from the two detectors have opposite signs and are compared by
absolute value as-is.
"""

import logging
from concurrent.futures import ALL_COMPLETED, ThreadPoolExecutor, wait
from typing import Callable, List, Optional, Tuple

from expense_anomaly.config import Settings, settings as default_settings
from expense_anomaly.features.feature_definitions import coerce_date
from expense_anomaly.inference.orchestrator import build_detectors, detect_anomalies_for_category
from expense_anomaly.ingestion.schema import AnomalyRecord, CategoryDetectionResult
from expense_anomaly.ingestion.store import TransactionStore
from expense_anomaly.models.detector import CategoryAnomalyDetector

logger = logging.getLogger(__name__)


def feed_sort_key(anomaly: AnomalyRecord) -> Tuple[float, float]:
    """Key for sorted(..., reverse=True). Invalid dates end up last."""
    timestamp = coerce_date(anomaly.date)
    when = timestamp.timestamp() if timestamp is not None else float('-inf')
    return when, abs(anomaly.anomaly_score or 0.0)


def merge_category_results(results: List[CategoryDetectionResult]) -> List[AnomalyRecord]:
    """Flatten category results into one feed ordered by feed_sort_key."""
    anomalies = [a for result in results for a in result.anomalies]
    return sorted(anomalies, key=feed_sort_key, reverse=True)


def detect_anomalies_for_user(
    store: TransactionStore,
    user_id: str,
    primary: Optional[CategoryAnomalyDetector] = None,
    fallback: Optional[CategoryAnomalyDetector] = None,
    config: Optional[Settings] = None,
    max_workers: Optional[int] = None,
    on_category_result: Optional[Callable[[CategoryDetectionResult], None]] = None
) -> List[AnomalyRecord]:
    """
    Detect anomalies across all expense categories of a user.

    Args:
        store: Transaction source
        user_id: User to analyse
        primary / fallback: Detectors shared by every category (stateless)
        config: Settings (default: global settings)
        max_workers: Thread pool size (default: settings.MAX_CATEGORY_WORKERS)
        on_category_result: Called with each category result after the join,
            e.g. to record metrics. Has no effect on the returned feed.

    Returns:
        Merged anomaly feed, empty when the user has no expense categories

    Raises:
        The store error when a single category fails, an ExceptionGroup when
        several do. Nothing is returned unless every category completed.
    """
    config = config or default_settings

    categories = sorted(store.list_distinct_expense_categories(user_id))
    if not categories:
        logger.info(f"No expense categories for user {user_id}")
        return []

    logger.info(f"Running anomaly detection for user {user_id} over {len(categories)} categories")

    if primary is None or fallback is None:
        default_primary, default_fallback = build_detectors(config)
        primary = primary or default_primary
        fallback = fallback or default_fallback

    workers = max(1, min(max_workers or config.MAX_CATEGORY_WORKERS, len(categories)))

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="category-detect") as pool:
        futures = {
            pool.submit(
                detect_anomalies_for_category,
                store, user_id, category_id, primary, fallback, config
            ): category_id
            for category_id in categories
        }
        # Join barrier: no partial results
        wait(futures, return_when=ALL_COMPLETED)

    results: List[CategoryDetectionResult] = []
    errors: List[Exception] = []
    for future, category_id in futures.items():
        error = future.exception()
        if error is not None:
            logger.error(f"Anomaly detection failed for category {category_id}: {error}")
            errors.append(error)
        else:
            results.append(future.result())

    if len(errors) == 1:
        raise errors[0]
    if errors:
        raise ExceptionGroup(
            f"Anomaly detection failed for {len(errors)} categories of user {user_id}",
            errors
        )

    if on_category_result is not None:
        for result in results:
            on_category_result(result)

    anomalies = merge_category_results(results)
    logger.info(f"Total anomalies found for user {user_id}: {len(anomalies)}")
    return anomalies
