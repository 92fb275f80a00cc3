"""
Statistical Window Detector (deterministic fallback).

Purpose:
Flag expenses whose amount is far above the recent history of the same
category. Used when the outlier model cannot produce usable scores.

Design Constraint:
- Transaction i is compared ONLY against transactions strictly before it
  (up to WINDOW_SIZE of them). Changing anything at or after i can never
  change whether i is flagged.
- No randomness: identical input gives identical flags, scores and reasons.

Score convention: positive z-score, larger = more anomalous.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from expense_anomaly.features.feature_definitions import coerce_amount, coerce_date
from expense_anomaly.features.time_utils import (
    calculate_context_stats,
    chronological_key,
    get_context_window,
)
from expense_anomaly.ingestion.schema import AnomalyRecord, Transaction
from expense_anomaly.models.reasons import category_label

logger = logging.getLogger(__name__)


WINDOW_SIZE = 10          # Past transactions used as context
MIN_CONTEXT = 5           # Context needed before a transaction can be judged
STD_MULTIPLIER = 2.5      # Threshold = mean + 2.5 * std

# Reason bands (strict >, a score of exactly 5.0 is "significant")
EXTREME_SCORE = 5.0
SIGNIFICANT_SCORE = 3.0

# Below this the context is treated as constant: no anomaly is possible
STD_EPSILON = 1e-9

SLIDING_WINDOW_METHOD = "Sliding window detection"


def score_against_context(
    amount: float,
    context_amounts: Sequence[float],
    std_multiplier: float = STD_MULTIPLIER
) -> Optional[Tuple[float, float]]:
    """
    Compare one amount with its context.

    Returns:
        (score, context_mean) when the amount exceeds mean + k * std,
        None otherwise (including a zero-variance context)
    """
    mean, std = calculate_context_stats(context_amounts)
    if std < STD_EPSILON:
        return None

    threshold = mean + std_multiplier * std
    if amount > threshold:
        return (amount - mean) / std, mean
    return None


def describe_window_anomaly(
    amount: float,
    mean: float,
    score: float,
    category_name: Optional[str] = None,
    windowed: bool = True
) -> str:
    """
    Reason text for a z-score anomaly.

    windowed=True phrases the comparison as "at the time" since the context
    is a trailing window; the single-transaction check uses the full history.
    """
    label = category_label(category_name)

    if score > EXTREME_SCORE:
        return (
            f"This expense of ${amount:.2f} is extremely high compared to your typical"
            f"{label} spending of around ${mean:.2f}."
        )
    if score > SIGNIFICANT_SCORE:
        period = " from this time period" if windowed else ""
        return (
            f"This expense of ${amount:.2f} is significantly higher than your average"
            f"{label} spending{period}."
        )
    at_time = " at the time" if windowed else ""
    return f"This{label} expense of ${amount:.2f} is higher than your typical spending pattern{at_time}."


class StatisticalWindowDetector:
    """
    Trailing-window z-score detector.

    Usage:
        detector = StatisticalWindowDetector()
        anomalies = detector.detect(transactions, category_name="Groceries")
    """

    method = SLIDING_WINDOW_METHOD

    def __init__(
        self,
        window_size: int = WINDOW_SIZE,
        min_context: int = MIN_CONTEXT,
        std_multiplier: float = STD_MULTIPLIER
    ):
        if min_context < 1 or window_size < min_context:
            raise ValueError(
                f"Need 1 <= min_context <= window_size, got "
                f"min_context={min_context}, window_size={window_size}"
            )
        self.window_size = window_size
        self.min_context = min_context
        self.std_multiplier = std_multiplier

    def detect(
        self,
        transactions: Sequence[Transaction],
        category_name: Optional[str] = None
    ) -> List[AnomalyRecord]:
        if len(transactions) < self.min_context:
            logger.debug(
                f"Window detector skipped: {len(transactions)}/{self.min_context} transactions"
            )
            return []

        # Oldest first. Invalid dates sort first; sorted() keeps ties stable.
        ordered = sorted(transactions, key=lambda t: chronological_key(coerce_date(t.date)))
        amounts = [coerce_amount(t.amount) for t in ordered]

        anomalies = []
        for i in range(self.min_context, len(ordered)):
            context = get_context_window(amounts, i, self.window_size)
            result = score_against_context(amounts[i], context, self.std_multiplier)
            if result is None:
                continue

            score, mean = result
            anomalies.append(
                AnomalyRecord.from_transaction(
                    ordered[i],
                    anomalyScore=score,
                    reason=describe_window_anomaly(amounts[i], mean, score, category_name),
                )
            )

        logger.debug(f"Window detector flagged {len(anomalies)}/{len(ordered)} transactions")
        return anomalies
