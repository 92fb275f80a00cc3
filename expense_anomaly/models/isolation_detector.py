"""
Outlier Model Detector (Isolation Forest)

Purpose:
Primary detector for a category. Trains an unsupervised Isolation Forest on
the category's own transactions and flags the ones it isolates fastest.

Design Constraint:
- Trained per detection run on one category; nothing is persisted
- Uses only the 4 features of features.feature_definitions
- Any failure is RAISED, never handled here. The orchestrator decides what
  to do (fall back to the window detector).

Score convention: decision_function rescaled so the contamination cut-off is
0 and a certain anomaly is -1 (see predict_anomaly_scores). Negative =
anomaly, more negative = more anomalous. This is the opposite sign of the
window detector's z-score and the two are never normalized against each other.
"""

import logging
import warnings
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.ensemble import IsolationForest

from expense_anomaly.features.feature_definitions import (
    FEATURE_NAMES,
    build_feature_matrix,
    coerce_amount,
    coerce_date,
)
from expense_anomaly.ingestion.schema import AnomalyRecord, Transaction
from expense_anomaly.models.reasons import generate_anomaly_reason

logger = logging.getLogger(__name__)


N_ESTIMATORS = 100
CONTAMINATION = 0.1        # Expected fraction of anomalies
SCORE_THRESHOLD = -0.3     # Flag rescaled scores < -0.3
MIN_SAMPLES = 20           # Below this a lone spike cannot reach the threshold
RANDOM_STATE = 42

# Amount std below this is "near-constant": the forest splits on noise
AMOUNT_STD_EPSILON = 1e-9

ISOLATION_FOREST_METHOD = "Isolation forest"


# ============================================================================
# ERRORS
# ============================================================================

class OutlierModelError(ValueError):
    """The outlier model could not produce usable scores."""


class InsufficientSignalError(OutlierModelError):
    """Too few rows, or no variation in amounts, to train the model."""


class DegenerateScoresError(OutlierModelError):
    """The trained model produced non-finite or constant scores."""


# ============================================================================
# MODEL TRAINING
# ============================================================================

def validate_training_matrix(X: pd.DataFrame, min_samples: int = MIN_SAMPLES) -> None:
    """
    Reject inputs the forest cannot learn anything from.

    Raises:
        InsufficientSignalError: If too few rows or amounts are near-constant
    """
    missing = set(FEATURE_NAMES) - set(X.columns)
    if missing:
        raise ValueError(f"Missing required features: {missing}")

    if len(X) < min_samples:
        raise InsufficientSignalError(
            f"Need at least {min_samples} transactions to train the outlier model, got {len(X)}"
        )

    amount_std = float(X['amount'].std(ddof=0))
    if not np.isfinite(amount_std) or amount_std < AMOUNT_STD_EPSILON:
        raise InsufficientSignalError(
            f"Amounts are near-constant (std={amount_std:.3g}), no signal to isolate"
        )


def train_isolation_forest(
    X: pd.DataFrame,
    contamination: float = CONTAMINATION,
    n_estimators: int = N_ESTIMATORS,
    random_state: Optional[int] = RANDOM_STATE,
    n_jobs: Optional[int] = 1
) -> IsolationForest:
    """
    Fit an Isolation Forest on a feature matrix.

    Design:
    - n_estimators = 100
    - max_samples = "auto" (min(256, n_samples) per tree)
    - max_features = number of feature columns (4)

    Args:
        X: Feature matrix from build_feature_matrix()
        contamination: Expected fraction of anomalies
        n_estimators: Number of isolation trees
        random_state: Seed, None for a fresh forest every run
        n_jobs: Parallel jobs for fitting (1 by default, categories already
            run in parallel)

    Returns:
        Fitted IsolationForest
    """
    if not 0 < contamination < 0.5:
        warnings.warn(
            f"Unusual contamination rate: {contamination:.1%}. "
            f"Expected anomaly rates are well below 50%.",
            UserWarning
        )

    model = IsolationForest(
        n_estimators=n_estimators,
        max_samples='auto',
        contamination=contamination,
        max_features=X.shape[1],
        random_state=random_state,
        n_jobs=n_jobs,
        verbose=0
    )
    model.fit(X)

    logger.debug(
        f"Trained IsolationForest: samples={len(X)}, features={X.shape[1]}, "
        f"contamination={contamination:.2%}, n_estimators={n_estimators}"
    )
    return model


# ============================================================================
# SCORING
# ============================================================================

def predict_anomaly_scores(model: IsolationForest, X: pd.DataFrame) -> np.ndarray:
    """
    Anomaly scores on the cut-off scale (negative = anomaly).

    decision_function is score_samples - offset_, where score_samples lies in
    [-1, 0) and offset_ is the contamination cut-off. Dividing by the distance
    from the cut-off to -1 (a row isolated at the root of every tree) gives:

         0   -> on the contamination cut-off
        -1   -> certain anomaly
        > 0  -> inlier

    so SCORE_THRESHOLD = -0.3 reads "30% of the way from the cut-off to a
    certain anomaly", independent of the category's size.

    Raises:
        DegenerateScoresError: If any score is non-finite or all are identical
    """
    headroom = 1.0 + float(model.offset_)
    if not np.isfinite(headroom) or headroom <= 0.0:
        raise DegenerateScoresError(f"Contamination cut-off at {model.offset_} leaves no score range")

    scores = np.asarray(model.decision_function(X), dtype=float) / headroom

    if not np.all(np.isfinite(scores)):
        raise DegenerateScoresError("Invalid scores generated by isolation forest")

    if len(scores) > 1 and scores.min() == scores.max():
        raise DegenerateScoresError("All anomaly scores identical - model may not have learned")

    logger.debug(
        f"Anomaly scores range: {scores.min():.4f} to {scores.max():.4f} "
        f"(threshold: {SCORE_THRESHOLD})"
    )
    return scores


# ============================================================================
# DETECTOR
# ============================================================================

class IsolationForestDetector:
    """
    Primary category detector.

    Usage:
        detector = IsolationForestDetector(contamination=0.1)
        anomalies = detector.detect(transactions, category_name="Dining")

    Raises from detect():
        OutlierModelError, or whatever scikit-learn raises during fit/score
    """

    method = ISOLATION_FOREST_METHOD

    def __init__(
        self,
        n_estimators: int = N_ESTIMATORS,
        contamination: float = CONTAMINATION,
        score_threshold: float = SCORE_THRESHOLD,
        min_samples: int = MIN_SAMPLES,
        random_state: Optional[int] = RANDOM_STATE,
        n_jobs: Optional[int] = 1
    ):
        self.n_estimators = n_estimators
        self.contamination = contamination
        self.score_threshold = score_threshold
        self.min_samples = min_samples
        self.random_state = random_state
        self.n_jobs = n_jobs

    def detect(
        self,
        transactions: Sequence[Transaction],
        category_name: Optional[str] = None
    ) -> List[AnomalyRecord]:
        X = build_feature_matrix(transactions)
        validate_training_matrix(X, min_samples=self.min_samples)

        model = train_isolation_forest(
            X,
            contamination=self.contamination,
            n_estimators=self.n_estimators,
            random_state=self.random_state,
            n_jobs=self.n_jobs
        )
        scores = predict_anomaly_scores(model, X)

        # Most anomalous first; stable for equal scores
        flagged = [i for i in np.argsort(scores, kind='stable') if scores[i] < self.score_threshold]

        all_amounts = X['amount'].tolist()
        anomalies = []
        for i in flagged:
            txn = transactions[i]
            reason = generate_anomaly_reason(
                coerce_amount(txn.amount),
                coerce_date(txn.date),
                all_amounts,
                category_name
            )
            anomalies.append(
                AnomalyRecord.from_transaction(txn, anomalyScore=float(scores[i]), reason=reason)
            )

        logger.debug(f"Isolation forest flagged {len(anomalies)}/{len(transactions)} transactions")
        return anomalies
