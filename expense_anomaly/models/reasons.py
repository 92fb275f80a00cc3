"""
Explanations for anomalies flagged by the outlier model.

The model itself gives no reason for a low score, so the explanation is
derived from category-wide statistics: the mean and max over ALL qualifying
transactions of the category. (The window detector explains with its local
context instead; see models.window_detector.)
"""

from typing import Optional, Sequence

import numpy as np
import pandas as pd

from expense_anomaly.features.feature_definitions import WEEKDAY_NAMES, day_of_week

HIGH_RATIO = 3.0
ELEVATED_RATIO = 1.5


def category_label(category_name: Optional[str]) -> str:
    """' Groceries' for use inside a sentence, '' when there is no name."""
    return f" {category_name}" if category_name else ""


def generate_anomaly_reason(
    amount: float,
    timestamp: Optional[pd.Timestamp],
    all_amounts: Sequence[float],
    category_name: Optional[str] = None
) -> str:
    """
    Human-readable reason for one model-flagged transaction.

    Bands (first match wins):
        amount / mean > 3     -> "N.Nx higher than your average ..."
        amount / mean > 1.5   -> "significantly higher than your typical ..."
        amount == max amount  -> "largest recorded expense ..."
        otherwise             -> "unusual pattern ..." naming the weekday

    Args:
        amount: Coerced amount of the flagged transaction
        timestamp: Coerced date of the flagged transaction (None if invalid)
        all_amounts: Coerced amounts of every qualifying transaction
        category_name: Display name of the category
    """
    label = category_label(category_name)
    values = np.asarray(all_amounts, dtype=float)
    mean_amount = float(values.mean()) if len(values) else 0.0
    max_amount = float(values.max()) if len(values) else amount

    if mean_amount > 0:
        ratio = amount / mean_amount
        if ratio > HIGH_RATIO:
            return f"This expense is {ratio:.1f}x higher than your average{label} spending."
        if ratio > ELEVATED_RATIO:
            return f"This expense is significantly higher than your typical{label} transactions."

    if amount == max_amount:
        return f"This is your largest recorded expense in the{label} category."

    when = f" on a {WEEKDAY_NAMES[day_of_week(timestamp)]}" if timestamp is not None else ""
    return (
        f"This{label} expense has an unusual pattern (timing, amount, or frequency) "
        f"compared to your typical spending{when}."
    )
