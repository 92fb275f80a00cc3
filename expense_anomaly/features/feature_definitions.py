"""
Feature extraction for the outlier model.

Each transaction maps to a fixed 4-feature vector, computed from the
transaction alone (no history):

    [amount, day_of_month, day_of_week, recency]

Malformed input never raises. A bad amount becomes 0.0 and a bad date takes
the neutral defaults below, so one broken record cannot stop a detection
run or manufacture a spurious anomaly on its own.
"""

import logging
import math
import numbers
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Sequence

import pandas as pd

from expense_anomaly.ingestion.schema import Transaction

logger = logging.getLogger(__name__)


# ============================================================================
# FEATURE CONTRACT
# ============================================================================

FEATURE_NAMES = [
    'amount',
    'day_of_month',
    'day_of_week',   # Sunday = 0 ... Saturday = 6
    'recency',       # (now - date) / 30 days, clipped to [0, 1]
]

RECENCY_HORIZON = pd.Timedelta(days=30)

# Defaults for an unparseable date
DEFAULT_DAY_OF_MONTH = 1.0
DEFAULT_DAY_OF_WEEK = 0.0
DEFAULT_RECENCY = 0.5

WEEKDAY_NAMES = [
    'Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday'
]


# ============================================================================
# COERCION
# ============================================================================

def coerce_amount(value) -> float:
    """
    Parse a raw amount. Returns 0.0 for anything that is not a finite number.

    Example:
        >>> coerce_amount("12.50")
        12.5
        >>> coerce_amount("n/a")
        0.0
    """
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        amount = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        logger.debug(f"Invalid amount found: {value!r}")
        return 0.0
    if not math.isfinite(amount):
        logger.debug(f"Non-finite amount found: {value!r}")
        return 0.0
    return amount


def coerce_date(value) -> Optional[pd.Timestamp]:
    """
    Parse a raw date into a UTC timestamp, or None when it cannot be parsed.

    Numbers are read as epoch milliseconds.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, (numbers.Real, Decimal)):
            timestamp = pd.to_datetime(float(value), unit='ms', utc=True, errors='coerce')
        elif isinstance(value, (datetime, date, str, pd.Timestamp)):
            timestamp = pd.to_datetime(value, utc=True, errors='coerce')
        else:
            timestamp = pd.NaT
    except (TypeError, ValueError, OverflowError):
        timestamp = pd.NaT

    if pd.isna(timestamp):
        logger.debug(f"Invalid date found: {value!r}")
        return None
    return timestamp


def day_of_week(timestamp: pd.Timestamp) -> int:
    """Sunday-based weekday index (Sunday = 0)."""
    return (timestamp.dayofweek + 1) % 7


# ============================================================================
# EXTRACTION
# ============================================================================

def _reference_time(now=None) -> pd.Timestamp:
    if now is None:
        return pd.Timestamp.now(tz='UTC')
    now = pd.Timestamp(now)
    if now.tzinfo is None:
        now = now.tz_localize('UTC')
    return now


def extract_features(transaction: Transaction, now: Optional[pd.Timestamp] = None) -> List[float]:
    """
    Convert one transaction into its feature vector.

    Args:
        transaction: Raw transaction (amount/date may be malformed)
        now: Reference time for recency (default: current UTC time)

    Returns:
        [amount, day_of_month, day_of_week, recency]
    """
    amount = coerce_amount(transaction.amount)
    timestamp = coerce_date(transaction.date)

    if timestamp is None:
        return [amount, DEFAULT_DAY_OF_MONTH, DEFAULT_DAY_OF_WEEK, DEFAULT_RECENCY]

    age = (_reference_time(now) - timestamp) / RECENCY_HORIZON
    recency = min(1.0, max(0.0, float(age)))

    return [amount, float(timestamp.day), float(day_of_week(timestamp)), recency]


def build_feature_matrix(
    transactions: Sequence[Transaction],
    now: Optional[pd.Timestamp] = None
) -> pd.DataFrame:
    """
    Feature matrix for a batch of transactions, one row per transaction in
    input order. All rows share the same reference time.
    """
    now = _reference_time(now)
    rows = [extract_features(txn, now=now) for txn in transactions]
    return pd.DataFrame(rows, columns=FEATURE_NAMES, dtype=float)
