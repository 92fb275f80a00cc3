"""
Point-in-time helpers for the window-based detectors.

Every statistic computed here for transaction i uses only rows strictly
before i. Nothing at or after i is ever visible to the context window.
"""

from typing import Optional, Sequence, Tuple, TypeVar

import numpy as np
import pandas as pd

T = TypeVar("T")


def chronological_key(timestamp: Optional[pd.Timestamp]) -> Tuple[int, int]:
    """
    Sort key for coerced dates. Invalid dates (None) sort before every
    valid date; ties keep their input order when used with sorted().
    """
    if timestamp is None:
        return (0, 0)
    return (1, timestamp.value)


def get_context_window(rows: Sequence[T], index: int, window_size: int) -> Sequence[T]:
    """
    Trailing window [index - window_size, index) of an ascending sequence.

    Returns fewer than window_size rows when index < window_size.
    """
    if index < 0 or index > len(rows):
        raise IndexError(f"index {index} out of range for {len(rows)} rows")
    start = max(0, index - window_size)
    return rows[start:index]


def calculate_context_stats(amounts: Sequence[float]) -> Tuple[float, float]:
    """
    Mean and population standard deviation (ddof=0) of the context amounts.

    Raises:
        ValueError: If the context is empty
    """
    if len(amounts) == 0:
        raise ValueError("Cannot compute statistics over an empty context")
    values = np.asarray(amounts, dtype=float)
    return float(values.mean()), float(values.std())
