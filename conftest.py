"""
Pytest configuration and shared fixtures.

Registers the unit/integration markers and provides small builders for
transaction series so every test states only the amounts it cares about.
"""

import pandas as pd
import pytest

from expense_anomaly.ingestion.schema import Transaction
from expense_anomaly.ingestion.store import InMemoryTransactionStore


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (trains real models, touches DuckDB)"
    )
    config.addinivalue_line(
        "markers",
        "unit: mark test as unit test (fast, isolated)"
    )


def build_series(
    amounts,
    category="groceries",
    category_name=None,
    start="2025-03-01",
    id_prefix=None,
    freq_days=1
):
    """One expense per amount, on consecutive days starting at `start`."""
    start_ts = pd.Timestamp(start, tz="UTC")
    prefix = id_prefix or category
    return [
        Transaction(
            id=f"{prefix}_{i:03d}",
            amount=amount,
            date=(start_ts + pd.Timedelta(days=i * freq_days)).isoformat(),
            category=category,
            categoryName=category_name,
            type="expense",
        )
        for i, amount in enumerate(amounts)
    ]


@pytest.fixture
def make_series():
    """Factory fixture around build_series()."""
    return build_series


@pytest.fixture
def make_store():
    """Factory: make_store({"user_1": [transactions...]}) -> InMemoryTransactionStore."""
    def _make(transactions_by_user=None):
        return InMemoryTransactionStore(transactions_by_user or {})
    return _make
