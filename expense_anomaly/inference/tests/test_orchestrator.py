"""
Tests for per-category detection: insufficient data, model-first policy,
fallback on any model failure, and store error propagation.
"""

import numpy as np
import pytest

from conftest import build_series
from expense_anomaly.config import Settings
from expense_anomaly.inference.orchestrator import (
    INSUFFICIENT_DATA_MESSAGE,
    build_detectors,
    detect_anomalies_for_category,
    resolve_category_name,
)
from expense_anomaly.ingestion.schema import AnomalyRecord
from expense_anomaly.models.isolation_detector import IsolationForestDetector
from expense_anomaly.models.window_detector import SLIDING_WINDOW_METHOD, StatisticalWindowDetector


class StubDetector:
    method = "Stub"

    def __init__(self, flag_ids=(), error=None):
        self.flag_ids = set(flag_ids)
        self.error = error
        self.calls = []

    def detect(self, transactions, category_name=None):
        self.calls.append((list(transactions), category_name))
        if self.error is not None:
            raise self.error
        return [
            AnomalyRecord.from_transaction(t, anomalyScore=-0.5, reason=f"stub {category_name}")
            for t in transactions if t.id in self.flag_ids
        ]


class FailingStore:
    def list_expense_transactions(self, user_id, category_id=None):
        raise ConnectionError("store unavailable")

    def list_distinct_expense_categories(self, user_id):
        raise ConnectionError("store unavailable")


# ============================================================================
# INSUFFICIENT DATA
# ============================================================================

def test_fewer_than_five_transactions_returns_message(make_store):
    store = make_store({"u1": build_series([10, 20, 30, 40])})
    primary, fallback = StubDetector(), StubDetector()

    result = detect_anomalies_for_category(store, "u1", "groceries", primary, fallback)

    assert result.category_id == "groceries"
    assert result.anomalies == []
    assert result.message == INSUFFICIENT_DATA_MESSAGE
    assert result.method is None
    assert primary.calls == [] and fallback.calls == []


def test_income_rows_do_not_count_towards_minimum(make_store):
    expenses = build_series([10, 20, 30, 40])
    income = [{"id": "inc_1", "amount": 3000, "date": "2025-03-10",
               "category": "groceries", "type": "income"}]
    store = make_store({"u1": expenses + income})

    result = detect_anomalies_for_category(store, "u1", "groceries")

    assert result.message == INSUFFICIENT_DATA_MESSAGE


def test_unknown_user_is_insufficient_data(make_store):
    result = detect_anomalies_for_category(make_store(), "nobody", "groceries")
    assert result.message == INSUFFICIENT_DATA_MESSAGE


# ============================================================================
# MODEL-FIRST POLICY
# ============================================================================

def test_primary_result_is_used_without_method(make_store):
    series = build_series([10, 11, 12, 13, 14, 15], category_name="Groceries")
    store = make_store({"u1": series})
    primary = StubDetector(flag_ids={"groceries_005"})
    fallback = StubDetector()

    result = detect_anomalies_for_category(store, "u1", "groceries", primary, fallback)

    assert [a.id for a in result.anomalies] == ["groceries_005"]
    assert result.method is None
    assert result.message is None
    assert fallback.calls == []
    assert primary.calls[0][1] == "Groceries"


@pytest.mark.parametrize("error", [
    RuntimeError("model blew up"),
    ValueError("bad input"),
    ZeroDivisionError(),
])
def test_any_model_failure_falls_back(make_store, error):
    store = make_store({"u1": build_series([50, 52, 49, 51, 53, 500])})
    primary = StubDetector(error=error)
    fallback = StatisticalWindowDetector()

    result = detect_anomalies_for_category(store, "u1", "groceries", primary, fallback)

    assert result.method == SLIDING_WINDOW_METHOD
    assert [a.id for a in result.anomalies] == ["groceries_005"]


def test_small_category_falls_back_with_default_detectors(make_store):
    store = make_store({"u1": build_series([50, 52, 49, 51, 53, 500])})

    result = detect_anomalies_for_category(store, "u1", "groceries")

    assert result.method == "Sliding window detection"
    assert len(result.anomalies) == 1
    anomaly = result.anomalies[0]
    assert anomaly.id == "groceries_005"
    assert anomaly.anomaly_score > 0
    assert "Groceries" in anomaly.reason
    assert anomaly.category_name == "Groceries"


def _spiked_amounts(n_baseline, seed=3):
    rng = np.random.default_rng(seed)
    return [round(float(x), 2) for x in rng.normal(100.0, 5.0, size=n_baseline)] + [10000.0]


@pytest.mark.integration
def test_default_config_model_flags_spike_in_large_category(make_store):
    series = build_series(_spiked_amounts(59))
    store = make_store({"u1": series})

    result = detect_anomalies_for_category(store, "u1", "groceries")

    assert result.method is None  # served by the outlier model
    assert series[-1].id in [a.id for a in result.anomalies]
    spike = next(a for a in result.anomalies if a.id == series[-1].id)
    assert spike.anomaly_score < -0.3
    assert spike.category_name == "Groceries"


def test_default_config_spike_in_mid_sized_category_is_reported(make_store):
    # 12 rows: below the outlier model minimum, served by the window detector
    series = build_series(_spiked_amounts(11))
    store = make_store({"u1": series})

    result = detect_anomalies_for_category(store, "u1", "groceries")

    assert result.method == SLIDING_WINDOW_METHOD
    assert series[-1].id in [a.id for a in result.anomalies]


def test_fallback_result_dump_uses_wire_names(make_store):
    store = make_store({"u1": build_series([50, 52, 49, 51, 53, 500])})

    payload = detect_anomalies_for_category(store, "u1", "groceries").model_dump(
        by_alias=True, exclude_none=True
    )

    assert payload["categoryId"] == "groceries"
    assert payload["method"] == "Sliding window detection"
    assert "message" not in payload
    assert {"anomalyScore", "reason", "categoryName"} <= set(payload["anomalies"][0])


# ============================================================================
# ERRORS AND NAMES
# ============================================================================

def test_store_errors_propagate():
    with pytest.raises(ConnectionError):
        detect_anomalies_for_category(FailingStore(), "u1", "groceries")


def test_existing_category_name_is_kept(make_store):
    series = build_series([50, 52, 49, 51, 53, 500], category_name="Food & Drink")
    store = make_store({"u1": series})

    result = detect_anomalies_for_category(store, "u1", "groceries")

    assert result.anomalies[0].category_name == "Food & Drink"
    assert "Food & Drink" in result.anomalies[0].reason


def test_resolve_category_name():
    named = build_series([1, 2], category="fuel", category_name="Fuel Stations")
    unnamed = build_series([1, 2], category="fuel")

    assert resolve_category_name(unnamed + named, "fuel") == "Fuel Stations"
    assert resolve_category_name(unnamed, "fuel") == "Fuel"
    assert resolve_category_name([], "eatingOut") == "EatingOut"
    assert resolve_category_name([], "") == ""


def test_build_detectors_uses_config():
    config = Settings(ISOLATION_CONTAMINATION=0.05, WINDOW_SIZE=20, MIN_TRANSACTIONS=7)
    primary, fallback = build_detectors(config)

    assert isinstance(primary, IsolationForestDetector)
    assert isinstance(fallback, StatisticalWindowDetector)
    assert primary.contamination == 0.05
    assert fallback.window_size == 20
    assert fallback.min_context == 7
